"""I/O utilities for tcga-explorer.

Provides logging helpers, table parsing/validation and resource fetching.
"""

from .logging import get_timestamped_log_path, log_json, read_json_lines
from .tables import (
    read_table_bytes,
    validate_table,
    write_dataframe,
)
from .fetch import ResourceFetcher

__all__ = [
    # Logging
    "get_timestamped_log_path",
    "log_json",
    "read_json_lines",
    # Tables
    "read_table_bytes",
    "validate_table",
    "write_dataframe",
    # Fetching
    "ResourceFetcher",
]
