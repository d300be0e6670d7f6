"""Command-line interface for tcga-explorer.

Example Usage
-------------
    # From command line:
    tcga-explorer --help
    tcga-explorer run --config pipeline.yaml
    tcga-explorer stage differential_expression --config pipeline.yaml
    tcga-explorer status --config pipeline.yaml
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
