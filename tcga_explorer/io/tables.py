"""Table I/O utilities for tcga-explorer.

Provides parsing of downloaded expression/clinical tables and light
validation of their shape.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

GZIP_MAGIC = b"\x1f\x8b"


def write_dataframe(df: pd.DataFrame, path: PathLike, *, index: bool = False) -> Path:
    """Write DataFrame to path ensuring the parent directory exists.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to write.
    path : PathLike
        Output path.
    index : bool
        Whether to write row index (default: False).

    Returns
    -------
    Path
        The output path.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index)
    return output_path


def read_table_bytes(payload: bytes, name: str, sep: str = "\t") -> pd.DataFrame:
    """Parse a (possibly gzipped) delimited table, first column as index.

    Raises
    ------
    ValueError
        If the payload cannot be parsed
    """
    compression = "gzip" if payload[:2] == GZIP_MAGIC else None
    try:
        df = pd.read_csv(io.BytesIO(payload), sep=sep, index_col=0, compression=compression)
    except (ValueError, OSError, EOFError, UnicodeDecodeError) as e:
        raise ValueError(f"Could not parse {name}: {e}") from e
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    return df


def validate_table(
    df: pd.DataFrame,
    name: str,
    min_rows: int = 100,
    min_cols: int = 10,
) -> pd.DataFrame:
    """Check a table is non-empty and warn when smaller than expected.

    Parameters
    ----------
    df : pd.DataFrame
        Table to validate.
    name : str
        Name used in messages.
    min_rows : int
        Expected minimum number of rows (warning only).
    min_cols : int
        Expected minimum number of columns (warning only).

    Returns
    -------
    pd.DataFrame
        The same table.

    Raises
    ------
    ValueError
        If the table is None or empty
    """
    if df is None or df.empty:
        raise ValueError(f"Data validation failed for {name}: empty table")

    n_rows, n_cols = df.shape
    if n_rows < min_rows:
        logger.warning("Data %s has fewer rows than expected: %d < %d", name, n_rows, min_rows)
    if n_cols < min_cols:
        logger.warning("Data %s has fewer columns than expected: %d < %d", name, n_cols, min_cols)

    logger.info("Data validation passed for %s: %d rows x %d columns", name, n_rows, n_cols)
    return df
