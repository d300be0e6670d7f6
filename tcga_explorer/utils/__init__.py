"""Utility functions for tcga-explorer.

Provides statistical helpers and TCGA barcode parsing used across stages.
"""

from .barcodes import is_normal, is_tumor, plate_id, sample_barcode, sample_type_code
from .stats import benjamini_hochberg, concordance_index, zscore_rows

__all__ = [
    "benjamini_hochberg",
    "concordance_index",
    "zscore_rows",
    "is_normal",
    "is_tumor",
    "plate_id",
    "sample_barcode",
    "sample_type_code",
]
