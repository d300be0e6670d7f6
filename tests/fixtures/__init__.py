"""Test fixtures for tcga-explorer.

Provides mock cohort generators and test utilities.
"""

from .mock_cohorts import (
    create_mock_clinical,
    create_mock_counts,
    make_barcode,
    marker_genes,
    write_cohort,
)

__all__ = [
    "create_mock_clinical",
    "create_mock_counts",
    "make_barcode",
    "marker_genes",
    "write_cohort",
]
