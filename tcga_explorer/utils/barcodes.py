"""TCGA aliquot barcode helpers.

A barcode such as ``TCGA-A1-A0SB-01A-11R-A144-07`` encodes project,
tissue source site, participant, sample type (``01``), vial, portion,
analyte, plate (``A144``) and sequencing center.
"""

from typing import Optional

TUMOR_CODES = range(1, 10)
NORMAL_CODES = range(10, 20)


def sample_barcode(barcode: str) -> str:
    """Truncate to the sample level, e.g. ``TCGA-A1-A0SB-01``."""
    return str(barcode)[:15]


def sample_type_code(barcode: str) -> Optional[int]:
    """Two-digit sample type code, or None if the barcode is too short."""
    parts = str(barcode).split("-")
    if len(parts) < 4 or len(parts[3]) < 2 or not parts[3][:2].isdigit():
        return None
    return int(parts[3][:2])


def is_tumor(barcode: str) -> bool:
    return sample_type_code(barcode) in TUMOR_CODES


def is_normal(barcode: str) -> bool:
    return sample_type_code(barcode) in NORMAL_CODES


def plate_id(barcode: str) -> Optional[str]:
    """Plate field of an aliquot barcode, or None when absent."""
    parts = str(barcode).split("-")
    return parts[5] if len(parts) > 5 else None
