"""Count normalization and batch correction.

Counts are scaled by per-sample size factors (median of ratios, or
library size when disabled), log2-transformed, and optionally centred
per sequencing plate to remove location batch effects.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit
from tcga_explorer.utils.barcodes import plate_id


def median_of_ratios(counts: pd.DataFrame) -> pd.Series:
    """DESeq2-style size factors for a genes x samples count matrix.

    Raises
    ------
    TransformError
        If no gene has a positive count in every sample
    """
    positive = (counts > 0).all(axis=1)
    if not positive.any():
        raise TransformError("No gene is expressed in every sample; cannot estimate size factors")

    log_counts = np.log(counts.loc[positive])
    log_geo_means = log_counts.mean(axis=1)
    factors = np.exp(log_counts.sub(log_geo_means, axis=0).median(axis=0))
    return factors.rename("size_factor")


def library_size_factors(counts: pd.DataFrame) -> pd.Series:
    """Counts-per-million scaling factors."""
    return (counts.sum(axis=0) / 1e6).rename("size_factor")


def center_batches(
    expression: pd.DataFrame,
    batches: pd.Series,
    min_batch_size: int = 2,
) -> pd.DataFrame:
    """Remove per-batch gene means, restoring the overall gene mean.

    Samples in batches smaller than ``min_batch_size`` are left unchanged.
    """
    corrected = expression.copy()
    grand_mean = expression.mean(axis=1)
    for batch, members in batches.groupby(batches).groups.items():
        if len(members) < min_batch_size:
            continue
        cols = list(members)
        batch_mean = expression[cols].mean(axis=1)
        corrected[cols] = expression[cols].sub(batch_mean, axis=0).add(grand_mean, axis=0)
    return corrected


class Preprocessor:
    """Normalize one cohort's count matrix.

    Parameters
    ----------
    apply_combat : bool
        Centre expression per sequencing plate
    deseq2_normalize : bool
        Use median-of-ratios size factors instead of library size
    min_total_count : int
        Genes with fewer total counts are dropped
    pseudocount : float
        Added before log2
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        apply_combat: bool = True,
        deseq2_normalize: bool = True,
        min_total_count: int = 10,
        pseudocount: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.apply_combat = apply_combat
        self.deseq2_normalize = deseq2_normalize
        self.min_total_count = min_total_count
        self.pseudocount = pseudocount
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        counts = inputs["expression"].apply(pd.to_numeric, errors="coerce")
        if counts.isna().all().all():
            raise TransformError(f"Expression matrix for {unit.unit_id} has no numeric values")
        counts = counts.fillna(0).clip(lower=0)

        counts = counts.loc[counts.sum(axis=1) >= self.min_total_count]
        if counts.empty:
            raise TransformError(
                f"No gene in {unit.unit_id} passes min_total_count={self.min_total_count}"
            )

        if self.deseq2_normalize:
            factors = median_of_ratios(counts)
        else:
            factors = library_size_factors(counts)
        if (factors <= 0).any():
            raise TransformError(f"Non-positive size factors in {unit.unit_id}")

        normalized = np.log2(counts.div(factors, axis=1) + self.pseudocount)

        batches = pd.Series(
            [plate_id(c) or "unknown" for c in normalized.columns],
            index=normalized.columns,
            name="batch",
        )
        if self.apply_combat:
            if batches.nunique() > 1:
                normalized = center_batches(normalized, batches)
            else:
                self.logger.info("%s: single batch, skipping batch correction", unit.unit_id)

        self.logger.info(
            "Preprocessed %s: %d genes x %d samples (%s, combat=%s)",
            unit.unit_id,
            normalized.shape[0],
            normalized.shape[1],
            "median-of-ratios" if self.deseq2_normalize else "cpm",
            self.apply_combat,
        )
        size_factors = pd.concat([factors, batches], axis=1)
        size_factors.index.name = "sample"
        normalized.index.name = "gene"
        return {"normalized": normalized, "size_factors": size_factors}
