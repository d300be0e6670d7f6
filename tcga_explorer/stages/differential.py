"""Tumour versus normal differential expression."""

import logging
import warnings
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit
from tcga_explorer.utils.barcodes import is_normal, is_tumor
from tcga_explorer.utils.stats import benjamini_hochberg

DE_COLUMNS = [
    "mean_tumor",
    "mean_normal",
    "log2_fold_change",
    "t_statistic",
    "p_value",
    "padj",
]


class DifferentialExpression:
    """Per-gene Welch t-test between tumour and normal samples.

    Samples are assigned to groups from the TCGA sample type code; other
    sample types (e.g. control analytes) are ignored. Expression is
    assumed to be on a log2 scale, so the fold change is a difference of
    group means.

    Parameters
    ----------
    min_group_size : int
        Minimum samples required in each group
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(self, min_group_size: int = 2, logger: Optional[logging.Logger] = None):
        self.min_group_size = max(2, int(min_group_size))
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        expression = inputs["normalized"]
        tumor_cols = [c for c in expression.columns if is_tumor(c)]
        normal_cols = [c for c in expression.columns if is_normal(c)]

        if len(tumor_cols) < self.min_group_size or len(normal_cols) < self.min_group_size:
            raise TransformError(
                f"{unit.unit_id}: need at least {self.min_group_size} tumour and normal "
                f"samples, found {len(tumor_cols)} tumour and {len(normal_cols)} normal"
            )

        tumor = expression[tumor_cols].to_numpy(dtype=float)
        normal = expression[normal_cols].to_numpy(dtype=float)

        with warnings.catch_warnings():
            # Constant genes produce NaN statistics
            warnings.simplefilter("ignore", category=RuntimeWarning)
            t_stat, p_value = stats.ttest_ind(tumor, normal, axis=1, equal_var=False)

        results = pd.DataFrame(
            {
                "mean_tumor": tumor.mean(axis=1),
                "mean_normal": normal.mean(axis=1),
                "t_statistic": np.asarray(t_stat, dtype=float),
                "p_value": np.asarray(p_value, dtype=float),
            },
            index=expression.index,
        )
        results["log2_fold_change"] = results["mean_tumor"] - results["mean_normal"]
        results["padj"] = benjamini_hochberg(results["p_value"])
        results = results[DE_COLUMNS].sort_values("p_value", kind="mergesort", na_position="last")
        results.index.name = "gene"

        n_significant = int((results["padj"] < 0.05).sum())
        self.logger.info(
            "%s: %d tumour vs %d normal samples, %d/%d genes with padj < 0.05",
            unit.unit_id,
            len(tumor_cols),
            len(normal_cols),
            n_significant,
            len(results),
        )
        return {"de_results": results}
