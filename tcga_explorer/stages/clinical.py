"""Join molecular features with clinical survival annotations."""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit
from tcga_explorer.utils.barcodes import is_tumor, sample_barcode

COMPOSITION_PREFIX = "cc_"


class ClinicalIntegrator:
    """Build a per-sample feature matrix for survival modelling.

    Rows are tumour samples present in both the expression matrix and the
    clinical table, matched on the sample-level barcode. Columns are
    ``time`` and ``event``, followed by selected genes and, when cell
    composition scores are available, one ``cc_``-prefixed column per cell
    type.

    Gene selection uses the differential expression results when they are
    present (lowest adjusted p-value first); otherwise the most variable
    genes are kept.

    Parameters
    ----------
    time_column : str
        Clinical column holding follow-up time
    event_column : str
        Clinical column holding the event indicator (1 = event)
    n_genes : int
        Number of gene features to keep
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        time_column: str = "OS.time",
        event_column: str = "OS",
        n_genes: int = 50,
        logger: Optional[logging.Logger] = None,
    ):
        self.time_column = time_column
        self.event_column = event_column
        self.n_genes = max(1, int(n_genes))
        self.logger = logger or logging.getLogger(__name__)

    def _select_genes(self, expression: pd.DataFrame, de_results: Optional[pd.DataFrame]) -> List[str]:
        if de_results is not None and "padj" in de_results.columns:
            ranked = de_results["padj"].dropna().sort_values(kind="mergesort")
            genes = [g for g in ranked.index if g in expression.index]
            if genes:
                return genes[: self.n_genes]
            self.logger.warning("No differential expression gene found in expression; using variance")
        variance = expression.var(axis=1).sort_values(ascending=False, kind="mergesort")
        return list(variance.index[: self.n_genes])

    def _survival_table(self, clinical: pd.DataFrame, unit_id: str) -> pd.DataFrame:
        missing = [c for c in (self.time_column, self.event_column) if c not in clinical.columns]
        if missing:
            raise TransformError(f"{unit_id}: clinical table lacks column(s) {missing}")

        survival = pd.DataFrame(
            {
                "time": pd.to_numeric(clinical[self.time_column], errors="coerce"),
                "event": pd.to_numeric(clinical[self.event_column], errors="coerce"),
            }
        )
        survival.index = [sample_barcode(s) for s in clinical.index]
        survival = survival[~survival.index.duplicated(keep="first")]
        return survival.dropna()

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        expression = inputs["normalized"]
        de_results = inputs.get("de_results")
        composition = inputs.get("composition")

        genes = self._select_genes(expression, de_results)
        tumor_cols = [c for c in expression.columns if is_tumor(c)]
        features = expression.loc[genes, tumor_cols].T
        features.index = [sample_barcode(s) for s in features.index]
        features = features[~features.index.duplicated(keep="first")]

        if composition is not None:
            scores = composition.copy()
            scores.index = [sample_barcode(s) for s in scores.index]
            scores = scores[~scores.index.duplicated(keep="first")]
            scores.columns = [f"{COMPOSITION_PREFIX}{c}" for c in scores.columns]
            features = features.join(scores, how="left")

        survival = self._survival_table(inputs["clinical"], unit.unit_id)
        matrix = survival.join(features, how="inner")
        if matrix.empty:
            raise TransformError(
                f"{unit.unit_id}: no tumour sample matches between expression and clinical data"
            )
        matrix["event"] = (matrix["event"] > 0).astype(int)
        matrix.index.name = "sample"

        self.logger.info(
            "%s: feature matrix %d samples x %d features (%d events, de=%s, composition=%s)",
            unit.unit_id,
            matrix.shape[0],
            matrix.shape[1] - 2,
            int(matrix["event"].sum()),
            de_results is not None,
            composition is not None,
        )
        return {"feature_matrix": matrix}
