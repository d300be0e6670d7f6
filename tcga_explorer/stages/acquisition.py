"""Raw data acquisition for one cohort."""

import logging
from typing import Any, Dict, Optional

from tcga_explorer.io.fetch import ResourceFetcher
from tcga_explorer.io.tables import read_table_bytes, validate_table
from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit


class DataAcquirer:
    """Fetch a cohort's expression and clinical tables.

    Parameters
    ----------
    fetcher : ResourceFetcher, optional
        Fetch collaborator carrying the retry policy
    min_genes : int
        Expected minimum rows of the expression table (warning only)
    min_samples : int
        Expected minimum columns of the expression table (warning only)
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        fetcher: Optional[ResourceFetcher] = None,
        min_genes: int = 100,
        min_samples: int = 10,
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher or ResourceFetcher()
        self.min_genes = min_genes
        self.min_samples = min_samples
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        for name in ("expression", "clinical"):
            if name not in unit.sources:
                raise TransformError(f"No '{name}' source configured for {unit.unit_id}")

        expression = read_table_bytes(
            self.fetcher.fetch(unit.sources["expression"]), f"{unit.unit_id} expression"
        )
        validate_table(
            expression, f"{unit.unit_id} expression", self.min_genes, self.min_samples
        )

        clinical = read_table_bytes(
            self.fetcher.fetch(unit.sources["clinical"]), f"{unit.unit_id} clinical"
        )
        validate_table(clinical, f"{unit.unit_id} clinical", min_rows=self.min_samples, min_cols=1)

        self.logger.info(
            "Acquired %s: %d genes x %d samples, %d clinical records",
            unit.unit_id,
            expression.shape[0],
            expression.shape[1],
            len(clinical),
        )
        return {"expression": expression, "clinical": clinical}
