"""Marker-signature cell composition scoring."""

import logging
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit
from tcga_explorer.utils.stats import zscore_rows

DEFAULT_SIGNATURES: Dict[str, List[str]] = {
    "T_cells": ["CD3D", "CD3E", "CD2", "CD8A", "CD8B"],
    "B_cells": ["CD19", "MS4A1", "CD79A", "CD79B"],
    "NK_cells": ["NKG7", "GNLY", "KLRD1", "NCAM1"],
    "Macrophages": ["CD68", "CD163", "CSF1R", "MRC1"],
    "Fibroblasts": ["COL1A1", "COL1A2", "DCN", "PDGFRB"],
    "Endothelial": ["PECAM1", "VWF", "CDH5", "KDR"],
    "Epithelial": ["EPCAM", "KRT8", "KRT18", "CDH1"],
}


class CompositionScorer:
    """Score cell type abundance as the mean z-score of marker genes.

    Gene identifiers are matched case-insensitively, ignoring any
    Ensembl-style version suffix or ``|``-separated alias.

    Parameters
    ----------
    signatures : Mapping[str, List[str]], optional
        Cell type -> marker genes. Default: DEFAULT_SIGNATURES
    min_markers : int
        Cell types with fewer matched markers are not scored
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        signatures: Optional[Mapping[str, List[str]]] = None,
        min_markers: int = 1,
        logger: Optional[logging.Logger] = None,
    ):
        self.signatures = {k: list(v) for k, v in (signatures or DEFAULT_SIGNATURES).items()}
        self.min_markers = max(1, int(min_markers))
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _gene_key(gene: str) -> str:
        return str(gene).split("|")[0].split(".")[0].upper()

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        expression = inputs["normalized"]
        z = zscore_rows(expression)
        lookup: Dict[str, Any] = {}
        for gene in z.index:
            lookup.setdefault(self._gene_key(gene), gene)

        scores = {}
        for cell_type, markers in self.signatures.items():
            matched = [lookup[m.upper()] for m in markers if m.upper() in lookup]
            if len(matched) < self.min_markers:
                self.logger.debug(
                    "%s: %s has %d/%d markers, not scored",
                    unit.unit_id,
                    cell_type,
                    len(matched),
                    len(markers),
                )
                continue
            scores[cell_type] = z.loc[matched].mean(axis=0)

        if not scores:
            raise TransformError(f"{unit.unit_id}: no cell type signature matched the expression genes")

        composition = pd.DataFrame(scores)
        composition.index.name = "sample"
        self.logger.info(
            "%s: scored %d cell types across %d samples",
            unit.unit_id,
            composition.shape[1],
            composition.shape[0],
        )
        return {"composition": composition}
