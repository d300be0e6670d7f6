"""Reference stages for the TCGA exploration pipeline.

Each stage transform is a callable ``transform(inputs, unit)`` returning a
mapping of output artifact name to value. ``build_stages`` assembles them
into ordered contracts gated by the configuration toggles.
"""

from .acquisition import DataAcquirer
from .catalog import (
    ACQUISITION,
    CELL_COMPOSITION,
    CLINICAL,
    CLINICAL_INTEGRATION,
    COMPOSITION,
    DE_RESULTS,
    DIFFERENTIAL_EXPRESSION,
    EXPRESSION,
    FEATURE_MATRIX,
    METRICS,
    MODEL,
    NORMALIZED,
    PREPROCESSING,
    RISK_SCORES,
    SIZE_FACTORS,
    STAGE_ORDER,
    SURVIVAL_MODELS,
    build_stages,
)
from .clinical import ClinicalIntegrator
from .composition import DEFAULT_SIGNATURES, CompositionScorer
from .differential import DifferentialExpression
from .preprocessing import Preprocessor, center_batches, library_size_factors, median_of_ratios
from .survival import RiskModel, SurvivalModelBuilder

__all__ = [
    "build_stages",
    "STAGE_ORDER",
    "ACQUISITION",
    "PREPROCESSING",
    "DIFFERENTIAL_EXPRESSION",
    "CELL_COMPOSITION",
    "CLINICAL_INTEGRATION",
    "SURVIVAL_MODELS",
    "EXPRESSION",
    "CLINICAL",
    "NORMALIZED",
    "SIZE_FACTORS",
    "DE_RESULTS",
    "COMPOSITION",
    "FEATURE_MATRIX",
    "MODEL",
    "RISK_SCORES",
    "METRICS",
    "DataAcquirer",
    "Preprocessor",
    "median_of_ratios",
    "library_size_factors",
    "center_batches",
    "DifferentialExpression",
    "CompositionScorer",
    "DEFAULT_SIGNATURES",
    "ClinicalIntegrator",
    "RiskModel",
    "SurvivalModelBuilder",
]
