"""Reference stage catalogue for the TCGA exploration pipeline.

Stages run in a fixed order, each gated by its configuration toggle:

1. acquisition              download_data (source stage)
2. preprocessing            always
3. differential_expression  perform_de_analysis
4. cell_composition         perform_cell_composition
5. clinical_integration     always
6. survival_models          build_survival_models
"""

import inspect
from typing import Any, Dict, List, Optional

from tcga_explorer.io.fetch import ResourceFetcher
from tcga_explorer.pipeline.artifacts import ArtifactRef, ArtifactSpec, ContentType
from tcga_explorer.pipeline.config import PipelineConfig
from tcga_explorer.pipeline.errors import PipelineConfigError
from tcga_explorer.pipeline.stage import StageContract

from .acquisition import DataAcquirer
from .clinical import ClinicalIntegrator
from .composition import CompositionScorer
from .differential import DifferentialExpression
from .preprocessing import Preprocessor
from .survival import SurvivalModelBuilder

ACQUISITION = "acquisition"
PREPROCESSING = "preprocessing"
DIFFERENTIAL_EXPRESSION = "differential_expression"
CELL_COMPOSITION = "cell_composition"
CLINICAL_INTEGRATION = "clinical_integration"
SURVIVAL_MODELS = "survival_models"

STAGE_ORDER = [
    ACQUISITION,
    PREPROCESSING,
    DIFFERENTIAL_EXPRESSION,
    CELL_COMPOSITION,
    CLINICAL_INTEGRATION,
    SURVIVAL_MODELS,
]

EXPRESSION = ArtifactSpec("expression", ContentType.TSV)
CLINICAL = ArtifactSpec("clinical", ContentType.TSV)
NORMALIZED = ArtifactSpec("normalized", ContentType.TABLE)
SIZE_FACTORS = ArtifactSpec("size_factors", ContentType.TABLE)
DE_RESULTS = ArtifactSpec("de_results", ContentType.TABLE)
COMPOSITION = ArtifactSpec("composition", ContentType.TABLE)
FEATURE_MATRIX = ArtifactSpec("feature_matrix", ContentType.TABLE)
MODEL = ArtifactSpec("model", ContentType.OBJECT)
RISK_SCORES = ArtifactSpec("risk_scores", ContentType.TABLE)
METRICS = ArtifactSpec("metrics", ContentType.JSON)


def _instantiate(cls, stage_name: str, params: Dict[str, Any], **defaults: Any):
    accepted = set(inspect.signature(cls.__init__).parameters) - {"self", "logger"}
    unknown = sorted(set(params) - accepted)
    if unknown:
        raise PipelineConfigError(
            f"Unknown parameter(s) for stage '{stage_name}': {unknown}. "
            f"Accepted: {sorted(accepted)}"
        )
    return cls(**{**defaults, **params})


def build_stages(
    config: PipelineConfig,
    fetcher: Optional[ResourceFetcher] = None,
) -> List[StageContract]:
    """Build the reference stage contracts for ``config``.

    Parameters
    ----------
    config : PipelineConfig
        Run configuration; toggles and ``stage_params`` are read here
    fetcher : ResourceFetcher, optional
        Fetch collaborator for acquisition. Default: uses ``config.retry``.

    Returns
    -------
    List[StageContract]
        Contracts in execution order

    Raises
    ------
    PipelineConfigError
        If ``stage_params`` names an unknown stage or parameter
    """
    unknown_stages = sorted(set(config.stage_params) - set(STAGE_ORDER))
    if unknown_stages:
        raise PipelineConfigError(f"stage_params for unknown stage(s): {unknown_stages}")

    fetcher = fetcher or ResourceFetcher(retry=config.retry)

    return [
        StageContract(
            name=ACQUISITION,
            transform=_instantiate(
                DataAcquirer, ACQUISITION, config.params_for(ACQUISITION), fetcher=fetcher
            ),
            produces=[EXPRESSION, CLINICAL],
            toggle="download_data",
            source=True,
            description="Data Acquisition",
        ),
        StageContract(
            name=PREPROCESSING,
            transform=_instantiate(
                Preprocessor,
                PREPROCESSING,
                config.params_for(PREPROCESSING),
                apply_combat=config.apply_combat,
                deseq2_normalize=config.deseq2_normalize,
            ),
            requires=[ArtifactRef(ACQUISITION, EXPRESSION)],
            produces=[NORMALIZED, SIZE_FACTORS],
            description="Normalization & Batch Correction",
        ),
        StageContract(
            name=DIFFERENTIAL_EXPRESSION,
            transform=_instantiate(
                DifferentialExpression,
                DIFFERENTIAL_EXPRESSION,
                config.params_for(DIFFERENTIAL_EXPRESSION),
            ),
            requires=[ArtifactRef(PREPROCESSING, NORMALIZED)],
            produces=[DE_RESULTS],
            toggle="perform_de_analysis",
            description="Differential Expression",
        ),
        StageContract(
            name=CELL_COMPOSITION,
            transform=_instantiate(
                CompositionScorer, CELL_COMPOSITION, config.params_for(CELL_COMPOSITION)
            ),
            requires=[ArtifactRef(PREPROCESSING, NORMALIZED)],
            produces=[COMPOSITION],
            toggle="perform_cell_composition",
            description="Cell Composition",
        ),
        StageContract(
            name=CLINICAL_INTEGRATION,
            transform=_instantiate(
                ClinicalIntegrator, CLINICAL_INTEGRATION, config.params_for(CLINICAL_INTEGRATION)
            ),
            requires=[
                ArtifactRef(PREPROCESSING, NORMALIZED),
                ArtifactRef(ACQUISITION, CLINICAL),
            ],
            optional_inputs=[
                ArtifactRef(DIFFERENTIAL_EXPRESSION, DE_RESULTS),
                ArtifactRef(CELL_COMPOSITION, COMPOSITION),
            ],
            produces=[FEATURE_MATRIX],
            description="Clinical Integration",
        ),
        StageContract(
            name=SURVIVAL_MODELS,
            transform=_instantiate(
                SurvivalModelBuilder, SURVIVAL_MODELS, config.params_for(SURVIVAL_MODELS)
            ),
            requires=[ArtifactRef(CLINICAL_INTEGRATION, FEATURE_MATRIX)],
            produces=[MODEL, RISK_SCORES, METRICS],
            toggle="build_survival_models",
            description="Survival Models",
        ),
    ]
