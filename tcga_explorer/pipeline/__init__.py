"""Pipeline orchestration module.

Provides the staged data-flow engine: durable artifact storage, stage
contracts, per-unit execution with failure isolation, and an orchestrator
that sequences stages under a continuation policy.

Example Usage
-------------
>>> from tcga_explorer.pipeline import (
...     PipelineConfig,
...     PipelineLogger,
...     PipelineOrchestrator,
... )
>>> from tcga_explorer.stages import build_stages
>>> # Load configuration
>>> config = PipelineConfig.from_yaml("pipeline.yaml")
>>> # Setup logging
>>> logger = PipelineLogger(str(config.log_dir), log_file=config.log_file)
>>> logger.setup()
>>> # Execute pipeline
>>> orchestrator = PipelineOrchestrator(config, build_stages(config), logger=logger)
>>> report = orchestrator.run()
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    ArtifactNotFound,
    ArtifactStoreError,
    FetchError,
    MissingInputError,
    OutputContractViolation,
    PipelineConfigError,
    PipelineError,
    TransformError,
)

# Artifacts
from .artifacts import (
    ArtifactLocation,
    ArtifactRef,
    ArtifactSpec,
    ArtifactStore,
    ArtifactView,
    ContentType,
)

# Stage contracts
from .stage import StageContract, WorkUnit, validate_stage_order

# Outcomes
from .outcome import (
    PipelineReport,
    PipelineState,
    StageSummary,
    UnitOutcome,
    UnitStatus,
)

# Configuration
from .config import PipelineConfig, RetryPolicy

# Logging
from .logger import (
    ColoredFormatter,
    PipelineLogger,
)

# Execution
from .runner import StageRunner, UnitRunner
from .bootstrap import check_connectivity, prepare_output_tree, verify_environment
from .executor import PipelineOrchestrator

__all__ = [
    # Version
    "__version__",
    # Errors
    "ArtifactNotFound",
    "ArtifactStoreError",
    "FetchError",
    "MissingInputError",
    "OutputContractViolation",
    "PipelineConfigError",
    "PipelineError",
    "TransformError",
    # Artifacts
    "ArtifactLocation",
    "ArtifactRef",
    "ArtifactSpec",
    "ArtifactStore",
    "ArtifactView",
    "ContentType",
    # Stage
    "StageContract",
    "WorkUnit",
    "validate_stage_order",
    # Outcomes
    "PipelineReport",
    "PipelineState",
    "StageSummary",
    "UnitOutcome",
    "UnitStatus",
    # Config
    "PipelineConfig",
    "RetryPolicy",
    # Logging
    "ColoredFormatter",
    "PipelineLogger",
    # Execution
    "StageRunner",
    "UnitRunner",
    "check_connectivity",
    "prepare_output_tree",
    "verify_environment",
    "PipelineOrchestrator",
]
