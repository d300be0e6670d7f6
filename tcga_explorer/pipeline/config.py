"""Pipeline configuration loader and validator."""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from .artifacts import check_segment
from .errors import PipelineConfigError
from .stage import StageContract, WorkUnit

PathLike = Union[str, Path]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with a fixed delay between attempts.

    Attributes
    ----------
    max_attempts : int
        Total attempts, including the first
    backoff_seconds : float
        Delay before each retry
    """

    max_attempts: int = 3
    backoff_seconds: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise PipelineConfigError("retry.max_attempts must be >= 1")
        if self.backoff_seconds < 0:
            raise PipelineConfigError("retry.backoff_seconds must be >= 0")

    def delays(self) -> List[float]:
        """Sleep durations between consecutive attempts."""
        return [float(self.backoff_seconds)] * (self.max_attempts - 1)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for one pipeline run.

    Loaded once from YAML before the orchestrator starts; nothing is read
    from ambient process state afterwards.

    Attributes
    ----------
    output_dir : Path
        Root for artifacts, summaries and run history
    log_file : Path, optional
        Pipeline log destination (default: timestamped file in output_dir/logs)
    indications : Tuple[str, ...]
        Cohorts to process, in order. Empty = discover from raw artifacts.
    sources : Mapping[str, str]
        Raw input location templates keyed by artifact name; ``{indication}``
        is replaced by the cohort identifier
    download_data : bool
        Run the acquisition stage
    apply_combat : bool
        Batch-correct expression during preprocessing
    deseq2_normalize : bool
        Use median-of-ratios size factors during preprocessing
    perform_de_analysis : bool
        Run differential expression
    perform_cell_composition : bool
        Run cell-composition scoring
    build_survival_models : bool
        Fit survival models
    skip_if_done : bool
        Do not recompute units whose outputs already exist
    n_workers : int
        Worker threads per stage
    unit_timeout_seconds : float, optional
        Bound on a single transform invocation
    max_failure_fraction : float
        Halt when this fraction (or more) of a stage's units failed
    retry : RetryPolicy
        Fetch retry policy
    log_level : str
        Logging level name
    stage_params : Mapping[str, Mapping[str, Any]]
        Per-stage transform parameters

    Example
    -------
    >>> config = PipelineConfig.from_yaml("pipeline.yaml")
    >>> config.is_enabled(contract)
    True
    >>> units = config.build_units()
    """

    output_dir: Path = Path("results")
    log_file: Optional[Path] = None
    indications: Tuple[str, ...] = ()
    sources: Mapping[str, str] = field(default_factory=dict)
    download_data: bool = True
    apply_combat: bool = True
    deseq2_normalize: bool = True
    perform_de_analysis: bool = True
    perform_cell_composition: bool = True
    build_survival_models: bool = True
    skip_if_done: bool = True
    n_workers: int = 1
    unit_timeout_seconds: Optional[float] = None
    max_failure_fraction: float = 1.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    log_level: str = "INFO"
    stage_params: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    TOGGLES = (
        "download_data",
        "apply_combat",
        "deseq2_normalize",
        "perform_de_analysis",
        "perform_cell_composition",
        "build_survival_models",
    )

    def __post_init__(self):
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        if self.log_file is not None:
            object.__setattr__(self, "log_file", Path(self.log_file))
        object.__setattr__(self, "indications", tuple(str(i) for i in self.indications))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))
        object.__setattr__(
            self,
            "stage_params",
            MappingProxyType({k: MappingProxyType(dict(v or {})) for k, v in self.stage_params.items()}),
        )

        if len(set(self.indications)) != len(self.indications):
            raise PipelineConfigError(f"Duplicate indications: {list(self.indications)}")
        for indication in self.indications:
            try:
                check_segment(indication, "indication")
            except ValueError as e:
                raise PipelineConfigError(str(e)) from e
        if not 0.0 < self.max_failure_fraction <= 1.0:
            raise PipelineConfigError("max_failure_fraction must be in (0, 1]")
        if self.n_workers < 1:
            raise PipelineConfigError("n_workers must be >= 1")
        if self.unit_timeout_seconds is not None and self.unit_timeout_seconds <= 0:
            raise PipelineConfigError("unit_timeout_seconds must be positive")
        for name in self.TOGGLES:
            if not isinstance(getattr(self, name), bool):
                raise PipelineConfigError(f"'{name}' must be a boolean")

    @property
    def artifact_dir(self) -> Path:
        return self.output_dir / "artifacts"

    @property
    def summary_dir(self) -> Path:
        return self.output_dir / "summaries"

    @property
    def log_dir(self) -> Path:
        if self.log_file is not None:
            return self.log_file.parent
        return self.output_dir / "logs"

    @property
    def history_file(self) -> Path:
        return self.output_dir / "run_history.jsonl"

    def is_enabled(self, contract: StageContract) -> bool:
        """Return whether ``contract`` runs under this configuration."""
        if contract.toggle is None:
            return True
        if contract.toggle not in self.TOGGLES:
            raise PipelineConfigError(
                f"Stage '{contract.name}' uses unknown toggle '{contract.toggle}'"
            )
        return getattr(self, contract.toggle)

    def params_for(self, stage_name: str) -> Dict[str, Any]:
        return dict(self.stage_params.get(stage_name, {}))

    def build_units(self) -> List[WorkUnit]:
        """Create work units for configured indications, in configured order."""
        return [
            WorkUnit(
                unit_id=indication,
                sources={
                    name: template.replace("{indication}", indication)
                    for name, template in self.sources.items()
                },
            )
            for indication in self.indications
        ]

    def replace(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a YAML-friendly dictionary."""
        return {
            "output_dir": str(self.output_dir),
            "log_file": str(self.log_file) if self.log_file else None,
            "indications": list(self.indications),
            "sources": dict(self.sources),
            **{name: getattr(self, name) for name in self.TOGGLES},
            "skip_if_done": self.skip_if_done,
            "n_workers": self.n_workers,
            "unit_timeout_seconds": self.unit_timeout_seconds,
            "max_failure_fraction": self.max_failure_fraction,
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "backoff_seconds": self.retry.backoff_seconds,
            },
            "log_level": self.log_level,
            "stage_params": {k: dict(v) for k, v in self.stage_params.items()},
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        base_dir: Optional[PathLike] = None,
    ) -> "PipelineConfig":
        """Create PipelineConfig from dictionary.

        Parameters
        ----------
        data : Dict[str, Any]
            Configuration values, optionally nested under ``pipeline``
        base_dir : PathLike, optional
            Directory that relative ``output_dir``/``log_file`` resolve against

        Raises
        ------
        PipelineConfigError
            If unknown keys are present or values are invalid
        """
        data = dict(data or {})
        if "pipeline" in data:
            data = dict(data["pipeline"] or {})

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise PipelineConfigError(f"Unknown configuration keys: {unknown}")

        if "retry" in data:
            retry = data["retry"] or {}
            if not isinstance(retry, RetryPolicy):
                try:
                    data["retry"] = RetryPolicy(**retry)
                except TypeError as e:
                    raise PipelineConfigError(f"Invalid retry section: {e}") from e

        if base_dir is not None:
            for key in ("output_dir", "log_file"):
                if data.get(key) and not Path(data[key]).is_absolute():
                    data[key] = Path(base_dir) / data[key]

        try:
            return cls(**data)
        except TypeError as e:
            raise PipelineConfigError(str(e)) from e

    @classmethod
    def from_yaml(cls, path: PathLike) -> "PipelineConfig":
        """Load configuration from a YAML file.

        Relative paths resolve against the file's directory.

        Raises
        ------
        FileNotFoundError
            If config file doesn't exist
        PipelineConfigError
            If YAML is malformed or values are invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PipelineConfigError(f"Malformed YAML in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise PipelineConfigError(f"Config root must be a mapping: {config_path}")
        return cls.from_dict(data, base_dir=config_path.parent)
