"""Stage contracts and work units for pipeline execution."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set

from .artifacts import ArtifactRef, ArtifactSpec
from .errors import MissingInputError, OutputContractViolation, PipelineConfigError

Transform = Callable[[Dict[str, Any], "WorkUnit"], Mapping[str, Any]]


@dataclass(frozen=True)
class WorkUnit:
    """One cohort (indication) processed independently through a stage.

    Attributes
    ----------
    unit_id : str
        Cohort identifier (e.g., "BRCA")
    sources : Mapping[str, str]
        Raw input locations keyed by artifact name (URL or local path)
    """

    unit_id: str
    sources: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))


@dataclass
class StageContract:
    """Declarative description of one pipeline stage.

    Attributes
    ----------
    name : str
        Stage identifier, also the artifact namespace (e.g., "preprocessing")
    transform : Transform
        Callable ``transform(inputs, unit) -> outputs``
    requires : List[ArtifactRef]
        Ordered required input artifacts
    produces : List[ArtifactSpec]
        Artifacts the transform must return
    optional_inputs : List[ArtifactRef]
        Inputs passed to the transform only when present
    toggle : str, optional
        PipelineConfig flag gating the stage (None = always enabled)
    source : bool
        Stage publishes raw data; its artifacts stay visible downstream
        even when the stage itself is disabled
    description : str
        Human-readable stage name

    Example
    -------
    >>> contract = StageContract(
    ...     name="differential_expression",
    ...     transform=run_de,
    ...     requires=[ArtifactRef("preprocessing", NORMALIZED)],
    ...     produces=[ArtifactSpec("de_results", ContentType.TABLE)],
    ...     toggle="perform_de_analysis",
    ... )
    >>> missing = contract.validate(unit, store)
    """

    name: str
    transform: Transform
    requires: List[ArtifactRef] = field(default_factory=list)
    produces: List[ArtifactSpec] = field(default_factory=list)
    optional_inputs: List[ArtifactRef] = field(default_factory=list)
    toggle: Optional[str] = None
    source: bool = False
    description: str = ""

    def __post_init__(self):
        input_names = [ref.name for ref in self.requires + self.optional_inputs]
        duplicates = {n for n in input_names if input_names.count(n) > 1}
        if duplicates:
            raise PipelineConfigError(
                f"Stage '{self.name}' declares duplicate input names: {sorted(duplicates)}"
            )
        output_names = [spec.name for spec in self.produces]
        if len(set(output_names)) != len(output_names):
            raise PipelineConfigError(f"Stage '{self.name}' declares duplicate outputs")
        if not self.description:
            self.description = self.name.replace("_", " ").title()

    def validate(self, unit: WorkUnit, store) -> Set[ArtifactRef]:
        """Return the required inputs not present for ``unit``.

        An empty set means the unit is eligible to run this stage.
        """
        return {
            ref
            for ref in self.requires
            if not store.exists(ref.stage, unit.unit_id, ref.spec)
        }

    def is_done(self, unit: WorkUnit, store) -> bool:
        """True if every declared output already exists for ``unit``."""
        return bool(self.produces) and all(
            store.exists(self.name, unit.unit_id, spec) for spec in self.produces
        )

    def resolve_inputs(self, unit: WorkUnit, store) -> Dict[str, Any]:
        """Load required and available optional inputs for ``unit``.

        Raises
        ------
        MissingInputError
            If any required input is absent
        """
        missing = self.validate(unit, store)
        if missing:
            raise MissingInputError(unit.unit_id, [ref.key for ref in missing])

        inputs = {ref.name: store.get(ref.stage, unit.unit_id, ref.spec) for ref in self.requires}
        for ref in self.optional_inputs:
            if store.exists(ref.stage, unit.unit_id, ref.spec):
                inputs[ref.name] = store.get(ref.stage, unit.unit_id, ref.spec)
        return inputs

    def check_outputs(self, result: Any) -> Dict[ArtifactSpec, Any]:
        """Match a transform result against the declared outputs.

        Returns
        -------
        Dict[ArtifactSpec, Any]
            Declared output spec mapped to its value

        Raises
        ------
        OutputContractViolation
            If the result is not a mapping, lacks a declared output,
            or holds a value of the wrong content type
        """
        if not isinstance(result, Mapping):
            raise OutputContractViolation(
                f"Stage '{self.name}' transform returned {type(result).__name__}, expected a mapping"
            )

        missing = [spec.name for spec in self.produces if spec.name not in result]
        if missing:
            raise OutputContractViolation(
                f"Stage '{self.name}' result is missing declared outputs: {missing}"
            )

        checked = {}
        for spec in self.produces:
            value = result[spec.name]
            if not spec.content_type.accepts(value):
                raise OutputContractViolation(
                    f"Output '{spec.name}' of stage '{self.name}' is "
                    f"{type(value).__name__}, not valid {spec.content_type.name} content"
                )
            checked[spec] = value
        return checked

    def to_dict(self) -> Dict[str, Any]:
        """Convert contract to a serializable description."""
        return {
            "name": self.name,
            "description": self.description,
            "requires": [ref.key for ref in self.requires],
            "optional_inputs": [ref.key for ref in self.optional_inputs],
            "produces": [spec.filename for spec in self.produces],
            "toggle": self.toggle,
            "source": self.source,
        }


def validate_stage_order(stages: Sequence[StageContract]) -> None:
    """Check that stage names are unique and inputs come from earlier stages.

    Raises
    ------
    PipelineConfigError
        On duplicate names, or inputs referencing unknown or later stages
    """
    errors = []
    seen: Dict[str, StageContract] = {}

    for stage in stages:
        if stage.name in seen:
            errors.append(f"Duplicate stage name '{stage.name}'")
            continue

        for ref in stage.requires + stage.optional_inputs:
            producer = seen.get(ref.stage)
            if producer is None:
                errors.append(
                    f"Stage '{stage.name}' depends on unknown or later stage '{ref.stage}'"
                )
            elif ref.spec not in producer.produces:
                errors.append(
                    f"Stage '{stage.name}' requires '{ref.key}' which '{ref.stage}' does not produce"
                )
        seen[stage.name] = stage

    if errors:
        raise PipelineConfigError("; ".join(errors))
