"""Exception taxonomy for pipeline orchestration.

Soft errors are recorded against a single work unit and never leave the
stage runner. Hard errors (``ArtifactStoreError``) propagate to the
orchestrator and halt the run.
"""

from typing import Iterable, List


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class PipelineConfigError(PipelineError):
    """Invalid pipeline configuration or stage declaration."""


class MissingInputError(PipelineError):
    """A required input artifact is absent for a work unit.

    Parameters
    ----------
    unit_id : str
        Work unit identifier
    missing : Iterable[str]
        Keys of the missing artifacts (``stage/name``)
    """

    def __init__(self, unit_id: str, missing: Iterable[str]):
        self.unit_id = unit_id
        self.missing: List[str] = sorted(missing)
        super().__init__(
            f"Unit '{unit_id}' is missing required inputs: {', '.join(self.missing)}"
        )


class TransformError(PipelineError):
    """A statistical collaborator failed for one work unit."""


class OutputContractViolation(PipelineError):
    """A transform result does not match the stage's declared outputs."""


class ArtifactStoreError(PipelineError):
    """The artifact store is unreachable or holds a corrupt artifact."""


class ArtifactNotFound(ArtifactStoreError):
    """Requested artifact does not exist in the store."""


class FetchError(PipelineError):
    """A remote resource could not be fetched within the retry budget.

    Parameters
    ----------
    url : str
        Resource location
    attempts : int
        Number of attempts made
    reason : str
        Last failure reason
    """

    def __init__(self, url: str, attempts: int, reason: str):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {reason}")
