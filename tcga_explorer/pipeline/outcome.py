"""Per-unit outcomes, stage summaries and the pipeline run report."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .artifacts import ArtifactLocation

SUMMARY_COLUMNS = ["unit", "status", "error", "elapsed_seconds"]


class UnitStatus(Enum):
    """Result of running one stage for one work unit."""

    SUCCESS = "success"
    SKIPPED_MISSING_INPUT = "skipped-missing-input"
    FAILED = "failed"
    SKIPPED_ALREADY_DONE = "skipped-already-done"


class PipelineState(Enum):
    """Orchestrator state machine states."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    STAGE_FAILED = "stage-failed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class UnitOutcome:
    """Record of one (stage, unit) execution.

    Attributes
    ----------
    stage : str
        Stage name
    unit_id : str
        Work unit identifier
    status : UnitStatus
        Outcome status
    error : str
        Error detail (empty unless failed or skipped for missing input)
    elapsed_seconds : float
        Wall time spent on the unit
    locations : Tuple[ArtifactLocation, ...]
        Artifacts written on success
    """

    stage: str
    unit_id: str
    status: UnitStatus
    error: str = ""
    elapsed_seconds: float = 0.0
    locations: Tuple[ArtifactLocation, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is UnitStatus.SUCCESS

    def to_row(self) -> Dict[str, Any]:
        return {
            "unit": self.unit_id,
            "status": self.status.value,
            "error": self.error,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass(frozen=True)
class StageSummary:
    """Aggregate of all unit outcomes for one stage run.

    ``outcomes`` keep work-unit enumeration order; ``failed_units`` is
    sorted by unit identifier regardless of completion order.
    """

    stage: str
    outcomes: Tuple[UnitOutcome, ...] = ()
    elapsed_seconds: float = 0.0

    @classmethod
    def from_outcomes(
        cls,
        stage: str,
        outcomes: List[UnitOutcome],
        elapsed_seconds: float = 0.0,
    ) -> "StageSummary":
        return cls(stage=stage, outcomes=tuple(outcomes), elapsed_seconds=elapsed_seconds)

    @property
    def counts(self) -> Dict[UnitStatus, int]:
        counter = Counter(o.status for o in self.outcomes)
        return {status: counter.get(status, 0) for status in UnitStatus}

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return self.counts[UnitStatus.SUCCESS]

    @property
    def failed(self) -> int:
        return self.counts[UnitStatus.FAILED]

    @property
    def skipped(self) -> int:
        return (
            self.counts[UnitStatus.SKIPPED_MISSING_INPUT]
            + self.counts[UnitStatus.SKIPPED_ALREADY_DONE]
        )

    @property
    def eligible(self) -> int:
        """Units whose required inputs were all present."""
        return self.total - self.counts[UnitStatus.SKIPPED_MISSING_INPUT]

    @property
    def failed_units(self) -> List[str]:
        return sorted(o.unit_id for o in self.outcomes if o.status is UnitStatus.FAILED)

    @property
    def failure_fraction(self) -> float:
        return self.failed / self.total if self.total else 0.0

    def outcome_for(self, unit_id: str) -> Optional[UnitOutcome]:
        for outcome in self.outcomes:
            if outcome.unit_id == unit_id:
                return outcome
        return None

    def to_frame(self) -> pd.DataFrame:
        """One row per unit: unit, status, error, elapsed_seconds."""
        return pd.DataFrame([o.to_row() for o in self.outcomes], columns=SUMMARY_COLUMNS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "counts": {status.value: n for status, n in self.counts.items()},
            "failed_units": self.failed_units,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class PipelineReport:
    """Report of a full pipeline run.

    Attributes
    ----------
    run_id : str
        Run identifier
    state : PipelineState
        Terminal state (COMPLETED or STAGE_FAILED)
    failed_stage_index : int, optional
        Index of the halting stage when STAGE_FAILED
    failed_stage : str, optional
        Name of the halting stage when STAGE_FAILED
    fatal_error : str
        Detail of the systemic error that halted the run, if any
    summaries : Dict[str, StageSummary]
        Stage summaries in execution order
    disabled_stages : List[str]
        Stages skipped by configuration
    summary_files : Dict[str, Path]
        Persisted summary CSV per executed stage
    elapsed_seconds : float
        Total wall time
    """

    run_id: str
    state: PipelineState = PipelineState.NOT_STARTED
    failed_stage_index: Optional[int] = None
    failed_stage: Optional[str] = None
    fatal_error: str = ""
    summaries: Dict[str, StageSummary] = field(default_factory=dict)
    disabled_stages: List[str] = field(default_factory=list)
    summary_files: Dict[str, Path] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.COMPLETED

    def to_frame(self) -> pd.DataFrame:
        """Per-stage counts table for display."""
        rows = []
        for name, summary in self.summaries.items():
            rows.append({
                "stage": name,
                "success": summary.succeeded,
                "skipped": summary.skipped,
                "failed": summary.failed,
                "failed_units": ",".join(summary.failed_units),
            })
        return pd.DataFrame(rows, columns=["stage", "success", "skipped", "failed", "failed_units"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "failed_stage_index": self.failed_stage_index,
            "failed_stage": self.failed_stage,
            "fatal_error": self.fatal_error,
            "disabled_stages": list(self.disabled_stages),
            "stages": [summary.to_dict() for summary in self.summaries.values()],
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }
