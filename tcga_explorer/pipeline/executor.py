"""Pipeline orchestration: stage sequencing with a continuation policy."""

import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from tcga_explorer.io.logging import log_json
from tcga_explorer.io.tables import write_dataframe

from .artifacts import ArtifactStore
from .config import PipelineConfig
from .errors import ArtifactStoreError, PipelineConfigError
from .logger import PipelineLogger
from .outcome import PipelineReport, PipelineState, StageSummary, UnitStatus
from .runner import StageRunner, UnitRunner
from .stage import StageContract, WorkUnit, validate_stage_order


class PipelineOrchestrator:
    """Runs an ordered list of stage contracts over all work units.

    States move NOT_STARTED -> RUNNING(i) -> ... -> COMPLETED, or halt in
    STAGE_FAILED(i) when a stage's failure fraction reaches
    ``config.max_failure_fraction`` or the artifact store fails. Disabled
    stages are skipped and their artifacts hidden from later stages, except
    for source stages whose raw data stays visible. Within a run, a unit's
    artifacts from an executed stage are visible downstream only if that
    stage succeeded or confirmed them as already done for the unit.

    Parameters
    ----------
    config : PipelineConfig
        Immutable run configuration
    stages : Sequence[StageContract]
        Stages in execution order
    store : ArtifactStore, optional
        Artifact store (default: ``config.artifact_dir``)
    logger : PipelineLogger, optional
        Logging sink. If None, messages go through the handlers already
        attached to the ``tcga_explorer`` logger, which are left untouched.

    Attributes
    ----------
    state : PipelineState
        Current state
    stage_index : int, optional
        Index of the running (or failed) stage
    run_id : str
        Identifier of this run

    Example
    -------
    >>> config = PipelineConfig.from_yaml("pipeline.yaml")
    >>> orchestrator = PipelineOrchestrator(config, build_stages(config))
    >>> report = orchestrator.run()
    >>> report.state
    <PipelineState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        config: PipelineConfig,
        stages: Sequence[StageContract],
        store: Optional[ArtifactStore] = None,
        logger: Optional[PipelineLogger] = None,
    ):
        validate_stage_order(stages)
        self.config = config
        self.stages: List[StageContract] = list(stages)
        self.store = store or ArtifactStore(config.artifact_dir)
        self.logger = logger or PipelineLogger(
            str(config.log_dir), log_level=config.log_level, console=False
        )
        self.run_id = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
        self.state = PipelineState.NOT_STARTED
        self.stage_index: Optional[int] = None
        self.stage_runner = StageRunner(
            UnitRunner(
                skip_if_done=config.skip_if_done,
                timeout_seconds=config.unit_timeout_seconds,
                run_id=self.run_id,
            ),
            n_workers=config.n_workers,
        )

    def get_stage(self, name: str) -> StageContract:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise PipelineConfigError(
            f"Unknown stage '{name}'. Available: {[s.name for s in self.stages]}"
        )

    def plan(self) -> List[Tuple[StageContract, bool]]:
        """Stages in order with whether each is enabled."""
        return [(stage, self.config.is_enabled(stage)) for stage in self.stages]

    def enumerate_units(self, store=None) -> List[WorkUnit]:
        """Determine work units for a stage run.

        Configured indications are used in order; otherwise units are the
        sorted set of cohorts with raw data in the source stages.
        """
        if self.config.indications:
            return self.config.build_units()

        store = store if store is not None else self.store
        discovered = set()
        for stage in self.stages:
            if stage.source:
                discovered.update(store.list_units(stage.name))
        return [WorkUnit(unit_id=unit_id) for unit_id in sorted(discovered)]

    def _transition(self, state: PipelineState, index: Optional[int] = None) -> None:
        def label(s: PipelineState, i: Optional[int]) -> str:
            return f"{s.value}({i})" if i is not None else s.value

        self.logger.log_transition(label(self.state, self.stage_index), label(state, index))
        self.state = state
        self.stage_index = index

    def _should_halt(self, summary: StageSummary) -> bool:
        return summary.total > 0 and summary.failure_fraction >= self.config.max_failure_fraction

    def _execute(self, index: int, contract: StageContract, store) -> StageSummary:
        units = self.enumerate_units(store)
        self.logger.log_stage_start(index, contract.name, len(units))
        summary = self.stage_runner.run(contract, units, store)
        self.logger.log_stage_complete(contract.name, summary.elapsed_seconds)
        return summary

    def write_summary(self, summary: StageSummary) -> Path:
        """Persist one row per unit for a stage run.

        Raises
        ------
        ArtifactStoreError
            If the summary file cannot be written
        """
        path = self.config.summary_dir / f"{summary.stage}_summary.csv"
        try:
            return write_dataframe(summary.to_frame(), path, index=False)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to write stage summary {path}: {e}") from e

    def write_history(self, report: PipelineReport) -> None:
        """Append the run record to ``run_history.jsonl``.

        Raises
        ------
        ArtifactStoreError
            If the history file cannot be written
        """
        try:
            log_json(self.config.history_file, {
                "timestamp": datetime.now().isoformat(),
                **report.to_dict(),
            })
        except OSError as e:
            raise ArtifactStoreError(
                f"Failed to append run history {self.config.history_file}: {e}"
            ) from e

    @staticmethod
    def unproduced_units(summary: StageSummary) -> Set[str]:
        """Units whose artifacts for this stage were not confirmed by the run."""
        kept = (UnitStatus.SUCCESS, UnitStatus.SKIPPED_ALREADY_DONE)
        return {o.unit_id for o in summary.outcomes if o.status not in kept}

    def run(self) -> PipelineReport:
        """Execute all enabled stages in order.

        Returns
        -------
        PipelineReport
            Terminal state, per-stage summaries and elapsed time
        """
        start_time = time.time()
        report = PipelineReport(run_id=self.run_id)
        visible = set()
        hidden: Dict[str, Set[str]] = {}

        self.logger.log_info(
            f"Pipeline execution plan: {' -> '.join(s.name for s in self.stages)}"
        )
        self._transition(PipelineState.RUNNING, 0)

        for index, contract in enumerate(self.stages):
            if index != self.stage_index:
                self._transition(PipelineState.RUNNING, index)

            if not self.config.is_enabled(contract):
                self.logger.log_stage_skipped(contract.name, f"disabled by '{contract.toggle}'")
                report.disabled_stages.append(contract.name)
                if contract.source:
                    visible.add(contract.name)
                continue

            visible.add(contract.name)
            try:
                summary = self._execute(
                    index, contract, self.store.restricted(visible, hidden)
                )
                report.summaries[contract.name] = summary
                report.summary_files[contract.name] = self.write_summary(summary)
            except ArtifactStoreError as e:
                self.logger.log_stage_error(contract.name, f"artifact store failure: {e}")
                report.fatal_error = str(e)
                report.failed_stage_index, report.failed_stage = index, contract.name
                self._transition(PipelineState.STAGE_FAILED, index)
                break

            # Older outputs of units this stage failed or skipped stay unread
            hidden[contract.name] = self.unproduced_units(summary)

            if self._should_halt(summary):
                self.logger.log_stage_error(
                    contract.name,
                    f"{summary.failed}/{summary.total} units failed; halting pipeline",
                )
                report.failed_stage_index, report.failed_stage = index, contract.name
                self._transition(PipelineState.STAGE_FAILED, index)
                break
        else:
            self._transition(PipelineState.COMPLETED)

        report.state = self.state
        report.elapsed_seconds = time.time() - start_time
        self.write_history(report)

        if report.succeeded:
            self.logger.log_info(
                f"Pipeline completed in {PipelineLogger.format_duration(report.elapsed_seconds)}"
            )
        else:
            self.logger.log_error(f"Pipeline halted at stage {report.failed_stage}")
        return report

    def run_stage(self, name: str) -> StageSummary:
        """Run a single stage against whatever artifacts already exist.

        Raises
        ------
        PipelineConfigError
            If the stage is unknown
        ArtifactStoreError
            If the artifact store fails
        """
        contract = self.get_stage(name)
        index = self.stages.index(contract)
        summary = self._execute(index, contract, self.store)
        self.write_summary(summary)
        return summary

    def status(self) -> pd.DataFrame:
        """Unit x stage table of completed stage outputs."""
        units = self.enumerate_units()
        data: Dict[str, List[bool]] = {
            stage.name: [stage.is_done(unit, self.store) for unit in units]
            for stage in self.stages
        }
        return pd.DataFrame(data, index=pd.Index([u.unit_id for u in units], name="unit"))
