"""Per-unit and per-stage execution with failure isolation."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ArtifactStoreError, MissingInputError, TransformError
from .outcome import StageSummary, UnitOutcome, UnitStatus
from .stage import StageContract, WorkUnit


class UnitRunner:
    """Runs one stage for one work unit.

    Validates inputs, honours the skip-if-done resume policy, invokes the
    transform once, checks the result against the declared outputs and
    persists them. Collaborator errors become ``failed`` outcomes;
    ``ArtifactStoreError`` propagates.

    Parameters
    ----------
    skip_if_done : bool
        Skip units whose declared outputs already exist
    timeout_seconds : float, optional
        Upper bound on a single transform invocation
    run_id : str, optional
        Identifier recorded in artifact lineage
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        skip_if_done: bool = True,
        timeout_seconds: Optional[float] = None,
        run_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.skip_if_done = skip_if_done
        self.timeout_seconds = timeout_seconds
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.logger = logger or logging.getLogger(__name__)

    def run(self, contract: StageContract, unit: WorkUnit, store) -> UnitOutcome:
        start_time = time.time()

        def outcome(status: UnitStatus, error: str = "", locations=()) -> UnitOutcome:
            return UnitOutcome(
                stage=contract.name,
                unit_id=unit.unit_id,
                status=status,
                error=error,
                elapsed_seconds=time.time() - start_time,
                locations=tuple(locations),
            )

        missing = contract.validate(unit, store)
        if missing:
            error = MissingInputError(unit.unit_id, [ref.key for ref in missing])
            return outcome(UnitStatus.SKIPPED_MISSING_INPUT, str(error))

        if self.skip_if_done and contract.is_done(unit, store):
            return outcome(UnitStatus.SKIPPED_ALREADY_DONE)

        try:
            inputs = contract.resolve_inputs(unit, store)
        except MissingInputError as e:
            return outcome(UnitStatus.SKIPPED_MISSING_INPUT, str(e))

        try:
            result = self._invoke(contract, inputs, unit)
            values = contract.check_outputs(result)
            locations = store.put_many(contract.name, unit.unit_id, values)
        except ArtifactStoreError:
            raise
        except Exception as e:
            return outcome(UnitStatus.FAILED, f"{type(e).__name__}: {e}")

        store.write_lineage(
            contract.name,
            unit.unit_id,
            {
                "run_id": self.run_id,
                "stage": contract.name,
                "unit": unit.unit_id,
                "created_at": datetime.now().isoformat(),
                "inputs": {
                    ref.key: str(store.root / ref.stage / unit.unit_id / ref.spec.filename)
                    for ref in contract.requires + contract.optional_inputs
                    if ref.name in inputs
                },
                "outputs": [loc.to_dict() for loc in locations],
            },
        )
        return outcome(UnitStatus.SUCCESS, locations=locations)

    def _invoke(
        self,
        contract: StageContract,
        inputs: Dict[str, Any],
        unit: WorkUnit,
    ) -> Mapping[str, Any]:
        """Call the transform once, bounded by ``timeout_seconds`` if set."""
        if self.timeout_seconds is None:
            return contract.transform(inputs, unit)

        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(contract.transform, inputs, unit)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError:
                raise TransformError(
                    f"Transform for stage '{contract.name}' timed out after "
                    f"{self.timeout_seconds:.1f}s"
                ) from None
        finally:
            executor.shutdown(wait=False)


class StageRunner:
    """Runs a stage contract across all work units.

    Units are independent: a failure or skip for one never affects another.
    With ``n_workers > 1`` units run on a thread pool; outcomes are still
    reported in enumeration order.

    Parameters
    ----------
    unit_runner : UnitRunner, optional
        Per-unit executor. If None, uses defaults.
    n_workers : int
        Number of worker threads (1 = sequential)
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.

    Example
    -------
    >>> runner = StageRunner(UnitRunner(skip_if_done=True), n_workers=4)
    >>> summary = runner.run(contract, units, store)
    >>> summary.failed_units
    ['LUAD']
    """

    def __init__(
        self,
        unit_runner: Optional[UnitRunner] = None,
        n_workers: int = 1,
        logger: Optional[logging.Logger] = None,
    ):
        self.unit_runner = unit_runner or UnitRunner()
        self.n_workers = max(1, int(n_workers))
        self.logger = logger or logging.getLogger(__name__)

    def run(
        self,
        contract: StageContract,
        units: Sequence[WorkUnit],
        store,
    ) -> StageSummary:
        """Execute ``contract`` for every unit and summarize.

        Raises
        ------
        ArtifactStoreError
            If the store itself fails; per-unit errors never raise
        """
        unit_ids = [u.unit_id for u in units]
        if len(set(unit_ids)) != len(unit_ids):
            raise ValueError(f"Duplicate work units for stage '{contract.name}': {unit_ids}")

        start_time = time.time()

        if self.n_workers == 1 or len(units) <= 1:
            outcomes = []
            for unit in units:
                result = self.unit_runner.run(contract, unit, store)
                self._log_outcome(result)
                outcomes.append(result)
        else:
            slots: List[Optional[UnitOutcome]] = [None] * len(units)
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                futures = {
                    executor.submit(self.unit_runner.run, contract, unit, store): i
                    for i, unit in enumerate(units)
                }
                for future in as_completed(futures):
                    result = future.result()
                    self._log_outcome(result)
                    slots[futures[future]] = result
            outcomes = list(slots)

        summary = StageSummary.from_outcomes(
            contract.name, outcomes, elapsed_seconds=time.time() - start_time
        )
        self.logger.info(
            "Stage %s: %d succeeded, %d skipped, %d failed",
            contract.name,
            summary.succeeded,
            summary.skipped,
            summary.failed,
        )
        return summary

    def _log_outcome(self, outcome: UnitOutcome) -> None:
        if outcome.status is UnitStatus.FAILED:
            self.logger.error(
                "[%s] %s failed: %s", outcome.stage, outcome.unit_id, outcome.error
            )
        elif outcome.status is UnitStatus.SKIPPED_MISSING_INPUT:
            self.logger.warning(
                "[%s] %s skipped: %s", outcome.stage, outcome.unit_id, outcome.error
            )
        else:
            self.logger.info(
                "[%s] %s %s in %.1fs",
                outcome.stage,
                outcome.unit_id,
                outcome.status.value,
                outcome.elapsed_seconds,
            )
