"""Configurable stage transforms for engine tests."""

import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd


def small_table(unit_id: str, value: float = 1.0) -> pd.DataFrame:
    """A tiny deterministic table tagged with the unit identifier."""
    return pd.DataFrame(
        {"unit": [unit_id, unit_id], "value": [value, value * 2]},
        index=pd.Index(["a", "b"], name="row"),
    )


class RecordingTransform:
    """Transform that records its calls and returns fixed outputs.

    Parameters
    ----------
    outputs : Callable
        ``outputs(inputs, unit) -> dict`` building the return value
    fail_units : Iterable[str]
        Units for which the transform raises RuntimeError
    delay : float
        Seconds to sleep per call
    """

    def __init__(
        self,
        outputs: Optional[Callable[[Dict[str, Any], Any], Dict[str, Any]]] = None,
        fail_units: Iterable[str] = (),
        delay: float = 0.0,
    ):
        self.outputs = outputs or (lambda inputs, unit: {"table": small_table(unit.unit_id)})
        self.fail_units = set(fail_units)
        self.delay = delay
        self.calls: List[str] = []
        self.received: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __call__(self, inputs: Dict[str, Any], unit) -> Dict[str, Any]:
        with self._lock:
            self.calls.append(unit.unit_id)
            self.received[unit.unit_id] = dict(inputs)
        if self.delay:
            time.sleep(self.delay)
        if unit.unit_id in self.fail_units:
            raise RuntimeError(f"boom in {unit.unit_id}")
        return self.outputs(inputs, unit)
