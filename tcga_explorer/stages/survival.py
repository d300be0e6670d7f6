"""Survival risk modelling.

Risk scores are built without fitting a Cox model:
each feature is standardized and screened by its univariate concordance
with survival, and the strongest features are combined into a signed,
weighted risk score.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from tcga_explorer.pipeline.errors import TransformError
from tcga_explorer.pipeline.stage import WorkUnit
from tcga_explorer.utils.stats import concordance_index


@dataclass
class RiskModel:
    """Linear risk score over standardized features.

    Attributes
    ----------
    features : List[str]
        Feature columns, in model order
    weights : List[float]
        Signed weight per feature (positive = higher value, higher risk)
    means : List[float]
        Training means used for standardization
    stds : List[float]
        Training standard deviations used for standardization
    univariate_cindex : Dict[str, float]
        Screening concordance of every candidate feature
    """

    features: List[str]
    weights: List[float]
    means: List[float]
    stds: List[float]
    univariate_cindex: Dict[str, float] = field(default_factory=dict)

    def predict(self, frame: pd.DataFrame) -> pd.Series:
        """Risk score per row of ``frame``."""
        missing = [f for f in self.features if f not in frame.columns]
        if missing:
            raise KeyError(f"Missing model features: {missing}")
        values = frame[self.features].to_numpy(dtype=float)
        z = (values - np.asarray(self.means)) / np.asarray(self.stds)
        z = np.nan_to_num(z, nan=0.0)
        return pd.Series(z @ np.asarray(self.weights), index=frame.index, name="risk_score")


def _finite(value: float) -> Optional[float]:
    return None if value is None or not math.isfinite(value) else float(value)


class SurvivalModelBuilder:
    """Fit and score a univariate-screening risk model.

    Parameters
    ----------
    max_features : int
        Number of features kept after screening
    min_events : int
        Minimum observed events required to fit
    logger : logging.Logger, optional
        Logger instance. If None, uses module logger.
    """

    def __init__(
        self,
        max_features: int = 10,
        min_events: int = 5,
        logger: Optional[logging.Logger] = None,
    ):
        self.max_features = max(1, int(max_features))
        self.min_events = max(1, int(min_events))
        self.logger = logger or logging.getLogger(__name__)

    def fit(self, matrix: pd.DataFrame) -> RiskModel:
        time = matrix["time"].to_numpy(dtype=float)
        event = matrix["event"].to_numpy(dtype=float)
        candidates = matrix.drop(columns=["time", "event"]).apply(pd.to_numeric, errors="coerce")

        means = candidates.mean(axis=0)
        stds = candidates.std(axis=0, ddof=0)
        usable = stds[stds > 0].index
        if len(usable) == 0:
            raise TransformError("No feature varies across samples")

        screening: Dict[str, float] = {}
        for column in usable:
            values = candidates[column].fillna(means[column]).to_numpy()
            screening[column] = concordance_index(time, event, values)

        ranked = sorted(
            (c for c in screening if math.isfinite(screening[c])),
            key=lambda c: abs(screening[c] - 0.5),
            reverse=True,
        )
        selected = ranked[: self.max_features]
        if not selected:
            raise TransformError("No comparable survival pairs; cannot screen features")

        # Weight 2|C - 0.5| lies in [0, 1]; the sign follows the direction of association
        weights = [2.0 * (screening[c] - 0.5) for c in selected]
        return RiskModel(
            features=list(selected),
            weights=weights,
            means=[float(means[c]) for c in selected],
            stds=[float(stds[c]) for c in selected],
            univariate_cindex={c: float(v) for c, v in screening.items()},
        )

    def __call__(self, inputs: Dict[str, Any], unit: WorkUnit) -> Dict[str, Any]:
        matrix = inputs["feature_matrix"]
        for column in ("time", "event"):
            if column not in matrix.columns:
                raise TransformError(f"{unit.unit_id}: feature matrix lacks '{column}'")
        matrix = matrix.dropna(subset=["time", "event"])

        n_events = int((matrix["event"] > 0).sum())
        if n_events < self.min_events:
            raise TransformError(
                f"{unit.unit_id}: {n_events} events, at least {self.min_events} required"
            )

        model = self.fit(matrix)
        risk = model.predict(matrix)
        c_index = concordance_index(matrix["time"], matrix["event"], risk)

        risk_scores = pd.DataFrame(
            {
                "risk_score": risk,
                "risk_group": np.where(risk > risk.median(), "high", "low"),
                "time": matrix["time"],
                "event": matrix["event"].astype(int),
            },
            index=matrix.index,
        )
        risk_scores.index.name = "sample"

        metrics = {
            "unit": unit.unit_id,
            "c_index": _finite(c_index),
            "n_samples": int(len(matrix)),
            "n_events": n_events,
            "n_candidates": int(len(model.univariate_cindex)),
            "features": list(model.features),
            "weights": [float(w) for w in model.weights],
        }
        self.logger.info(
            "%s: risk model on %d features, C-index %.3f (%d samples, %d events)",
            unit.unit_id,
            len(model.features),
            c_index,
            len(matrix),
            n_events,
        )
        return {"model": model, "risk_scores": risk_scores, "metrics": metrics}
