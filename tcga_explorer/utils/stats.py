"""Statistical utilities for tcga-explorer.

Provides multiple-testing correction, per-gene standardization and
survival concordance.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np
import pandas as pd

ArrayLike = Union[Iterable[float], np.ndarray]


def benjamini_hochberg(p_values: ArrayLike) -> np.ndarray:
    """Benjamini-Hochberg adjusted p-values.

    NaN inputs stay NaN and are excluded from the number of tests.

    Parameters
    ----------
    p_values : ArrayLike
        Raw p-values.

    Returns
    -------
    np.ndarray
        Adjusted p-values, clipped to [0, 1].
    """
    p = np.asarray(list(p_values), dtype=float)
    adjusted = np.full(p.shape, np.nan)
    valid = np.isfinite(p)
    n = int(valid.sum())
    if n == 0:
        return adjusted

    pv = p[valid]
    order = np.argsort(pv)
    ranked = pv[order] * n / np.arange(1, n + 1)
    # Enforce monotonicity from the largest p-value down
    ranked = np.minimum.accumulate(ranked[::-1])[::-1]
    result = np.empty(n)
    result[order] = np.clip(ranked, 0.0, 1.0)
    adjusted[valid] = result
    return adjusted


def zscore_rows(df: pd.DataFrame) -> pd.DataFrame:
    """Standardize each row (gene) across columns (samples).

    Rows with zero variance become 0.
    """
    mean = df.mean(axis=1)
    std = df.std(axis=1, ddof=0).replace(0, np.nan)
    return df.sub(mean, axis=0).div(std, axis=0).fillna(0.0)


def concordance_index(time: ArrayLike, event: ArrayLike, risk: ArrayLike) -> float:
    """Harrell's concordance index for right-censored survival data.

    A pair is comparable when the subject with the shorter time had an
    event; it is concordant when that subject also has the higher risk.
    Risk ties count one half.

    Parameters
    ----------
    time : ArrayLike
        Follow-up times.
    event : ArrayLike
        1 if the event was observed, 0 if censored.
    risk : ArrayLike
        Predicted risk (higher = shorter expected survival).

    Returns
    -------
    float
        C-index in [0, 1], or NaN if no pair is comparable.
    """
    t = np.asarray(list(time), dtype=float)
    e = np.asarray(list(event), dtype=float)
    r = np.asarray(list(risk), dtype=float)

    comparable = (t[:, None] < t[None, :]) & (e[:, None] == 1)
    n_comparable = comparable.sum()
    if n_comparable == 0:
        return float("nan")

    concordant = ((r[:, None] > r[None, :]) & comparable).sum()
    tied = ((r[:, None] == r[None, :]) & comparable).sum()
    return float((concordant + 0.5 * tied) / n_comparable)
