"""Heart-rate sample preprocessing."""

from __future__ import annotations

from typing import Iterable

import numpy as np


def smooth3(x: np.ndarray) -> np.ndarray:
    """3-point moving average; the two endpoints are left untouched.

    Args:
        x: 1D array.
    """
    x = np.asarray(x, dtype=np.float64)
    y = x.copy()
    if x.size >= 3:
        y[1:-1] = (x[:-2] + x[1:-1] + x[2:]) / 3.0
    return y


def finite_positive(values: Iterable[float]) -> list[float]:
    """Keep the finite, strictly positive entries (HR in BPM, RR in ms)."""
    out: list[float] = []
    for v in values:
        try:
            f = float(v)
        except (TypeError, ValueError):
            continue
        if np.isfinite(f) and f > 0.0:
            out.append(f)
    return out
