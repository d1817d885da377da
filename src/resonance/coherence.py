"""Cardiac coherence score.

Coherence is the share of low-frequency heart-rate power that sits at the
breathing frequency. Power is evaluated by a direct DFT on the LF band bins
only; series are short (a few hundred points) so an FFT buys nothing and the
bin arithmetic stays explicit.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

MIN_SAMPLES = 32
LF_MIN_HZ = 0.04
LF_MAX_HZ = 0.15


def dft_power(x: np.ndarray, bins: np.ndarray) -> np.ndarray:
    """Normalized DFT power |X[k]|^2 / n^2 for the requested bin indices."""
    n = x.size
    idx = np.arange(n, dtype=np.float64)
    angle = 2.0 * np.pi * np.outer(bins.astype(np.float64), idx) / n
    real = np.cos(angle) @ x
    imag = -(np.sin(angle) @ x)
    return (real * real + imag * imag) / float(n * n)


def coherence(
    hr_samples: Sequence[float],
    sample_rate_hz: float,
    breathing_freq_hz: float,
) -> float:
    """Return a 0..1 coherence score for ``breathing_freq_hz``.

    Args:
        hr_samples: evenly sampled heart rate (BPM).
        sample_rate_hz: sampling rate of ``hr_samples``.
        breathing_freq_hz: candidate breathing frequency.

    Returns 0.0 for fewer than MIN_SAMPLES samples, a collapsed band or a
    zero-power series.
    """
    x = np.asarray(hr_samples, dtype=np.float64)
    n = x.size
    if n < MIN_SAMPLES or not sample_rate_hz > 0 or not math.isfinite(breathing_freq_hz):
        return 0.0
    x = x - float(np.mean(x))

    res = sample_rate_hz / n
    min_bin = max(1, int(LF_MIN_HZ / res))
    max_bin = min(n // 2, int(LF_MAX_HZ / res))
    if max_bin <= min_bin:
        return 0.0

    # Half-up rounding to the nearest bin
    target = int(math.floor(breathing_freq_hz / res + 0.5))
    lo = max(min_bin, target - 1)
    hi = min(max_bin, target + 1)

    bins = np.arange(min_bin, max_bin + 1)
    power = dft_power(x, bins)
    total = float(np.sum(power))
    if not math.isfinite(total) or total <= 0.0:
        return 0.0
    in_target = (bins >= lo) & (bins <= hi)
    score = float(np.sum(power[in_target])) / total
    return float(np.clip(score, 0.0, 1.0))
