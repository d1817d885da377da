"""Respiratory sinus arrhythmia (RSA) amplitude.

Peak-to-trough swing of a lightly smoothed heart-rate segment. Larger swings
mean stronger entrainment between breathing and heart rate at the paced rate.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .preprocess import smooth3

MIN_SAMPLES = 8


def rsa_amplitude(hr_samples: Sequence[float]) -> float:
    """Return mean(peaks) - mean(troughs) of the smoothed HR, floored at 0.

    A peak exceeds its left neighbour and is >= its right neighbour; troughs
    mirror that. Returns 0.0 for fewer than MIN_SAMPLES samples or when no
    peak or no trough is found.
    """
    x = np.asarray(hr_samples, dtype=np.float64)
    if x.size < MIN_SAMPLES:
        return 0.0
    s = smooth3(x)
    left, mid, right = s[:-2], s[1:-1], s[2:]
    peaks = mid[(mid > left) & (mid >= right)]
    troughs = mid[(mid < left) & (mid <= right)]
    if peaks.size == 0 or troughs.size == 0:
        return 0.0
    return float(max(float(np.mean(peaks)) - float(np.mean(troughs)), 0.0))
