"""Resonance-frequency prior from a resting beat-to-beat recording.

The instantaneous heart rate of a resting RR series is analysed with a
Lomb-Scargle periodogram over the LF band; its dominant oscillation is taken
as a first guess of the subject's resonant breathing rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .hrv import MAX_RR_MS, MIN_RR_MS
from .lombscargle import periodogram

MIN_INTERVALS = 10
PRIOR_MIN_BPM = 4.0
PRIOR_MAX_BPM = 7.5
CALIBRATED_STD_BPM = 0.2


@dataclass(frozen=True)
class ResonancePrior:
    mean_bpm: float
    std_bpm: float

    @classmethod
    def from_calibrated_rate(cls, rate_bpm: float) -> "ResonancePrior":
        """Narrow prior around a rate measured by a calibration sweep."""
        return cls(float(rate_bpm), CALIBRATED_STD_BPM)


def prior_from_rr_intervals(
    rr_intervals_ms: Sequence[float],
    freq_step: float = 0.002,
    std_bpm: float = 0.3,
) -> Optional[ResonancePrior]:
    """Estimate a prior from RR intervals (ms), or None if the data are unusable."""
    rr = np.asarray(rr_intervals_ms, dtype=np.float64)
    rr = rr[np.isfinite(rr) & (rr > MIN_RR_MS) & (rr < MAX_RR_MS)]
    if rr.size < MIN_INTERVALS:
        return None
    # Beat onset times: each interval starts where the previous one ended
    timestamps = np.concatenate(([0.0], np.cumsum(rr / 1000.0)[:-1]))
    hr = 60_000.0 / rr
    result = periodogram(timestamps, hr, 0.04, 0.15, freq_step)
    if result.peak_power <= 0.0:
        return None
    bpm = result.peak_frequency * 60.0
    if not PRIOR_MIN_BPM <= bpm <= PRIOR_MAX_BPM:
        return None
    return ResonancePrior(bpm, float(std_bpm))
