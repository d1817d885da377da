"""Synthetic heart-rate source for headless runs and tests.

Heart rate oscillates at the paced breathing frequency; the swing follows a
Gaussian tuning curve that peaks at a configurable resonant rate, so the
pacers have something to find.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .hrv import pseudo_rr_interval_ms
from .session import Observation


@dataclass
class SimulatorConfig:
    baseline_hr: float = 68.0  # BPM
    resonance_bpm: float = 6.0  # breathing rate with the largest RSA swing
    peak_amplitude: float = 7.0  # HR swing (BPM) at resonance
    floor_amplitude: float = 1.5  # HR swing far from resonance
    response_width: float = 0.5  # BPM
    noise: float = 1.0  # uniform +/- BPM
    with_rr: bool = True


class HeartRateSimulator:
    """Produces one Observation per ``read`` call.

    The caller owns the clock; ``read(t, bpm)`` returns the sample at session
    time ``t`` while pacing at ``bpm``.
    """

    def __init__(
        self,
        cfg: Optional[SimulatorConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.cfg = cfg or SimulatorConfig()
        self._rng = rng if rng is not None else np.random.default_rng()

    def amplitude_at(self, breathing_bpm: float) -> float:
        c = self.cfg
        d = breathing_bpm - c.resonance_bpm
        gain = math.exp(-(d * d) / (2.0 * c.response_width * c.response_width))
        return c.floor_amplitude + (c.peak_amplitude - c.floor_amplitude) * gain

    def read(self, t: float, breathing_bpm: float) -> Observation:
        c = self.cfg
        f = breathing_bpm / 60.0
        hr = c.baseline_hr + self.amplitude_at(breathing_bpm) * math.sin(2.0 * math.pi * f * t)
        if c.noise > 0:
            hr += float(self._rng.uniform(-c.noise, c.noise))
        rr: tuple[float, ...] = ()
        if c.with_rr:
            value = pseudo_rr_interval_ms(hr)
            rr = (value,) if value is not None else ()
        return Observation(timestamp=t, heart_rate=hr, rr_intervals_ms=rr)
