"""Rate calibration sweep.

Paces the subject at a few fixed test rates in turn, measures the RSA
amplitude of each segment and reports the rate with the strongest response.
The sweep is a tick-driven state machine: the caller supplies the clock and
heart-rate samples, nothing here owns a timer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .cadence import DEFAULT_BPM, CadenceParameters, derive_cadence
from .errors import ConfigurationError
from .prior import ResonancePrior
from .rsa import rsa_amplitude

logger = logging.getLogger(__name__)

TEST_RATES = (4.5, 5.5, 6.5)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class PreparingRate:
    index: int


@dataclass(frozen=True)
class Breathing:
    index: int


@dataclass(frozen=True)
class Analyzing:
    pass


@dataclass(frozen=True)
class Complete:
    best_rate: float


CalibrationState = Union[Idle, PreparingRate, Breathing, Analyzing, Complete]


@dataclass
class CalibrationConfig:
    test_rates: Sequence[float] = TEST_RATES
    segment_duration: float = 30.0  # s of paced breathing per rate
    countdown: float = 3.0  # s before each segment
    rest_duration: float = 3.0  # s between segments
    analysis_delay: float = 1.0  # s

    def __post_init__(self) -> None:
        if len(self.test_rates) == 0:
            raise ConfigurationError("test_rates must not be empty")
        if not self.segment_duration > 0:
            raise ConfigurationError("segment_duration must be positive")


class RateCalibration:
    def __init__(self, cfg: CalibrationConfig | None = None) -> None:
        self.cfg = cfg or CalibrationConfig()
        self.state: CalibrationState = Idle()
        self.rsa_results: list[float] = []
        self._samples: list[float] = []
        self._phase_start = 0.0
        self._phase_duration = 0.0
        self._now = 0.0

    def start(self, now: float) -> CalibrationState:
        self.rsa_results = []
        self._prepare(0, now, self.cfg.countdown)
        return self.state

    def cancel(self) -> CalibrationState:
        self._samples = []
        self.state = Idle()
        return self.state

    def push_heart_rate(self, hr: float) -> bool:
        """Record one HR sample. Only samples taken while breathing count."""
        if isinstance(self.state, Breathing) and math.isfinite(hr) and hr > 0:
            self._samples.append(float(hr))
            return True
        return False

    def tick(self, now: float) -> CalibrationState:
        self._now = now
        elapsed = now - self._phase_start
        state = self.state
        if isinstance(state, PreparingRate) and elapsed >= self._phase_duration:
            self._enter(Breathing(state.index), now, self.cfg.segment_duration)
            self._samples = []
        elif isinstance(state, Breathing) and elapsed >= self._phase_duration:
            self._finish_segment(state.index, now)
        elif isinstance(state, Analyzing) and elapsed >= self._phase_duration:
            self._analyze()
        return self.state

    @property
    def current_rate_index(self) -> Optional[int]:
        if isinstance(self.state, (PreparingRate, Breathing)):
            return self.state.index
        return None

    @property
    def cadence(self) -> CadenceParameters:
        """Rate the renderer should pace at for the current state."""
        k = self.current_rate_index
        if k is not None:
            return derive_cadence(self.cfg.test_rates[k])
        if isinstance(self.state, Complete):
            return derive_cadence(self.state.best_rate)
        return derive_cadence(DEFAULT_BPM)

    @property
    def prior(self) -> Optional[ResonancePrior]:
        """Narrow session prior around the best rate once the sweep is complete."""
        if isinstance(self.state, Complete):
            return ResonancePrior.from_calibrated_rate(self.state.best_rate)
        return None

    @property
    def segment_progress(self) -> float:
        if not isinstance(self.state, Breathing):
            return 0.0
        return min(max((self._now - self._phase_start) / self.cfg.segment_duration, 0.0), 1.0)

    def _finish_segment(self, index: int, now: float) -> None:
        amplitude = rsa_amplitude(self._samples)
        self.rsa_results.append(amplitude)
        logger.info(
            "calibration rate %.2f bpm: rsa=%.2f (%d samples)",
            self.cfg.test_rates[index],
            amplitude,
            len(self._samples),
        )
        self._samples = []
        nxt = index + 1
        if nxt < len(self.cfg.test_rates):
            self._prepare(nxt, now, self.cfg.rest_duration + self.cfg.countdown)
        else:
            self._enter(Analyzing(), now, self.cfg.analysis_delay)

    def _analyze(self) -> None:
        if not self.rsa_results:
            self.state = Idle()
            return
        best = int(np.argmax(self.rsa_results))
        self.state = Complete(float(self.cfg.test_rates[best]))
        logger.info("calibration complete: best rate %.2f bpm", self.state.best_rate)

    def _prepare(self, index: int, now: float, duration: float) -> None:
        self._enter(PreparingRate(index), now, duration)

    def _enter(self, state: CalibrationState, now: float, duration: float) -> None:
        self.state = state
        self._phase_start = now
        self._phase_duration = duration
        self._now = now
