"""Hill-climbing breathing pacer driven by coherence feedback.

Three phases, selected purely by elapsed session time:

- calibration: hold the starting rate and collect baseline coherence.
- exploration: every few seconds step the rate, reversing direction when
  coherence drops or a rate bound would be crossed.
- resonance_lock: jump to the best rate seen, then make single-step
  corrections when coherence trends down.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque

from .cadence import DEFAULT_BPM, MAX_BPM, MIN_BPM, CadenceParameters, derive_cadence
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_TREND_SAMPLES = 3


class SessionPhase(str, Enum):
    CALIBRATION = "calibration"
    EXPLORATION = "exploration"
    RESONANCE_LOCK = "resonance_lock"


@dataclass
class AdaptivePacerConfig:
    calibration_duration: float = 120.0  # s
    exploration_duration: float = 180.0  # s
    step_size: float = 0.1  # BPM
    adjustment_interval: float = 3.0  # s
    decline_threshold: float = 0.05  # coherence drop over the trend window
    starting_bpm: float = DEFAULT_BPM

    def __post_init__(self) -> None:
        if self.calibration_duration < 0 or self.exploration_duration < 0:
            raise ConfigurationError("phase durations must be >= 0")
        if not self.step_size > 0:
            raise ConfigurationError("step_size must be positive")


class AdaptivePacer:
    def __init__(self, cfg: AdaptivePacerConfig | None = None) -> None:
        self.cfg = cfg or AdaptivePacerConfig()
        self.phase = SessionPhase.CALIBRATION
        self.current_parameters: CadenceParameters = derive_cadence(self.cfg.starting_bpm)
        # (time, coherence, bpm); only the last few entries are ever read
        self._history: Deque[tuple[float, float, float]] = deque(maxlen=_TREND_SAMPLES)
        self.best_coherence = 0.0
        self.best_bpm = self.current_parameters.breaths_per_minute
        self.direction = 1.0
        self._last_adjustment = 0.0

    def update(self, coherence: float, elapsed_time: float) -> CadenceParameters:
        if not (math.isfinite(coherence) and math.isfinite(elapsed_time)):
            return self.current_parameters
        bpm = self.current_parameters.breaths_per_minute
        self._history.append((elapsed_time, coherence, bpm))
        if coherence > self.best_coherence:
            self.best_coherence = coherence
            self.best_bpm = bpm

        cfg = self.cfg
        if elapsed_time <= cfg.calibration_duration:
            self._set_phase(SessionPhase.CALIBRATION)
            return self.current_parameters

        if elapsed_time <= cfg.calibration_duration + cfg.exploration_duration:
            self._set_phase(SessionPhase.EXPLORATION)
            self._explore(coherence, elapsed_time)
            return self.current_parameters

        self._set_phase(SessionPhase.RESONANCE_LOCK)
        self._lock_on(elapsed_time)
        return self.current_parameters

    def _explore(self, coherence: float, elapsed_time: float) -> None:
        cfg = self.cfg
        if elapsed_time - self._last_adjustment < cfg.adjustment_interval:
            return
        prev = self._history[-2][1] if len(self._history) >= 2 else coherence
        if coherence < prev:
            self.direction *= -1.0
        proposed = self.current_parameters.breaths_per_minute + cfg.step_size * self.direction
        if proposed < MIN_BPM or proposed > MAX_BPM:
            self.direction *= -1.0
        self.current_parameters = self.current_parameters.adjusted_by(cfg.step_size * self.direction)
        self._last_adjustment = elapsed_time
        logger.debug("exploring at %.2f bpm", self.current_parameters.breaths_per_minute)

    def _lock_on(self, elapsed_time: float) -> None:
        cfg = self.cfg
        if abs(self.current_parameters.breaths_per_minute - self.best_bpm) > cfg.step_size:
            self.current_parameters = derive_cadence(self.best_bpm)

        if elapsed_time - self._last_adjustment < cfg.adjustment_interval:
            return
        recent = [c for _, c, _ in self._history]
        trend = recent[-1] - recent[0]
        if trend < -cfg.decline_threshold:
            # Nudge along the current direction, then flip it
            self.current_parameters = self.current_parameters.adjusted_by(
                cfg.step_size * self.direction
            )
            self.direction *= -1.0
            self._last_adjustment = elapsed_time
            logger.debug(
                "coherence declining (%.3f); nudged to %.2f bpm",
                trend,
                self.current_parameters.breaths_per_minute,
            )

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase is not self.phase:
            logger.info("adaptive pacer: %s -> %s", self.phase.value, phase.value)
            self.phase = phase
