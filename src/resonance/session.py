"""Session engine: the seam between sensor input and the pacers.

A sensor thread pushes observations; a control loop calls ``tick`` with the
elapsed session time (4-10 Hz is typical). Each tick refreshes RMSSD and
coherence, advances the selected pacer and exposes the resulting cadence.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Sequence

import numpy as np

from .adaptive_pacer import AdaptivePacer, AdaptivePacerConfig
from .bayesian_pacer import BayesianPacer, BayesianPacerConfig
from .cadence import DEFAULT_BPM, CadenceParameters, clamp_bpm
from .coherence import MIN_SAMPLES as COHERENCE_MIN_SAMPLES
from .coherence import coherence
from .errors import ConfigurationError
from .hrv import HrvWindow, pseudo_rr_interval_ms
from .preprocess import finite_positive
from .prior import ResonancePrior

logger = logging.getLogger(__name__)

PACERS = ("bayesian", "adaptive")
MIN_TARGET_DURATION = 60.0


@dataclass
class Observation:
    timestamp: float  # session seconds
    heart_rate: Optional[float] = None  # BPM
    rr_intervals_ms: Sequence[float] = ()


@dataclass
class SessionConfig:
    target_duration: float = 600.0  # s
    starting_bpm: float = DEFAULT_BPM
    pacer: str = "bayesian"  # bayesian | adaptive
    prior: Optional[ResonancePrior] = None
    hr_sample_rate_hz: float = 4.0  # assumed HR sampling for coherence
    coherence_window: int = 120  # samples
    pacer_window_s: float = 30.0  # s of HR handed to the Bayesian pacer
    hrv_window: float = 30.0  # s
    hr_buffer: int = 1200  # samples kept in memory
    derive_rr_from_hr: bool = False

    def __post_init__(self) -> None:
        self.target_duration = max(MIN_TARGET_DURATION, float(self.target_duration))
        self.starting_bpm = clamp_bpm(self.starting_bpm)
        if self.pacer not in PACERS:
            raise ConfigurationError(f"unknown pacer {self.pacer!r}; expected one of {PACERS}")
        if not self.hr_sample_rate_hz > 0:
            raise ConfigurationError("hr_sample_rate_hz must be positive")
        if not self.pacer_window_s > 0:
            raise ConfigurationError("pacer_window_s must be positive")
        if self.hr_buffer < max(self.coherence_window, self.pacer_window_samples):
            raise ConfigurationError("hr_buffer must hold the analysis windows")

    @property
    def pacer_window_samples(self) -> int:
        return max(1, int(round(self.pacer_window_s * self.hr_sample_rate_hz)))


@dataclass
class SessionSnapshot:
    elapsed: float
    heart_rate: float
    rmssd: float
    coherence: float
    breaths_per_minute: float
    inhale_duration: float
    hold_duration: float
    exhale_duration: float
    pacer: str
    phase: str
    estimated_resonance_frequency: Optional[float]
    uncertainty: Optional[float]
    progress: float
    completed: bool


@dataclass
class SessionSummary:
    duration: float
    average_hr: float
    average_rmssd: float
    peak_coherence: float
    resonance_rate: float


@dataclass
class _RunningMean:
    total: float = 0.0
    count: int = 0

    def add(self, v: float) -> None:
        self.total += v
        self.count += 1

    @property
    def value(self) -> float:
        return self.total / self.count if self.count else 0.0


@dataclass
class _Stats:
    hr: _RunningMean = field(default_factory=_RunningMean)
    rmssd: _RunningMean = field(default_factory=_RunningMean)
    peak_coherence: float = 0.0


class SessionEngine:
    def __init__(
        self,
        cfg: SessionConfig | None = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.cfg = cfg or SessionConfig()
        self.hrv = HrvWindow(self.cfg.hrv_window)
        self._lock = threading.Lock()
        self._hr: Deque[float] = deque(maxlen=self.cfg.hr_buffer)
        self._stats = _Stats()
        self.elapsed = 0.0
        self.heart_rate = 0.0
        self.rmssd = 0.0
        self.coherence = 0.0
        self.completed = False
        self.pacer = self._make_pacer(rng)
        self._last_phase = self.pacer_phase

    def _make_pacer(self, rng: Optional[np.random.Generator]) -> AdaptivePacer | BayesianPacer:
        cfg = self.cfg
        if cfg.pacer == "adaptive":
            return AdaptivePacer(AdaptivePacerConfig(starting_bpm=cfg.starting_bpm))
        if cfg.prior is not None:
            pc = BayesianPacerConfig(prior_mean=cfg.prior.mean_bpm, prior_std=cfg.prior.std_bpm)
        else:
            pc = BayesianPacerConfig(prior_mean=cfg.starting_bpm)
        return BayesianPacer(pc, rng=rng)

    # ---- inputs -----------------------------------------------------------

    def push(self, obs: Observation) -> int:
        return self.push_observation(obs.heart_rate, obs.rr_intervals_ms, obs.timestamp)

    def push_observation(
        self,
        heart_rate: Optional[float] = None,
        rr_intervals_ms: Sequence[float] = (),
        timestamp: Optional[float] = None,
    ) -> int:
        """Ingest one sensor sample. Returns the number of values accepted.

        Non-finite or non-positive HR / RR values are dropped here so that
        nothing downstream sees them.
        """
        accepted = 0
        with self._lock:
            ts = self.elapsed if timestamp is None or not math.isfinite(timestamp) else timestamp
            ts = max(self.elapsed, float(ts))
            hr_ok = finite_positive([heart_rate]) if heart_rate is not None else []
            if hr_ok:
                self.heart_rate = hr_ok[0]
                self._hr.append(hr_ok[0])
                self._stats.hr.add(hr_ok[0])
                accepted += 1
            elif heart_rate is not None:
                logger.debug("dropping heart rate %r", heart_rate)
        rr_ok = finite_positive(rr_intervals_ms)
        if not rr_ok and hr_ok and self.cfg.derive_rr_from_hr:
            rr = pseudo_rr_interval_ms(hr_ok[0])
            rr_ok = [rr] if rr is not None else []
        for rr in rr_ok:
            if self.hrv.add_interval(rr, ts):
                accepted += 1
        return accepted

    # ---- control loop -----------------------------------------------------

    def tick(self, elapsed: float) -> SessionSnapshot:
        """Advance the session clock to ``elapsed`` seconds and update the pacer."""
        cfg = self.cfg
        with self._lock:
            if math.isfinite(elapsed):
                self.elapsed = max(self.elapsed, float(elapsed))
            hr = list(self._hr)
        now = self.elapsed

        value = self.hrv.current_rmssd(now)
        if value is not None:
            self.rmssd = value
            self._stats.rmssd.add(value)
        self.hrv.prune(now)

        if len(hr) >= COHERENCE_MIN_SAMPLES:
            self.coherence = coherence(
                hr[-cfg.coherence_window :],
                cfg.hr_sample_rate_hz,
                self.current_cadence.frequency_hz,
            )
            self._stats.peak_coherence = max(self._stats.peak_coherence, self.coherence)

        if isinstance(self.pacer, AdaptivePacer):
            self.pacer.update(self.coherence, now)
        else:
            self.pacer.update(hr[-cfg.pacer_window_samples :], now)

        phase = self.pacer_phase
        if phase != self._last_phase:
            logger.info(
                "t=%.1fs phase %s -> %s at %.2f bpm",
                now,
                self._last_phase,
                phase,
                self.current_cadence.breaths_per_minute,
            )
            self._last_phase = phase

        if not self.completed and now >= cfg.target_duration:
            self.completed = True
            logger.info("target duration %.0fs reached", cfg.target_duration)
        return self.snapshot()

    # ---- outputs ----------------------------------------------------------

    @property
    def current_cadence(self) -> CadenceParameters:
        return self.pacer.current_parameters

    @property
    def pacer_phase(self) -> str:
        return self.pacer.phase.value

    @property
    def estimated_resonance_frequency(self) -> Optional[float]:
        if isinstance(self.pacer, BayesianPacer):
            return self.pacer.estimated_resonance_frequency
        return None

    @property
    def uncertainty(self) -> Optional[float]:
        if isinstance(self.pacer, BayesianPacer):
            return self.pacer.uncertainty
        return None

    def snapshot(self) -> SessionSnapshot:
        c = self.current_cadence
        return SessionSnapshot(
            elapsed=self.elapsed,
            heart_rate=self.heart_rate,
            rmssd=self.rmssd,
            coherence=self.coherence,
            breaths_per_minute=c.breaths_per_minute,
            inhale_duration=c.inhale_duration,
            hold_duration=c.hold_duration,
            exhale_duration=c.exhale_duration,
            pacer=self.cfg.pacer,
            phase=self.pacer_phase,
            estimated_resonance_frequency=self.estimated_resonance_frequency,
            uncertainty=self.uncertainty,
            progress=min(self.elapsed / self.cfg.target_duration, 1.0),
            completed=self.completed,
        )

    def summary(self) -> SessionSummary:
        return SessionSummary(
            duration=self.elapsed,
            average_hr=self._stats.hr.value,
            average_rmssd=self._stats.rmssd.value,
            peak_coherence=max(self._stats.peak_coherence, self.coherence),
            resonance_rate=self.current_cadence.breaths_per_minute,
        )
