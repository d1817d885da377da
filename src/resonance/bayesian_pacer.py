"""Bayesian breathing pacer: particle filter belief plus UCB1 exploration.

Every observation interval the RSA amplitude of the recent heart-rate window
is fed to the particle filter (together with the rate it was paced at) and to
the bandit as a reward. While the filter is uncertain the bandit picks the
next rate; once uncertainty drops below the threshold the cadence is pinned to
the filter estimate. The phase is recomputed on every observation, so a
destabilizing observation can move the pacer from converged back to exploring.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from .bandit import UcbRateSelector
from .cadence import DEFAULT_BPM, CadenceParameters, derive_cadence
from .errors import ConfigurationError
from .particle_filter import FilterConfig, FilterState, ResonanceParticleFilter
from .rsa import rsa_amplitude

logger = logging.getLogger(__name__)


class PacerPhase(str, Enum):
    WARMUP = "warmup"
    EXPLORING = "exploring"
    CONVERGED = "converged"


@dataclass
class BayesianPacerConfig:
    prior_mean: float = DEFAULT_BPM
    prior_std: float = 0.75
    warmup_duration: float = 60.0  # s
    convergence_threshold: float = 0.08  # BPM (filter std)
    observation_interval: float = 30.0  # s
    exploration_constant: float = 1.0

    def __post_init__(self) -> None:
        if not self.prior_std > 0:
            raise ConfigurationError("prior_std must be positive")
        if self.warmup_duration < 0 or self.observation_interval < 0:
            raise ConfigurationError("durations must be >= 0")
        if not math.isfinite(self.prior_mean):
            raise ConfigurationError("prior_mean must be finite")


class BayesianPacer:
    def __init__(
        self,
        cfg: BayesianPacerConfig | None = None,
        rng: Optional[np.random.Generator] = None,
        particle_filter: ResonanceParticleFilter | None = None,
        rate_selector: UcbRateSelector | None = None,
    ) -> None:
        self.cfg = cfg or BayesianPacerConfig()
        rng = rng if rng is not None else np.random.default_rng()
        self.particle_filter = particle_filter or ResonanceParticleFilter(
            FilterConfig(prior_mean=self.cfg.prior_mean, prior_std=self.cfg.prior_std), rng=rng
        )
        self.rate_selector = rate_selector or UcbRateSelector(rng=rng)
        self.phase = PacerPhase.WARMUP
        self.current_parameters: CadenceParameters = derive_cadence(self.cfg.prior_mean)
        self.last_amplitude = 0.0
        self._last_observation = 0.0

    @property
    def estimated_resonance_frequency(self) -> float:
        return self.particle_filter.state.estimated_frequency_bpm

    @property
    def uncertainty(self) -> float:
        return self.particle_filter.state.uncertainty

    def update(self, hr_samples: Sequence[float], elapsed_time: float) -> CadenceParameters:
        cfg = self.cfg
        if not math.isfinite(elapsed_time):
            return self.current_parameters
        if elapsed_time < cfg.warmup_duration:
            self._set_phase(PacerPhase.WARMUP)
            return self.current_parameters
        if elapsed_time - self._last_observation < cfg.observation_interval:
            return self.current_parameters
        self._last_observation = elapsed_time

        amplitude = rsa_amplitude(hr_samples)
        rate = self.current_parameters.breaths_per_minute
        state: FilterState = self.particle_filter.update(amplitude, rate)
        self.rate_selector.record_reward(rate, amplitude)
        self.last_amplitude = amplitude
        logger.debug(
            "rsa=%.2f at %.2f bpm -> estimate %.2f +/- %.3f",
            amplitude,
            rate,
            state.estimated_frequency_bpm,
            state.uncertainty,
        )

        if state.uncertainty < cfg.convergence_threshold and self.phase is not PacerPhase.WARMUP:
            self._set_phase(PacerPhase.CONVERGED)
            self.current_parameters = derive_cadence(state.estimated_frequency_bpm)
            return self.current_parameters

        self._set_phase(PacerPhase.EXPLORING)
        self.current_parameters = derive_cadence(
            self.rate_selector.select_rate(cfg.exploration_constant)
        )
        return self.current_parameters

    def _set_phase(self, phase: PacerPhase) -> None:
        if phase is not self.phase:
            logger.info("bayesian pacer: %s -> %s", self.phase.value, phase.value)
            self.phase = phase
