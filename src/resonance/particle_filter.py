"""Sequential Monte Carlo tracker of the resonant breathing frequency.

The resonant frequency is the breathing rate (BPM) at which RSA amplitude
peaks. Each observation is an RSA amplitude measured while pacing at a known
rate; the response to rate is modelled as a Gaussian tuning curve centred on
the (unknown) resonant frequency:

    expected = peak_amplitude * exp(-(rate - f)^2 / (2 * response_width^2))

The curve is nonlinear and the observations noisy, so the posterior over f is
carried as a weighted particle set rather than a closed-form estimate.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.stats import norm

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_LIKELIHOOD_FLOOR = 1e-30


@dataclass
class FilterConfig:
    particle_count: int = 100
    prior_mean: float = 5.5  # BPM
    prior_std: float = 0.75  # BPM
    process_noise: float = 0.03  # BPM per update (random-walk sigma)
    response_width: float = 0.5  # BPM
    observation_noise: float = 2.0  # amplitude units (BPM of HR swing)
    peak_amplitude: float = 10.0
    f_min: float = 4.0
    f_max: float = 7.5

    def __post_init__(self) -> None:
        if int(self.particle_count) < 1:
            raise ConfigurationError("particle_count must be >= 1")
        if not self.f_max > self.f_min:
            raise ConfigurationError("f_max must exceed f_min")
        for name in ("prior_std", "response_width", "observation_noise"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.process_noise < 0:
            raise ConfigurationError("process_noise must be >= 0")
        if not math.isfinite(self.prior_mean):
            raise ConfigurationError("prior_mean must be finite")


@dataclass(frozen=True)
class FilterState:
    estimated_frequency_bpm: float
    uncertainty: float  # weighted std (BPM)


class ResonanceParticleFilter:
    def __init__(
        self,
        cfg: FilterConfig | None = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.cfg = cfg or FilterConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()
        n = int(self.cfg.particle_count)
        self.particles = self._clamp(
            self._rng.normal(self.cfg.prior_mean, self.cfg.prior_std, size=n)
        )
        self.weights = np.full(n, 1.0 / n)

    @property
    def particle_count(self) -> int:
        return int(self.particles.size)

    @property
    def state(self) -> FilterState:
        with self._lock:
            return self._state()

    @property
    def effective_sample_size(self) -> float:
        with self._lock:
            return float(1.0 / np.sum(self.weights * self.weights))

    def update(self, observed_amplitude: float, current_rate_bpm: float) -> FilterState:
        """Assimilate one RSA amplitude observed while pacing at ``current_rate_bpm``."""
        with self._lock:
            if not (math.isfinite(observed_amplitude) and math.isfinite(current_rate_bpm)):
                logger.debug(
                    "ignoring non-finite observation amp=%r rate=%r",
                    observed_amplitude,
                    current_rate_bpm,
                )
                return self._state()
            cfg = self.cfg
            n = self.particle_count

            # Diffuse
            noise = self._rng.normal(0.0, cfg.process_noise, size=n)
            self.particles = self._clamp(self.particles + noise)

            # Reweight by the tuning-curve likelihood
            w2 = 2.0 * cfg.response_width * cfg.response_width
            expected = cfg.peak_amplitude * np.exp(
                -((current_rate_bpm - self.particles) ** 2) / w2
            )
            lik = norm.pdf(observed_amplitude, loc=expected, scale=cfg.observation_noise)
            self.weights = self.weights * np.maximum(lik, _LIKELIHOOD_FLOOR)

            total = float(np.sum(self.weights))
            if not math.isfinite(total) or total <= 0.0:
                logger.warning("particle weights collapsed; resetting to uniform")
                self.weights = np.full(n, 1.0 / n)
                return self._state()
            self.weights = self.weights / total

            n_eff = 1.0 / float(np.sum(self.weights * self.weights))
            if n_eff < n / 2.0:
                self._systematic_resample()
            return self._state()

    def _state(self) -> FilterState:
        est = float(np.sum(self.particles * self.weights))
        var = float(np.sum(self.weights * (self.particles - est) ** 2))
        return FilterState(est, math.sqrt(max(var, 0.0)))

    def _systematic_resample(self) -> None:
        n = self.particle_count
        cum = np.cumsum(self.weights)
        start = self._rng.uniform(0.0, 1.0 / n)
        thresholds = start + np.arange(n) / n
        idx = np.minimum(np.searchsorted(cum, thresholds, side="left"), n - 1)
        self.particles = self.particles[idx]
        self.weights = np.full(n, 1.0 / n)

    def _clamp(self, f: np.ndarray) -> np.ndarray:
        return np.clip(f, self.cfg.f_min, self.cfg.f_max)
