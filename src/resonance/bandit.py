"""UCB1 breathing-rate selector over a discrete rate grid.

Used while the particle filter belief is still wide: it balances trying rates
not yet tested against returning to rates that already gave a strong RSA
response.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .cadence import MAX_BPM, MIN_BPM
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateStats:
    rate: float
    mean_reward: float
    visit_count: int


class UcbRateSelector:
    def __init__(
        self,
        min_rate: float = MIN_BPM,
        max_rate: float = MAX_BPM,
        step: float = 0.25,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if not step > 0:
            raise ConfigurationError("step must be positive")
        if not max_rate >= min_rate:
            raise ConfigurationError("max_rate must be >= min_rate")
        count = int(math.floor((max_rate - min_rate) / step + 0.1)) + 1
        self.rates = min_rate + step * np.arange(count, dtype=np.float64)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()
        self._sums = np.zeros(count, dtype=np.float64)
        self._visits = np.zeros(count, dtype=np.int64)
        self._total = 0

    @property
    def total_trials(self) -> int:
        with self._lock:
            return self._total

    def select_rate(self, exploration_constant: float = 1.0) -> float:
        """Next rate to try: any unvisited bin first, then the UCB1 argmax."""
        with self._lock:
            unvisited = np.flatnonzero(self._visits == 0)
            if unvisited.size > 0:
                k = int(unvisited[self._rng.integers(unvisited.size)])
                return float(self.rates[k])
            if self._total <= 0:
                return self._midpoint()
            means = self._sums / self._visits
            bonus = exploration_constant * np.sqrt(2.0 * math.log(self._total) / self._visits)
            # argmax keeps the first index on ties
            return float(self.rates[int(np.argmax(means + bonus))])

    def record_reward(self, rate: float, reward: float) -> None:
        if not (math.isfinite(rate) and math.isfinite(reward)):
            logger.debug("dropping non-finite reward rate=%r reward=%r", rate, reward)
            return
        with self._lock:
            k = self._nearest_index(rate)
            self._sums[k] += reward
            self._visits[k] += 1
            self._total += 1

    @property
    def best_rate(self) -> float:
        """Visited rate with the highest mean reward (grid midpoint if none)."""
        with self._lock:
            visited = np.flatnonzero(self._visits > 0)
            if visited.size == 0:
                return self._midpoint()
            means = self._sums[visited] / self._visits[visited]
            return float(self.rates[visited[int(np.argmax(means))]])

    @property
    def stats(self) -> list[RateStats]:
        with self._lock:
            return [
                RateStats(float(self.rates[k]), float(self._sums[k] / self._visits[k]), int(self._visits[k]))
                for k in np.flatnonzero(self._visits > 0)
            ]

    def reset(self) -> None:
        with self._lock:
            self._sums[:] = 0.0
            self._visits[:] = 0
            self._total = 0

    def _nearest_index(self, rate: float) -> int:
        return int(np.argmin(np.abs(self.rates - rate)))

    def _midpoint(self) -> float:
        return float(self.rates[self.rates.size // 2])
