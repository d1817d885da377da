"""Sliding-window RR-interval tracker and RMSSD.

The window is written by the sensor thread and read by the control loop, so
every operation takes the same short exclusive lock.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from typing import Deque, Optional, Sequence

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_RR_MS = 300.0
MAX_RR_MS = 2000.0


def rmssd(intervals: Sequence[float]) -> Optional[float]:
    """Root mean square of successive differences (ms).

    Returns None when fewer than two intervals are available.
    """
    rr = np.asarray(intervals, dtype=np.float64)
    if rr.size < 2:
        return None
    d = np.diff(rr)
    return float(np.sqrt(np.mean(d * d)))


def pseudo_rr_interval_ms(bpm: float) -> Optional[float]:
    """Approximate one RR interval from an instantaneous heart rate.

    Fallback for sensors that only report BPM. Clamped to [300, 2000] ms.
    """
    if not math.isfinite(bpm) or bpm <= 0:
        return None
    return min(max(60_000.0 / bpm, MIN_RR_MS), MAX_RR_MS)


class HrvWindow:
    """RR intervals within a trailing time window (seconds)."""

    def __init__(self, window_duration: float = 30.0, max_entries: int = 4096) -> None:
        if not window_duration > 0:
            raise ConfigurationError("window_duration must be positive")
        if max_entries < 2:
            raise ConfigurationError("max_entries must be >= 2")
        self.window_duration = float(window_duration)
        self._intervals: Deque[tuple[float, float]] = deque(maxlen=int(max_entries))
        self._lock = threading.Lock()

    def add_interval(self, rr: float, timestamp: float) -> bool:
        if not (math.isfinite(rr) and math.isfinite(timestamp)):
            logger.debug("dropping non-finite RR sample rr=%r t=%r", rr, timestamp)
            return False
        with self._lock:
            self._intervals.append((float(timestamp), float(rr)))
        return True

    def recent_intervals(self, now: float) -> list[float]:
        cutoff = now - self.window_duration
        with self._lock:
            return [rr for ts, rr in self._intervals if ts >= cutoff]

    def current_rmssd(self, now: float) -> Optional[float]:
        return rmssd(self.recent_intervals(now))

    def prune(self, now: float) -> int:
        """Drop expired entries from the front. Returns how many were removed."""
        cutoff = now - self.window_duration
        removed = 0
        with self._lock:
            while self._intervals and self._intervals[0][0] < cutoff:
                self._intervals.popleft()
                removed += 1
        return removed

    def reset(self) -> None:
        with self._lock:
            self._intervals.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._intervals)
