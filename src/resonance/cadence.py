"""Breathing cadence model.

Converts a breathing rate (breaths per minute) into timed inhale / hold /
exhale durations, and locates a point in time inside the repeating cycle.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

MIN_BPM = 4.5
MAX_BPM = 7.0
DEFAULT_BPM = 5.5
INHALE_RATIO = 0.4  # of the non-hold part of the cycle
HOLD_RATIO = 0.05   # of the full cycle


class BreathingPhase(str, Enum):
    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"

    @property
    def next(self) -> "BreathingPhase":
        order = (BreathingPhase.INHALE, BreathingPhase.HOLD, BreathingPhase.EXHALE)
        return order[(order.index(self) + 1) % len(order)]

    @property
    def label(self) -> str:
        return self.value.upper()


@dataclass(frozen=True)
class CadenceParameters:
    breaths_per_minute: float
    inhale_duration: float  # seconds
    hold_duration: float  # seconds
    exhale_duration: float  # seconds

    @property
    def cycle_duration(self) -> float:
        return self.inhale_duration + self.hold_duration + self.exhale_duration

    @property
    def frequency_hz(self) -> float:
        return self.breaths_per_minute / 60.0

    def adjusted_by(self, delta: float) -> "CadenceParameters":
        return derive_cadence(self.breaths_per_minute + delta)

    def duration_of(self, phase: BreathingPhase) -> float:
        if phase is BreathingPhase.INHALE:
            return self.inhale_duration
        if phase is BreathingPhase.HOLD:
            return self.hold_duration
        return self.exhale_duration


def clamp_bpm(bpm: float) -> float:
    """Clamp a rate into [MIN_BPM, MAX_BPM]; non-finite input maps to DEFAULT_BPM."""
    if not math.isfinite(bpm):
        return DEFAULT_BPM
    return min(max(float(bpm), MIN_BPM), MAX_BPM)


def derive_cadence(breaths_per_minute: float) -> CadenceParameters:
    """Derive phase durations for a breathing rate.

    The rate is clamped, never rejected. Hold takes HOLD_RATIO of the cycle,
    the remainder is split INHALE_RATIO : (1 - INHALE_RATIO).
    """
    bpm = clamp_bpm(breaths_per_minute)
    cycle = 60.0 / bpm
    hold = cycle * HOLD_RATIO
    breathing = cycle - hold
    inhale = breathing * INHALE_RATIO
    exhale = breathing * (1.0 - INHALE_RATIO)
    return CadenceParameters(bpm, inhale, hold, exhale)


@dataclass(frozen=True)
class PhasePosition:
    phase: BreathingPhase
    progress: float  # 0..1 within the phase
    remaining: float  # seconds left in the phase


def phase_at(params: CadenceParameters, t: float) -> PhasePosition:
    """Locate time ``t`` (seconds since the cycle started) within the cycle."""
    cycle = params.cycle_duration
    offset = math.fmod(max(float(t), 0.0), cycle)
    phase = BreathingPhase.INHALE
    for _ in range(3):
        dur = params.duration_of(phase)
        if offset < dur:
            return PhasePosition(phase, offset / dur, dur - offset)
        offset -= dur
        phase = phase.next
    # Floating-point residue at the very end of the cycle
    return PhasePosition(BreathingPhase.EXHALE, 1.0, 0.0)
