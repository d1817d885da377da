from __future__ import annotations

import numpy as np

from resonance.adaptive_pacer import AdaptivePacer, AdaptivePacerConfig, SessionPhase
from resonance.cadence import DEFAULT_BPM, MAX_BPM, MIN_BPM


def _pacer(cal: float, expl: float, **kw: float) -> AdaptivePacer:
    return AdaptivePacer(AdaptivePacerConfig(calibration_duration=cal, exploration_duration=expl, **kw))


def test_starts_in_calibration() -> None:
    p = AdaptivePacer()
    assert p.phase is SessionPhase.CALIBRATION
    assert p.current_parameters.breaths_per_minute == DEFAULT_BPM


def test_calibration_holds_rate() -> None:
    p = _pacer(10.0, 20.0)
    for t in range(11):
        p.update(0.1 * t, float(t))
    assert p.phase is SessionPhase.CALIBRATION
    assert p.current_parameters.breaths_per_minute == DEFAULT_BPM


def test_phase_transitions_follow_elapsed_time() -> None:
    p = _pacer(10.0, 20.0)
    p.update(0.5, 11.0)
    assert p.phase is SessionPhase.EXPLORATION
    p.update(0.5, 31.0)
    assert p.phase is SessionPhase.RESONANCE_LOCK


def test_exploration_reverses_on_coherence_drop() -> None:
    p = _pacer(0.0, 100.0)
    p.update(0.5, 3.0)  # no drop: step up
    assert abs(p.current_parameters.breaths_per_minute - 5.6) < 1e-9
    p.update(0.2, 6.0)  # drop: reverse and step down
    assert abs(p.current_parameters.breaths_per_minute - 5.5) < 1e-9
    p.update(0.2, 7.0)  # too soon since last adjustment
    assert abs(p.current_parameters.breaths_per_minute - 5.5) < 1e-9


def test_exploration_sweeps_multiple_rates() -> None:
    rng = np.random.RandomState(0)
    p = _pacer(2.0, 60.0)
    rates = set()
    for t in np.arange(3.0, 61.0, 3.0):
        p.update(float(rng.uniform(0.2, 0.8)), float(t))
        rates.add(round(p.current_parameters.breaths_per_minute, 6))
    assert len(rates) >= 4


def test_exploration_bounces_off_rate_bounds() -> None:
    p = AdaptivePacer(
        AdaptivePacerConfig(calibration_duration=0.0, exploration_duration=1000.0, starting_bpm=6.95)
    )
    # Rising coherence keeps the direction, the upper bound forces a reversal
    p.update(0.1, 3.0)
    p.update(0.2, 6.0)
    assert p.current_parameters.breaths_per_minute <= MAX_BPM
    assert p.direction < 0


def test_resonance_lock_returns_to_best_rate() -> None:
    p = _pacer(0.0, 30.0)
    # Best coherence is recorded at the starting rate, then the sweep wanders off
    p.update(0.9, 3.0)
    for i, t in enumerate(range(6, 31, 3)):
        p.update(0.3 + 0.01 * i, float(t))
    assert abs(p.current_parameters.breaths_per_minute - DEFAULT_BPM) > 0.1
    p.update(0.4, 31.0)
    assert p.phase is SessionPhase.RESONANCE_LOCK
    assert abs(p.current_parameters.breaths_per_minute - p.best_bpm) < 1e-9
    assert p.best_bpm == DEFAULT_BPM


def test_lock_micro_correction_nudges_then_flips() -> None:
    p = _pacer(0.0, 3.0)
    p.update(0.8, 3.0)  # exploration step up, direction +1
    rate = p.current_parameters.breaths_per_minute
    p.update(0.7, 4.0)  # lock; within one step of best, no snap
    p.update(0.6, 7.0)  # trend 0.6 - 0.8 = -0.2 over last three samples
    assert p.phase is SessionPhase.RESONANCE_LOCK
    assert abs(p.current_parameters.breaths_per_minute - (rate + 0.1)) < 1e-9
    assert p.direction < 0


def test_rate_stays_within_bounds() -> None:
    rng = np.random.RandomState(1)
    p = _pacer(1.0, 5.0)
    for t in range(101):
        p.update(float(rng.uniform(0, 1)), float(t))
        bpm = p.current_parameters.breaths_per_minute
        assert MIN_BPM <= bpm <= MAX_BPM


def test_non_finite_coherence_is_ignored() -> None:
    p = _pacer(0.0, 100.0)
    before = p.current_parameters
    p.update(float("nan"), 3.0)
    assert p.current_parameters == before
