from __future__ import annotations

import numpy as np

from resonance.coherence import coherence


def test_sinusoidal_hr_gives_high_coherence() -> None:
    fs = 4.0
    f_breath = 5.5 / 60.0
    t = np.arange(0, 30.0, 1 / fs)
    hr = 70.0 + 5.0 * np.sin(2 * np.pi * f_breath * t)
    assert coherence(hr, fs, f_breath) > 0.7


def test_random_hr_gives_low_coherence() -> None:
    scores = []
    for seed in range(10):
        hr = np.random.RandomState(seed).uniform(60.0, 80.0, size=480)
        scores.append(coherence(hr, 4.0, 5.5 / 60.0))
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert float(np.mean(scores)) < 0.4


def test_constant_and_short_series() -> None:
    assert coherence(np.full(120, 70.0), 4.0, 5.5 / 60.0) == 0.0
    assert coherence([70.0, 72.0], 4.0, 5.5 / 60.0) == 0.0
    assert coherence(np.full(31, 70.0), 4.0, 0.1) == 0.0


def test_band_collapse_returns_zero() -> None:
    # 32 samples at 10 Hz: resolution 0.3125 Hz, LF band has no bins
    x = np.sin(2 * np.pi * 0.1 * np.arange(32) / 10.0)
    assert coherence(x, 10.0, 0.1) == 0.0


def test_off_target_frequency_scores_lower() -> None:
    fs = 4.0
    t = np.arange(0, 120.0, 1 / fs)
    hr = 70.0 + 5.0 * np.sin(2 * np.pi * 0.1 * t)
    on = coherence(hr, fs, 0.1)
    off = coherence(hr, fs, 0.05)
    assert on > 0.7
    assert off < on
