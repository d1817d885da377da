from __future__ import annotations

import numpy as np

from resonance.lombscargle import periodogram


def test_pure_sine_peaks_at_frequency() -> None:
    t = np.arange(0.0, 61.0, 1.0)
    y = np.sin(2 * np.pi * 0.1 * t)
    res = periodogram(t, y, 0.04, 0.15, 0.005)
    assert abs(res.peak_frequency - 0.1) < 0.01
    assert res.peak_power > 0.0
    assert res.frequencies.size == res.power.size == 23


def test_uneven_sampling_finds_frequency() -> None:
    rng = np.random.RandomState(3)
    f = 0.092
    steps = 0.8 + rng.uniform(-0.1, 0.1, size=80)
    t = np.concatenate(([0.0], np.cumsum(steps)[:-1]))
    y = 5.0 * np.sin(2 * np.pi * f * t) + rng.uniform(-0.5, 0.5, size=t.size)
    res = periodogram(t, y, 0.04, 0.15, 0.002)
    assert abs(res.peak_frequency - f) < 0.015


def test_degenerate_inputs_return_zero_power() -> None:
    assert periodogram([], [], 0.04, 0.15, 0.01).peak_power == 0.0
    assert periodogram([0.0], [1.0], 0.04, 0.15, 0.01).peak_power == 0.0
    assert periodogram([0.0, 1.0], [1.0], 0.04, 0.15, 0.01).peak_power == 0.0
    assert periodogram([0.0, 1.0, 2.0], [1.0, 2.0, 3.0], 0.04, 0.15, 0.0).frequencies.size == 0


def test_frequency_scan_covers_requested_range() -> None:
    t = np.arange(0.0, 31.0, 1.0)
    y = np.sin(2 * np.pi * 0.1 * t)
    res = periodogram(t, y, 0.05, 0.12, 0.01)
    assert res.frequencies[0] >= 0.05
    assert res.frequencies[-1] <= 0.12 + 1e-9
    assert np.all(np.diff(res.frequencies) > 0)
    assert np.all(res.power >= 0.0)
