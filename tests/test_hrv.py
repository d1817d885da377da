from __future__ import annotations

import threading

from resonance.hrv import HrvWindow, pseudo_rr_interval_ms, rmssd


def test_rmssd_known_values() -> None:
    # diffs 10, -15, 25, -15 -> mean square 293.75
    value = rmssd([800, 810, 795, 820, 805])
    assert value is not None
    assert abs(value - 17.14) < 0.01


def test_rmssd_needs_two_intervals() -> None:
    assert rmssd([]) is None
    assert rmssd([800]) is None
    assert rmssd([800.0] * 10) == 0.0


def test_window_excludes_expired_entries() -> None:
    w = HrvWindow(window_duration=5.0)
    for i in range(9):
        w.add_interval(800.0 + i, timestamp=0.8 * i)
    recent = w.recent_intervals(6.4)
    # timestamps >= 1.4 s survive: 1.6 .. 6.4
    assert recent == [802.0, 803.0, 804.0, 805.0, 806.0, 807.0, 808.0]


def test_non_finite_dropped_and_reset() -> None:
    w = HrvWindow()
    assert not w.add_interval(float("nan"), 1.0)
    assert not w.add_interval(800.0, float("inf"))
    assert w.add_interval(800.0, 1.0)
    assert len(w) == 1
    w.reset()
    assert w.recent_intervals(1.0) == []
    assert w.current_rmssd(1.0) is None


def test_prune_removes_old_entries() -> None:
    w = HrvWindow(window_duration=10.0)
    for t in range(30):
        w.add_interval(800.0, float(t))
    assert w.prune(29.0) == 19
    assert len(w.recent_intervals(29.0)) == 11


def test_rmssd_from_sliding_window() -> None:
    w = HrvWindow(window_duration=30.0)
    t = 0.0
    for i in range(50):
        rr = 800.0 + (i % 5) * 5.0
        w.add_interval(rr, t)
        t += rr / 1000.0
    value = w.current_rmssd(t)
    assert value is not None and value > 0.0


def test_concurrent_writer_and_reader() -> None:
    n = 2000
    w = HrvWindow(window_duration=float(n))

    def writer() -> None:
        for i in range(n):
            w.add_interval(800.0, float(i))

    th = threading.Thread(target=writer)
    th.start()
    while th.is_alive():
        w.current_rmssd(float(n - 1))
    th.join()
    assert len(w) == n
    assert len(w.recent_intervals(float(n - 1))) == n


def test_pseudo_rr_interval_bounds() -> None:
    assert pseudo_rr_interval_ms(0.0) is None
    assert pseudo_rr_interval_ms(-12.0) is None
    assert pseudo_rr_interval_ms(float("nan")) is None
    assert abs(pseudo_rr_interval_ms(60.0) - 1000.0) < 1e-9
    assert abs(pseudo_rr_interval_ms(120.0) - 500.0) < 1e-9
    assert pseudo_rr_interval_ms(300.0) == 300.0
    assert pseudo_rr_interval_ms(10.0) == 2000.0
