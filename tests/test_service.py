from __future__ import annotations

import math

from fastapi.testclient import TestClient

from resonance.service import make_app


def _client() -> TestClient:
    # not entered as a context manager, so the wall-clock loop never starts
    return TestClient(make_app())


def _rr_series(f_hz: float, beats: int = 300) -> list[float]:
    t = 0.0
    out: list[float] = []
    for _ in range(beats):
        rr = 60_000.0 / (60.0 + 5.0 * math.sin(2 * math.pi * f_hz * t))
        out.append(rr)
        t += rr / 1000.0
    return out


def test_idle_until_started() -> None:
    c = _client()
    assert c.get("/metrics").json() == {"status": "idle"}
    assert c.post("/tick", json={"elapsed": 1.0}).json() == {"status": "inactive"}
    assert c.post("/session/stop").json() == {"status": "inactive"}
    body = {"observations": [{"timestamp": 1.0, "heart_rate": 70.0}]}
    assert c.post("/ingest", json=body).json() == {"status": "inactive"}


def test_session_lifecycle() -> None:
    c = _client()
    r = c.post("/session/start", json={"pacer": "adaptive", "target_duration": 60, "auto_tick": False})
    assert r.status_code == 200
    m = r.json()
    assert m["status"] == "active"
    assert m["pacer"] == "adaptive"
    assert m["phase"] == "calibration"
    assert m["breaths_per_minute"] == 5.5

    body = {
        "observations": [
            {"timestamp": 1.0, "heart_rate": 70.0, "rr_intervals_ms": [850.0]},
            {"timestamp": 2.0, "heart_rate": -1.0},
        ]
    }
    assert c.post("/ingest", json=body).json() == {"status": "ok", "count": 2, "accepted": 2}
    assert c.post("/ingest", json={"observations": []}).json() == {"status": "empty"}

    m = c.post("/tick", json={"elapsed": 2.0}).json()
    assert m["elapsed"] == 2.0
    assert m["heart_rate"] == 70.0
    assert c.get("/metrics").json() == m

    r = c.post("/session/stop").json()
    assert r["status"] == "stopped"
    assert r["summary"]["duration"] == 2.0
    assert r["summary"]["average_hr"] == 70.0
    assert c.get("/metrics").json() == {"status": "idle"}


def test_start_with_prior() -> None:
    c = _client()
    m = c.post(
        "/session/start", json={"prior_mean": 6.2, "prior_std": 0.2, "auto_tick": False}
    ).json()
    assert m["pacer"] == "bayesian"
    assert m["phase"] == "warmup"
    assert m["breaths_per_minute"] == 6.2
    assert m["estimated_resonance_frequency"] is not None


def test_start_rejects_bad_input() -> None:
    c = _client()
    assert c.post("/session/start", json={"pacer": "random"}).status_code == 422
    assert c.post("/session/start", json={"starting_bpm": 12.0}).status_code == 422
    assert c.post("/tick", json={"elapsed": -1.0}).status_code == 422


def test_prior_endpoint() -> None:
    c = _client()
    r = c.post("/prior", json={"rr_intervals_ms": _rr_series(0.1)}).json()
    assert r["status"] == "ok"
    assert abs(r["mean_bpm"] - 6.0) < 0.2
    r = c.post("/prior", json={"rr_intervals_ms": [800.0] * 5}).json()
    assert r == {"status": "insufficient"}


# HR swing (BPM) the simulated subject shows at each calibration rate
CALIBRATION_SWING = {4.5: 2.0, 5.5: 3.0, 6.5: 6.0}


def _run_calibration(c: TestClient) -> dict:
    t = 0.0
    state = {}
    while t <= 80.0:
        state = c.post("/calibration/tick", json={"elapsed": t}).json()
        if state["status"] == "breathing":
            rate = state["breaths_per_minute"]
            hr = 68.0 + CALIBRATION_SWING[rate] * math.sin(2 * math.pi * rate / 60.0 * t)
            r = c.post("/ingest", json={"observations": [{"timestamp": t, "heart_rate": hr}]}).json()
            assert r == {"status": "ok", "count": 1, "calibration_accepted": 1}
        t += 0.5
    return state


def test_calibration_idle_until_started() -> None:
    c = _client()
    assert c.get("/calibration/state").json() == {"status": "idle", "calibrated_prior": None}
    assert c.post("/calibration/tick", json={"elapsed": 1.0}).json() == {"status": "inactive"}


def test_calibration_feeds_next_session_prior() -> None:
    c = _client()
    m = c.post("/calibration/start", json={"segment_duration": 20.0, "auto_tick": False}).json()
    assert m["status"] == "preparing"
    assert m["rate_index"] == 0
    assert m["breaths_per_minute"] == 4.5

    m = _run_calibration(c)
    assert m["status"] == "complete"
    assert m["best_rate"] == 6.5
    assert len(m["rsa_results"]) == 3
    assert m["calibrated_prior"] == {"mean_bpm": 6.5, "std_bpm": 0.2}
    assert c.get("/calibration/state").json() == m

    s = c.post("/session/start", json={"auto_tick": False}).json()
    assert s["breaths_per_minute"] == 6.5
    assert abs(s["estimated_resonance_frequency"] - 6.5) < 0.2

    s = c.post("/session/start", json={"auto_tick": False, "use_calibration": False}).json()
    assert s["breaths_per_minute"] == 5.5


def test_calibration_cancel() -> None:
    c = _client()
    c.post("/calibration/start", json={"auto_tick": False})
    m = c.post("/calibration/cancel").json()
    assert m["status"] == "idle"
    assert m["calibrated_prior"] is None
    body = {"observations": [{"timestamp": 1.0, "heart_rate": 70.0}]}
    assert c.post("/ingest", json=body).json() == {"status": "inactive"}


def test_calibration_rejects_bad_rates() -> None:
    c = _client()
    assert c.post("/calibration/start", json={"test_rates": []}).status_code == 422
    assert c.post("/calibration/start", json={"test_rates": [3.0]}).status_code == 422
