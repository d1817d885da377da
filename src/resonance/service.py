"""FastAPI service exposing the pacing session to a host application.

The host pushes heart-rate / RR observations to `/ingest` and reads the
current cadence from `/metrics` (or the `/ws` push stream). The session clock
is either advanced by a background loop from wall time (``auto_tick``) or by
the host calling `/tick` with its own elapsed-session seconds.

A rate calibration sweep (`/calibration/*`) shares the `/ingest` sample path;
its best rate becomes the prior of the next session unless one is given.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from time import perf_counter
from typing import Annotated, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .cadence import MAX_BPM, MIN_BPM
from .calibration import (
    TEST_RATES,
    Analyzing,
    Breathing,
    CalibrationConfig,
    Complete,
    Idle,
    PreparingRate,
    RateCalibration,
)
from .prior import PRIOR_MAX_BPM, PRIOR_MIN_BPM, ResonancePrior, prior_from_rr_intervals
from .session import SessionConfig, SessionEngine

logger = logging.getLogger(__name__)

TICK_INTERVAL = 0.25  # s


@dataclass
class State:
    engine: Optional[SessionEngine]
    started_at: Optional[float]
    auto_tick: bool
    metrics: dict
    calibration: Optional[RateCalibration] = None
    calibration_started_at: Optional[float] = None
    calibration_auto_tick: bool = True
    calibrated_prior: Optional[ResonancePrior] = None


_CALIBRATION_STATUS = {
    Idle: "idle",
    PreparingRate: "preparing",
    Breathing: "breathing",
    Analyzing: "analyzing",
    Complete: "complete",
}


Rate = Annotated[float, Field(ge=MIN_BPM, le=MAX_BPM)]


class StartModel(BaseModel):
    pacer: str = Field("bayesian", pattern=r"^(bayesian|adaptive)$")
    starting_bpm: float = Field(5.5, ge=MIN_BPM, le=MAX_BPM)
    target_duration: float = Field(600.0, ge=60.0, le=7200.0)
    prior_mean: Optional[float] = Field(None, ge=PRIOR_MIN_BPM, le=PRIOR_MAX_BPM)
    prior_std: Optional[float] = Field(None, gt=0.0, le=3.0)
    derive_rr_from_hr: bool = False
    auto_tick: bool = True
    use_calibration: bool = True  # fall back to the last calibrated prior


class CalibrationStartModel(BaseModel):
    test_rates: list[Rate] = Field(default_factory=lambda: list(TEST_RATES), min_length=1)
    segment_duration: float = Field(30.0, ge=10.0, le=300.0)
    countdown: float = Field(3.0, ge=0.0, le=30.0)
    rest_duration: float = Field(3.0, ge=0.0, le=60.0)
    auto_tick: bool = True


class ObservationModel(BaseModel):
    timestamp: float
    heart_rate: Optional[float] = None
    rr_intervals_ms: list[float] = Field(default_factory=list)


class IngestModel(BaseModel):
    observations: list[ObservationModel]


class TickModel(BaseModel):
    elapsed: float = Field(..., ge=0.0)


class PriorModel(BaseModel):
    rr_intervals_ms: list[float]
    freq_step: float = Field(0.002, gt=0.0, le=0.02)


def make_app() -> FastAPI:
    app = FastAPI(title="Resonance Pacer Service", version="0.1.0")

    state = State(engine=None, started_at=None, auto_tick=True, metrics={"status": "idle"})

    loop_task: Optional[asyncio.Task] = None
    lock = asyncio.Lock()
    ws_clients: set[WebSocket] = set()

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - integration
        nonlocal loop_task
        loop_task = asyncio.create_task(process_loop())

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - integration
        nonlocal loop_task
        if loop_task:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
            loop_task = None

    async def process_loop() -> None:
        while True:
            try:
                await asyncio.sleep(TICK_INTERVAL)
                async with lock:
                    ticked = tick_from_wall_clock()
                if ticked and ws_clients:
                    msg = json.dumps(state.metrics)
                    dead: list[WebSocket] = []
                    for w in ws_clients:
                        try:
                            await w.send_text(msg)
                        except Exception:
                            dead.append(w)
                    for w in dead:
                        ws_clients.discard(w)
            except asyncio.CancelledError:
                break
            except Exception:
                # keep loop running
                logger.exception("control loop iteration failed")
                await asyncio.sleep(0.5)

    def tick_from_wall_clock() -> bool:
        cal = state.calibration
        if cal is not None and state.calibration_auto_tick and state.calibration_started_at is not None:
            tick_calibration(perf_counter() - state.calibration_started_at)
        engine = state.engine
        if engine is None or not state.auto_tick or engine.completed or state.started_at is None:
            return False
        snap = engine.tick(perf_counter() - state.started_at)
        state.metrics = {"status": "active", **asdict(snap)}
        return True

    def tick_calibration(elapsed: float) -> None:
        cal = state.calibration
        if cal is None or isinstance(cal.state, (Idle, Complete)):
            return
        if isinstance(cal.tick(elapsed), Complete):
            state.calibrated_prior = cal.prior
            logger.info("calibrated prior: %s", state.calibrated_prior)

    def calibration_metrics() -> dict:
        cal = state.calibration
        if cal is None:
            return {"status": "idle", "calibrated_prior": None}
        prior = state.calibrated_prior
        return {
            "status": _CALIBRATION_STATUS[type(cal.state)],
            "rate_index": cal.current_rate_index,
            "breaths_per_minute": cal.cadence.breaths_per_minute,
            "segment_progress": cal.segment_progress,
            "rsa_results": list(cal.rsa_results),
            "best_rate": cal.state.best_rate if isinstance(cal.state, Complete) else None,
            "calibrated_prior": asdict(prior) if prior is not None else None,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    @app.get("/metrics")
    async def get_metrics() -> dict:
        async with lock:
            return dict(state.metrics)

    @app.post("/session/start")
    async def start_session(cfg: StartModel) -> dict:
        async with lock:
            prior = None
            if cfg.prior_mean is not None:
                prior = ResonancePrior(cfg.prior_mean, cfg.prior_std or 0.3)
            elif cfg.use_calibration:
                prior = state.calibrated_prior
            session_cfg = SessionConfig(
                target_duration=cfg.target_duration,
                starting_bpm=cfg.starting_bpm,
                pacer=cfg.pacer,
                prior=prior,
                derive_rr_from_hr=cfg.derive_rr_from_hr,
            )
            state.engine = SessionEngine(session_cfg)
            state.started_at = perf_counter()
            state.auto_tick = cfg.auto_tick
            state.metrics = {"status": "active", **asdict(state.engine.snapshot())}
            logger.info("session started: %s pacer, %.0fs", cfg.pacer, cfg.target_duration)
            return dict(state.metrics)

    @app.post("/session/stop")
    async def stop_session() -> dict:
        async with lock:
            engine = state.engine
            if engine is None:
                return {"status": "inactive"}
            summary = engine.summary()
            state.engine = None
            state.started_at = None
            state.metrics = {"status": "idle"}
            return {"status": "stopped", "summary": asdict(summary)}

    @app.post("/ingest")
    async def post_ingest(payload: IngestModel) -> dict:
        if not payload.observations:
            return {"status": "empty"}
        async with lock:
            engine = state.engine
            cal = state.calibration
            calibrating = cal is not None and not isinstance(cal.state, (Idle, Complete))
            if engine is None and not calibrating:
                return {"status": "inactive"}
            result = {"status": "ok", "count": len(payload.observations)}
            if engine is not None:
                result["accepted"] = sum(
                    engine.push_observation(o.heart_rate, o.rr_intervals_ms, o.timestamp)
                    for o in payload.observations
                )
            if calibrating:
                result["calibration_accepted"] = sum(
                    cal.push_heart_rate(o.heart_rate)
                    for o in payload.observations
                    if o.heart_rate is not None
                )
        return result

    @app.post("/tick")
    async def post_tick(payload: TickModel) -> dict:
        async with lock:
            engine = state.engine
            if engine is None:
                return {"status": "inactive"}
            snap = engine.tick(payload.elapsed)
            state.metrics = {"status": "active", **asdict(snap)}
            return dict(state.metrics)

    @app.post("/calibration/start")
    async def start_calibration(cfg: CalibrationStartModel) -> dict:
        cal = RateCalibration(
            CalibrationConfig(
                test_rates=tuple(cfg.test_rates),
                segment_duration=cfg.segment_duration,
                countdown=cfg.countdown,
                rest_duration=cfg.rest_duration,
            )
        )
        async with lock:
            state.calibration = cal
            state.calibration_started_at = perf_counter()
            state.calibration_auto_tick = cfg.auto_tick
            state.calibrated_prior = None
            cal.start(0.0)
            logger.info("calibration started: rates %s", cfg.test_rates)
            return calibration_metrics()

    @app.post("/calibration/tick")
    async def post_calibration_tick(payload: TickModel) -> dict:
        async with lock:
            if state.calibration is None:
                return {"status": "inactive"}
            tick_calibration(payload.elapsed)
            return calibration_metrics()

    @app.get("/calibration/state")
    async def get_calibration() -> dict:
        async with lock:
            return calibration_metrics()

    @app.post("/calibration/cancel")
    async def cancel_calibration() -> dict:
        async with lock:
            if state.calibration is not None:
                state.calibration.cancel()
            return calibration_metrics()

    @app.post("/prior")
    async def post_prior(payload: PriorModel) -> dict:
        prior = prior_from_rr_intervals(payload.rr_intervals_ms, freq_step=payload.freq_step)
        if prior is None:
            return {"status": "insufficient"}
        return {"status": "ok", "mean_bpm": prior.mean_bpm, "std_bpm": prior.std_bpm}

    @app.websocket("/ws")
    async def ws_metrics(ws: WebSocket) -> None:  # pragma: no cover - integration
        await ws.accept()
        ws_clients.add(ws)
        try:
            while True:
                # keep alive; updates are pushed from loop
                await asyncio.sleep(30)
        except WebSocketDisconnect:
            ws_clients.discard(ws)
        except Exception:
            ws_clients.discard(ws)

    return app


app = make_app()


def main() -> None:  # pragma: no cover - manual run helper
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(app, host="127.0.0.1", port=8000)


if __name__ == "__main__":  # pragma: no cover
    main()
