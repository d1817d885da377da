"""Headless simulated pacing session.

Runs the session engine against the synthetic heart-rate source on a virtual
4 Hz control clock (or in real time with ``--realtime``) and logs snapshots.

Run with: `uv run task sim`
"""

from __future__ import annotations

import argparse
import logging
import time
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .prior import ResonancePrior


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Simulated resonance-breathing session")
    p.add_argument("--pacer", choices=("bayesian", "adaptive"), default="bayesian")
    p.add_argument("--duration", type=float, default=600.0, help="session length (s)")
    p.add_argument("--resonance", type=float, default=6.0, help="simulated resonant rate (bpm)")
    p.add_argument("--start-bpm", type=float, default=5.5)
    p.add_argument("--prior-mean", type=float, default=None)
    p.add_argument("--prior-std", type=float, default=0.3)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--tick-hz", type=float, default=4.0)
    p.add_argument("--log-every", type=float, default=30.0, help="snapshot log period (s)")
    p.add_argument(
        "--calibrate",
        action="store_true",
        help="run the rate calibration sweep first and use it as the session prior",
    )
    p.add_argument("--realtime", action="store_true")
    return p.parse_args(argv)


def run_calibration(sim, dt: float, log: logging.Logger) -> Optional[ResonancePrior]:
    """Run the rate calibration sweep against ``sim`` on a virtual clock.

    Returns the calibrated prior, or None if the sweep produced no result.
    """
    from .calibration import Complete, Idle, RateCalibration

    cal = RateCalibration()
    t = 0.0
    cal.start(t)
    while not isinstance(cal.state, (Complete, Idle)):
        t += dt
        cal.tick(t)
        cal.push_heart_rate(sim.read(t, cal.cadence.breaths_per_minute).heart_rate)
    log.info(
        "calibration finished after %.0fs: rsa=%s -> %s",
        t,
        ", ".join(f"{r:.2f}" for r in cal.rsa_results),
        cal.prior,
    )
    return cal.prior


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Run one simulated session and log its summary."""
    args = parse_args(argv)

    # Initialize logging and fault handler
    from pathlib import Path

    logs_dir = Path("logs")
    try:
        logs_dir.mkdir(exist_ok=True)
    except OSError:
        pass
    import faulthandler

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[
            logging.FileHandler(logs_dir / "app.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    fh = (logs_dir / "faulthandler.log").open("w")
    faulthandler.enable(fh)
    log = logging.getLogger("resonance.app")

    import numpy as np

    from .prior import ResonancePrior
    from .session import SessionConfig, SessionEngine
    from .simulator import HeartRateSimulator, SimulatorConfig

    rng = np.random.default_rng(args.seed)
    sim = HeartRateSimulator(SimulatorConfig(resonance_bpm=args.resonance), rng=rng)
    dt = 1.0 / max(args.tick_hz, 0.1)

    prior = ResonancePrior(args.prior_mean, args.prior_std) if args.prior_mean is not None else None
    start_bpm = args.start_bpm
    if prior is None and args.calibrate:
        prior = run_calibration(sim, dt, log)
        if prior is not None:
            start_bpm = prior.mean_bpm
    engine = SessionEngine(
        SessionConfig(
            target_duration=args.duration,
            starting_bpm=start_bpm,
            pacer=args.pacer,
            prior=prior,
        ),
        rng=rng,
    )

    t = 0.0
    next_log = 0.0
    log.info(
        "simulating %.0fs %s session, resonance at %.2f bpm",
        engine.cfg.target_duration,
        args.pacer,
        args.resonance,
    )
    try:
        while not engine.completed:
            t += dt
            engine.push(sim.read(t, engine.current_cadence.breaths_per_minute))
            snap = engine.tick(t)
            if t >= next_log:
                next_log += args.log_every
                est = snap.estimated_resonance_frequency
                log.info(
                    "t=%6.1fs phase=%-14s rate=%.2f bpm hr=%.1f rmssd=%.1f coh=%.3f est=%s",
                    snap.elapsed,
                    snap.phase,
                    snap.breaths_per_minute,
                    snap.heart_rate,
                    snap.rmssd,
                    snap.coherence,
                    f"{est:.2f}+/-{snap.uncertainty:.3f}" if est is not None else "-",
                )
            if args.realtime:
                time.sleep(dt)
    except KeyboardInterrupt:
        log.info("interrupted at t=%.1fs", t)
    finally:
        s = engine.summary()
        log.info(
            "summary: %.0fs avg_hr=%.1f avg_rmssd=%.1f peak_coherence=%.3f rate=%.2f bpm",
            s.duration,
            s.average_hr,
            s.average_rmssd,
            s.peak_coherence,
            s.resonance_rate,
        )
        faulthandler.disable()
        fh.close()


if __name__ == "__main__":
    main()
