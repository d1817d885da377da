"""Adaptive resonance-breathing pacer.

Estimates the breathing rate that maximizes cardiac coherence and retunes a
breathing cadence toward it from heart-rate / RR-interval input.
"""

__all__ = [
    "cadence",
    "hrv",
    "coherence",
    "lombscargle",
    "rsa",
    "particle_filter",
    "bandit",
    "adaptive_pacer",
    "bayesian_pacer",
    "prior",
    "calibration",
    "session",
    "simulator",
    "service",
]

__version__ = "0.1.0"
