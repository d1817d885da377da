"""Lomb-Scargle periodogram for unevenly sampled series.

Beat-derived heart-rate series are sampled at the beats themselves, so a
uniform-grid FFT does not apply. The classical estimator with the
time offset tau (which orthogonalizes the sine/cosine terms) is used.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

_EPS = 1e-12


@dataclass
class Periodogram:
    frequencies: np.ndarray = field(default_factory=lambda: np.zeros(0))
    power: np.ndarray = field(default_factory=lambda: np.zeros(0))
    peak_frequency: float = 0.0  # Hz
    peak_power: float = 0.0


def scan_frequencies(min_freq: float, max_freq: float, freq_step: float) -> np.ndarray:
    """Inclusive frequency grid; points up to half a step past max_freq are kept."""
    if not freq_step > 0 or max_freq < min_freq:
        return np.zeros(0)
    count = int(np.floor((max_freq - min_freq) / freq_step + 0.5)) + 1
    return min_freq + freq_step * np.arange(count, dtype=np.float64)


def periodogram(
    timestamps: Sequence[float],
    values: Sequence[float],
    min_freq: float = 0.04,
    max_freq: float = 0.15,
    freq_step: float = 0.005,
) -> Periodogram:
    """Compute the Lomb-Scargle power over an inclusive frequency scan.

    Args:
        timestamps: sample times in seconds (need not be evenly spaced).
        values: sample values, same length as ``timestamps``.
        min_freq/max_freq/freq_step: scan definition (Hz).

    Returns:
        Periodogram with arrays in scan order. Empty with zero peak when fewer
        than two valid samples are given or the lengths differ.
    """
    t = np.asarray(timestamps, dtype=np.float64)
    y = np.asarray(values, dtype=np.float64)
    if t.ndim != 1 or t.shape != y.shape:
        return Periodogram()
    ok = np.isfinite(t) & np.isfinite(y)
    t, y = t[ok], y[ok]
    if t.size < 2:
        return Periodogram()
    freqs = scan_frequencies(min_freq, max_freq, freq_step)
    if freqs.size == 0:
        return Periodogram()

    y = y - float(np.mean(y))
    omega = 2.0 * np.pi * freqs
    wt2 = 2.0 * np.outer(omega, t)
    s2 = np.sin(wt2).sum(axis=1)
    c2 = np.cos(wt2).sum(axis=1)
    two_omega = 2.0 * omega
    tau = np.divide(
        np.arctan2(s2, c2), two_omega, out=np.zeros_like(omega), where=two_omega != 0
    )

    phase = omega[:, None] * (t[None, :] - tau[:, None])
    cos_v = np.cos(phase)
    sin_v = np.sin(phase)
    cos_num = cos_v @ y
    sin_num = sin_v @ y
    cos_den = np.sum(cos_v * cos_v, axis=1)
    sin_den = np.sum(sin_v * sin_v, axis=1)

    # Skip a term whose normalizer vanishes
    cos_term = np.divide(
        cos_num * cos_num, cos_den, out=np.zeros_like(cos_den), where=cos_den > _EPS
    )
    sin_term = np.divide(
        sin_num * sin_num, sin_den, out=np.zeros_like(sin_den), where=sin_den > _EPS
    )
    power = 0.5 * (cos_term + sin_term)

    k = int(np.argmax(power))
    return Periodogram(freqs, power, float(freqs[k]), float(power[k]))
