"""Exceptions raised by the resonance package."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid construction-time parameters (bad grid, empty particle set, ...)."""
