"""Noise-floor measurement on silence blocks."""

from __future__ import annotations

from typing import Optional

from audiorev.compare.types import Spectrum


def silence_noise_floor_db(spectrum: Spectrum) -> Optional[float]:
    """Loudest component of an unfloored silence spectrum, in dBFS; None when it is empty."""
    return spectrum.peak_db()
