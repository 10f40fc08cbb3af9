"""PCM WAV loading."""

from __future__ import annotations

import os
from typing import Optional

import numpy as np
from scipy.io import wavfile

from audiorev.compare.types import Signal
from audiorev.errors import AudioLoadError


def to_float(data: np.ndarray) -> np.ndarray:
    """Scale integer PCM to [-1, 1]; float data passes through."""
    if np.issubdtype(data.dtype, np.floating):
        return data.astype(np.float64)
    if data.dtype == np.uint8:
        return (data.astype(np.float64) - 128.0) / 128.0
    if np.issubdtype(data.dtype, np.integer):
        return data.astype(np.float64) / float(-np.iinfo(data.dtype).min)
    raise AudioLoadError(f"unsupported sample type {data.dtype}")


def load_signal(path: str, name: Optional[str] = None) -> Signal:
    try:
        sample_rate, data = wavfile.read(path)
    except (OSError, ValueError) as exc:
        raise AudioLoadError(f"could not read '{path}': {exc}") from exc
    if data.size == 0:
        raise AudioLoadError(f"'{path}' contains no samples")
    return Signal(to_float(data), float(sample_rate), name or os.path.basename(path))


def write_signal(path: str, signal: Signal) -> None:
    """Write as 32-bit float WAV."""
    wavfile.write(path, int(round(signal.sample_rate)), signal.samples.astype(np.float32))
