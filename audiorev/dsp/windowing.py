"""Analysis windows, memoized per (length, sample rate, kind)."""

from __future__ import annotations

import threading
from typing import Dict, Tuple

import numpy as np
from scipy.signal import get_window

from audiorev.config import WindowKind
from audiorev.errors import InvalidArgument

TUKEY_ALPHA = 0.5

# Reciprocal of each window's coherent gain.
_COMPENSATION = {
    WindowKind.NONE: 1.0,
    WindowKind.TUKEY: 1.0 / (1.0 - TUKEY_ALPHA / 2.0),
    WindowKind.HANN: 2.0,
    WindowKind.HAMMING: 1.0 / 0.54,
    WindowKind.FLATTOP: 1.0 / 0.21557895,
}

WindowKey = Tuple[int, float, WindowKind]


def tukey_window(length: int, alpha: float = TUKEY_ALPHA) -> np.ndarray:
    """Flat-top cosine taper: the first and last alpha/2 of the block fade in and out."""
    window = np.ones(length, dtype=np.float64)
    taper = int(np.floor(alpha * length / 2.0))
    if taper <= 0:
        return window
    n = np.arange(taper, dtype=np.float64)
    ramp = 0.5 * (1.0 - np.cos(np.pi * n / taper))
    window[:taper] = ramp
    window[length - taper :] = ramp[::-1]
    return window


def _compute(length: int, kind: WindowKind) -> np.ndarray:
    if kind is WindowKind.NONE:
        return np.ones(length, dtype=np.float64)
    if kind is WindowKind.TUKEY:
        return tukey_window(length)
    # periodic (fftbins=True) variants, so bin-centred tones land in exactly 3 bins for Hann
    return np.asarray(get_window(kind.value, length, fftbins=True), dtype=np.float64)


class WindowCache:
    """Append-only window store safe for concurrent lookups.

    At most one computation happens per missing key: lookups for the same key
    wait on a per-key lock while a different key proceeds independently.
    """

    def __init__(self) -> None:
        self._windows: Dict[WindowKey, np.ndarray] = {}
        self._key_locks: Dict[WindowKey, threading.Lock] = {}
        self._guard = threading.Lock()
        self.computed = 0

    def get_window(self, length: int, sample_rate: float, kind: WindowKind = WindowKind.TUKEY) -> np.ndarray:
        length = int(length)
        if length <= 0:
            raise InvalidArgument(f"window length must be positive, got {length}")
        kind = WindowKind.parse(kind)
        key: WindowKey = (length, float(sample_rate), kind)

        cached = self._windows.get(key)
        if cached is not None:
            return cached

        with self._guard:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            cached = self._windows.get(key)
            if cached is not None:
                return cached
            window = _compute(length, kind)
            window.setflags(write=False)
            self._windows[key] = window
            with self._guard:
                self.computed += 1
            return window

    @staticmethod
    def compensation_factor(kind: WindowKind) -> float:
        return _COMPENSATION[WindowKind.parse(kind)]

    @staticmethod
    def correction_factor(length: int) -> float:
        """Scale that turns a one-sided FFT magnitude into a sine amplitude for this block length."""
        if length <= 0:
            raise InvalidArgument(f"block length must be positive, got {length}")
        return 2.0 / float(length)

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, key: WindowKey) -> bool:
        return key in self._windows
