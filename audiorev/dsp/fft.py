"""FFT plans and the per-block spectral analyzer."""

from __future__ import annotations

import math
import threading
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.fft

from audiorev.compare.types import Block, BlockKind, Signal, Spectrum
from audiorev.config import Channel, Normalization, RunConfig, WindowKind
from audiorev.dsp.windowing import WindowCache
from audiorev.errors import InvalidArgument, TransformError
from audiorev.util.logging import get_logger
from audiorev.util.math import DB_FLOOR, db20, level_db

FORWARD = "forward"
INVERSE = "inverse"

logger = get_logger(__name__)


class TransformPlan:
    """Prepared real FFT of one size and direction."""

    def __init__(self, size: int, direction: str = FORWARD):
        if size <= 0:
            raise InvalidArgument(f"transform size must be positive, got {size}")
        if direction not in (FORWARD, INVERSE):
            raise InvalidArgument(f"unknown transform direction '{direction}'")
        self.size = int(size)
        self.direction = direction
        self._freqs: Dict[float, np.ndarray] = {}

    def execute(self, data: np.ndarray) -> np.ndarray:
        if self.direction == FORWARD:
            return scipy.fft.rfft(data, n=self.size)
        return scipy.fft.irfft(data, n=self.size)

    def frequencies(self, sample_rate: float) -> np.ndarray:
        freqs = self._freqs.get(sample_rate)
        if freqs is None:
            freqs = scipy.fft.rfftfreq(self.size, d=1.0 / sample_rate)
            self._freqs[sample_rate] = freqs
        return freqs

    def bin_hz(self, sample_rate: float) -> float:
        return float(sample_rate) / float(self.size)

    def release(self) -> None:
        self._freqs.clear()


def local_peaks(data: np.ndarray) -> np.ndarray:
    """Indices of local maxima; a plateau yields only its first bin."""
    data = np.asarray(data, dtype=np.float64)
    if data.size == 0:
        return np.zeros(0, dtype=np.int64)
    if data.size == 1:
        return np.zeros(1, dtype=np.int64)
    left = np.r_[-np.inf, data[:-1]]
    right = np.r_[data[1:], -np.inf]
    return np.flatnonzero((data > left) & (data >= right))


def nearest_bins(freqs: np.ndarray, targets: Sequence[float]) -> np.ndarray:
    """Index of the bin closest to each target frequency."""
    freqs = np.asarray(freqs, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    if freqs.size == 0 or targets.size == 0:
        return np.zeros(0, dtype=np.int64)
    if freqs.size == 1:
        return np.zeros(targets.size, dtype=np.int64)
    idx = np.clip(np.searchsorted(freqs, targets), 1, freqs.size - 1)
    left = freqs[idx - 1]
    right = freqs[idx]
    idx = idx - ((targets - left) < (right - targets)).astype(np.int64)
    return idx


def balance_channels(data: np.ndarray) -> np.ndarray:
    """Scale quieter channels up to the RMS of the loudest one."""
    rms = np.sqrt(np.mean(np.square(data), axis=0))
    if data.shape[1] < 2 or not np.all(rms > 0.0):
        return data
    return data * (rms.max() / rms)


class SpectralAnalyzer:
    """Windowed FFT of one block plus normalization and peak extraction.

    Transform plans are keyed by (size, direction), created on first use and
    shared across blocks and threads until `close()`.
    """

    def __init__(self, config: RunConfig, windows: Optional[WindowCache] = None):
        self.config = config
        self.windows = windows if windows is not None else WindowCache()
        self._plans: Dict[Tuple[int, str], TransformPlan] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "SpectralAnalyzer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def plan(self, size: int, direction: str = FORWARD) -> TransformPlan:
        key = (int(size), direction)
        with self._lock:
            if self._closed:
                raise RuntimeError("analyzer has been closed")
            plan = self._plans.get(key)
            if plan is None:
                plan = TransformPlan(int(size), direction)
                self._plans[key] = plan
            return plan

    @property
    def plan_count(self) -> int:
        return len(self._plans)

    def close(self) -> None:
        with self._lock:
            for plan in self._plans.values():
                plan.release()
            self._plans.clear()
            self._closed = True

    def fft_size(self, length: int, sample_rate: float) -> int:
        """Block length, or the next multiple of the sample rate when zero padding (1 Hz bins)."""
        if not self.config.zero_pad:
            return int(length)
        per_second = int(round(sample_rate))
        return max(int(length), int(math.ceil(length / per_second)) * per_second)

    def block_samples(self, signal: Signal, block: Block) -> np.ndarray:
        if block.start < 0 or block.end > signal.frames or block.length <= 0:
            raise InvalidArgument(
                f"block {block.index} ({block.start}-{block.end}) outside signal of {signal.frames} frames"
            )
        data = signal.samples[block.start : block.end]
        if signal.channels == 1:
            return data[:, 0]
        channel = self.config.channel
        if channel is Channel.LEFT:
            return data[:, 0]
        if channel is Channel.RIGHT:
            return data[:, 1]
        if self.config.channel_balance:
            data = balance_channels(data)
        return data.mean(axis=1)

    def magnitude_spectrum(
        self,
        samples: np.ndarray,
        sample_rate: float,
        *,
        kind: Optional[WindowKind] = None,
        size: Optional[int] = None,
        block_index: int = -1,
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """Return (freqs, linear magnitudes, bin_hz); a full-scale sine reads 1.0."""
        kind = self.config.window if kind is None else kind
        length = int(samples.size)
        window = self.windows.get_window(length, sample_rate, kind)
        plan = self.plan(size if size is not None else self.fft_size(length, sample_rate))
        try:
            transformed = plan.execute(samples * window)
        except (ValueError, TypeError, MemoryError, RuntimeError) as exc:
            raise TransformError(block_index, exc) from exc
        scale = self.windows.compensation_factor(kind) * self.windows.correction_factor(length)
        mags = np.abs(transformed) * scale
        return plan.frequencies(sample_rate), mags, plan.bin_hz(sample_rate)

    def analyze(self, signal: Signal, block: Block, *, noise_floor_db: Optional[float] = None) -> Spectrum:
        cfg = self.config
        is_silence = block.kind is BlockKind.SILENCE
        samples = self.block_samples(signal, block)

        if cfg.normalization is Normalization.TIME and not is_silence:
            peak = float(np.max(np.abs(samples))) if samples.size else 0.0
            if peak > 0.0:
                samples = samples / peak

        freqs, mags, bin_hz = self.magnitude_spectrum(samples, signal.sample_rate, block_index=block.index)

        adjusted = freqs / block.drift_ratio
        in_range = (adjusted >= cfg.start_hz) & (adjusted <= cfg.end_hz)
        freqs = freqs[in_range]
        mags = mags[in_range]

        reference = 1.0 if is_silence else self._reference_level(freqs, mags, block)
        mags_db = db20(mags) - level_db(reference)

        peaks = local_peaks(mags_db)
        peaks = peaks[mags[peaks] > DB_FLOOR]
        if is_silence and noise_floor_db is not None and not cfg.ignore_floor:
            peaks = peaks[mags_db[peaks] > noise_floor_db]
        if peaks.size > cfg.max_frequencies:
            strongest = np.argsort(mags_db[peaks], kind="stable")[::-1][: cfg.max_frequencies]
            peaks = np.sort(peaks[strongest])

        out_freqs = freqs[peaks]
        out_db = mags_db[peaks]
        if cfg.quantize_round:
            out_freqs = np.round(out_freqs, 2)
            out_db = np.round(out_db, 2)

        return Spectrum(
            block_index=block.index,
            frequencies=out_freqs,
            magnitudes_db=out_db,
            bin_hz=bin_hz,
            drift_ratio=block.drift_ratio,
            reference_level_db=level_db(reference),
        )

    def _reference_level(self, freqs: np.ndarray, mags: np.ndarray, block: Block) -> float:
        mode = self.config.normalization
        if mode in (Normalization.NONE, Normalization.TIME) or mags.size == 0:
            return 1.0
        fundamentals = block.block_type.frequencies if block.kind is BlockKind.REGULAR else ()
        targets = [f * block.drift_ratio for f in fundamentals]
        if mode is Normalization.AVERAGE and targets:
            level = float(np.mean(mags[nearest_bins(freqs, targets)]))
        elif self.config.normalization_tolerant and targets:
            level = self._tolerate(freqs, mags, targets, block)
        else:
            level = float(np.max(mags))
        return level if level > DB_FLOOR else 1.0

    def _tolerate(self, freqs: np.ndarray, mags: np.ndarray, targets: Sequence[float], block: Block) -> float:
        """Strongest peak under which the block's fundamentals still read as content.

        A peak is implausible when the loudest fundamental sits more than
        `normalization_tolerance_db` below it, as when a fixed-level hum or spur
        outweighs the test tone of a quiet capture. Each retry takes the next
        weaker peak and widens the bar by the same amount; once the retries are
        spent the strongest peak is used.
        """
        cfg = self.config
        fundamental = float(np.max(mags[nearest_bins(freqs, targets)]))
        peaks = local_peaks(mags)
        candidates = peaks[np.argsort(mags[peaks], kind="stable")[::-1]]
        strongest = float(mags[candidates[0]])
        bar = -cfg.normalization_tolerance_db
        for attempt, k in enumerate(candidates[: cfg.normalization_tries + 1]):
            level = float(mags[k])
            if level_db(fundamental) - level_db(level) >= bar:
                if attempt:
                    logger.debug(
                        "block %d normalized on %.2f Hz after %d retries",
                        block.index,
                        float(freqs[k]),
                        attempt,
                        extra={"block_index": block.index},
                    )
                return level
            bar -= cfg.normalization_tolerance_db
        logger.warning(
            "block %d fundamentals %.1f dB under the strongest peak after %d retries, normalizing on it",
            block.index,
            level_db(fundamental) - level_db(strongest),
            cfg.normalization_tries,
            extra={"block_index": block.index},
        )
        return strongest
