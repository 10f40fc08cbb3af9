"""Dataclasses shared across the sync, analysis and classification layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

import numpy as np


class BlockKind(str, Enum):
    SYNC = "sync"
    SILENCE = "silence"
    REGULAR = "regular"
    WATERMARK = "watermark"


class WatermarkState(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Signal:
    """A fully loaded recording. `samples` has shape (frames, channels)."""

    samples: np.ndarray
    sample_rate: float
    name: str = ""

    def __post_init__(self) -> None:
        data = np.array(self.samples, dtype=np.float64)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        if data.ndim != 2:
            raise ValueError("samples must be 1D or (frames, channels)")
        data.setflags(write=False)
        object.__setattr__(self, "samples", data)
        object.__setattr__(self, "sample_rate", float(self.sample_rate))

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    def mono(self) -> np.ndarray:
        if self.channels == 1:
            return self.samples[:, 0]
        return self.samples.mean(axis=1)


@dataclass(frozen=True)
class SyncFormat:
    """Timing definition of one platform video mode and its sync pulse train."""

    name: str
    ms_per_frame: float
    pulse_frequency_hz: float
    pulse_frames: int
    silence_frames: int
    pulse_count: int

    def samples_per_frame(self, sample_rate: float) -> float:
        return self.ms_per_frame * sample_rate / 1000.0


@dataclass(frozen=True)
class BlockType:
    """One catalog entry. The payload meaning depends on `kind`:

    REGULAR:   `frequencies` lists fundamentals used by average normalization.
    WATERMARK: `frequencies` is exactly (valid_hz, invalid_hz).
    SYNC/SILENCE: no payload.
    """

    name: str
    kind: BlockKind
    frames: int
    count: int = 1
    skip_frames: int = 0
    frequencies: Tuple[float, ...] = ()

    @property
    def watermark_valid_hz(self) -> float:
        return float(self.frequencies[0])

    @property
    def watermark_invalid_hz(self) -> float:
        return float(self.frequencies[1])

    @property
    def comparable(self) -> bool:
        return self.kind is not BlockKind.SYNC


@dataclass(frozen=True)
class ClockSpec:
    block_name: str
    frequency_hz: float


@dataclass(frozen=True)
class BlockTypeCatalog:
    name: str
    block_types: Tuple[BlockType, ...]
    sync_formats: Tuple[SyncFormat, ...] = ()
    clock: Optional[ClockSpec] = None
    extra_frequencies: Tuple[float, ...] = ()

    @property
    def total_blocks(self) -> int:
        return sum(bt.count for bt in self.block_types)

    @property
    def comparable_blocks(self) -> int:
        return sum(bt.count for bt in self.block_types if bt.comparable)

    def sync_format(self, index: int) -> SyncFormat:
        if not 0 <= index < len(self.sync_formats):
            raise IndexError(f"profile '{self.name}' has {len(self.sync_formats)} sync formats, {index} requested")
        return self.sync_formats[index]

    def find(self, name: str) -> Optional[BlockType]:
        for bt in self.block_types:
            if bt.name == name:
                return bt
        return None


@dataclass(frozen=True)
class SyncResult:
    offset: int
    drift_ratio: float = 1.0
    samples_per_frame: float = 0.0
    confidence: float = 1.0
    end_offset: Optional[int] = None
    clock_hz: Optional[float] = None


@dataclass(frozen=True)
class Block:
    index: int
    block_type: BlockType
    sequence: int
    start: int
    length: int
    drift_ratio: float = 1.0

    @property
    def end(self) -> int:
        return self.start + self.length

    @property
    def kind(self) -> BlockKind:
        return self.block_type.kind


@dataclass(frozen=True)
class Spectrum:
    """Normalized peak list of one block, ordered by frequency.

    `frequencies` are as measured in the recording; `adjusted_frequencies`
    maps them back onto the nominal axis using the block's drift ratio.
    """

    block_index: int
    frequencies: np.ndarray
    magnitudes_db: np.ndarray
    bin_hz: float
    drift_ratio: float = 1.0
    reference_level_db: float = 0.0

    def __post_init__(self) -> None:
        freqs = np.asarray(self.frequencies, dtype=np.float64)
        mags = np.asarray(self.magnitudes_db, dtype=np.float64)
        if freqs.shape != mags.shape:
            raise ValueError("frequencies and magnitudes must have the same shape")
        order = np.argsort(freqs, kind="stable")
        object.__setattr__(self, "frequencies", freqs[order])
        object.__setattr__(self, "magnitudes_db", mags[order])

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[float, float]], *, block_index: int = 0, bin_hz: float = 1.0) -> "Spectrum":
        items = list(pairs)
        freqs = np.array([p[0] for p in items], dtype=np.float64)
        mags = np.array([p[1] for p in items], dtype=np.float64)
        return cls(block_index=block_index, frequencies=freqs, magnitudes_db=mags, bin_hz=bin_hz)

    @property
    def adjusted_frequencies(self) -> np.ndarray:
        return self.frequencies / self.drift_ratio

    @property
    def adjusted_bin_hz(self) -> float:
        return self.bin_hz / self.drift_ratio

    def __len__(self) -> int:
        return int(self.frequencies.size)

    def peak_db(self) -> Optional[float]:
        if self.magnitudes_db.size == 0:
            return None
        return float(np.max(self.magnitudes_db))


@dataclass(frozen=True)
class FrequencyDifference:
    """A missing or extra frequency."""

    frequency_hz: float
    magnitude_db: float
    hi_diff: bool = False


@dataclass(frozen=True)
class AmplitudeDifference:
    frequency_hz: float
    reference_db: float
    comparison_db: float
    delta_db: float
    hi_diff: bool = False


@dataclass(frozen=True)
class WatermarkCheck:
    reference_state: WatermarkState
    comparison_state: WatermarkState

    @property
    def passed(self) -> bool:
        return self.comparison_state is WatermarkState.VALID


@dataclass(frozen=True)
class BlockDifference:
    block_index: int
    block_name: str
    kind: BlockKind
    sequence: int = 0
    compared_frequencies: int = 0
    missing: Tuple[FrequencyDifference, ...] = ()
    extra: Tuple[FrequencyDifference, ...] = ()
    amplitude: Tuple[AmplitudeDifference, ...] = ()
    watermark: Optional[WatermarkCheck] = None

    @property
    def hi_missing(self) -> bool:
        return any(d.hi_diff for d in self.missing)

    @property
    def hi_extra(self) -> bool:
        return any(d.hi_diff for d in self.extra)

    @property
    def hi_amplitude(self) -> bool:
        return any(d.hi_diff for d in self.amplitude)

    @property
    def watermark_failed(self) -> bool:
        return self.watermark is not None and not self.watermark.passed

    @property
    def has_differences(self) -> bool:
        return bool(self.missing or self.extra or self.amplitude) or self.watermark_failed


@dataclass(frozen=True)
class ReportTotals:
    compared_blocks: int = 0
    differing_blocks: int = 0
    compared_frequencies: int = 0
    missing: int = 0
    extra: int = 0
    amplitude: int = 0
    hi_missing: int = 0
    hi_extra: int = 0
    hi_amplitude: int = 0
    watermark_failures: int = 0

    @property
    def frequency_diff(self) -> int:
        return self.missing + self.extra

    @property
    def frequency_match_percent(self) -> float:
        if self.compared_frequencies <= 0:
            return 100.0
        matched = max(self.compared_frequencies - self.missing, 0)
        return 100.0 * matched / self.compared_frequencies

    @property
    def amplitude_match_percent(self) -> float:
        if self.compared_frequencies <= 0:
            return 100.0
        matched = max(self.compared_frequencies - self.missing - self.amplitude, 0)
        return 100.0 * matched / self.compared_frequencies


@dataclass(frozen=True)
class DifferenceReport:
    blocks: Tuple[BlockDifference, ...]
    totals: ReportTotals
    profile_name: str = ""
    reference_name: str = ""
    comparison_name: str = ""
    reference_sync: Optional[SyncResult] = None
    comparison_sync: Optional[SyncResult] = None
    noise_floor_db: Optional[float] = None

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def block(self, index: int) -> Optional[BlockDifference]:
        for diff in self.blocks:
            if diff.block_index == index:
                return diff
        return None

    @property
    def differing(self) -> Tuple[BlockDifference, ...]:
        return tuple(d for d in self.blocks if d.has_differences)
