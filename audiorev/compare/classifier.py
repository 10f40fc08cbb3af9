"""Per-block classification of spectral differences."""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from audiorev.compare.types import (
    AmplitudeDifference,
    Block,
    BlockDifference,
    BlockKind,
    BlockTypeCatalog,
    FrequencyDifference,
    Spectrum,
    WatermarkCheck,
    WatermarkState,
)
from audiorev.config import RunConfig
from audiorev.errors import InvalidArgument

MATCH_EPSILON = 1e-9
EXTRA_DATA_MIN_TOLERANCE_HZ = 1.0


def _nearest(sorted_freqs: np.ndarray, target: float) -> Tuple[int, float]:
    """Index of and distance to the closest entry, (-1, inf) when empty."""
    if sorted_freqs.size == 0:
        return -1, float("inf")
    i = int(np.searchsorted(sorted_freqs, target))
    best, dist = -1, float("inf")
    for j in (i - 1, i):
        if 0 <= j < sorted_freqs.size:
            d = abs(float(sorted_freqs[j]) - target)
            if d < dist:
                best, dist = j, d
    return best, dist


class DifferenceClassifier:
    def __init__(self, config: RunConfig, catalog: BlockTypeCatalog):
        self.config = config
        self.catalog = catalog
        self._extra_data = np.array(sorted(catalog.extra_frequencies), dtype=np.float64)

    def present(self, spectrum: Spectrum) -> Tuple[np.ndarray, np.ndarray]:
        """(adjusted frequencies, magnitudes) strictly above the significance threshold."""
        keep = spectrum.magnitudes_db > self.config.significant_amplitude
        return spectrum.adjusted_frequencies[keep], spectrum.magnitudes_db[keep]

    def classify(self, reference: Spectrum, comparison: Spectrum, block: Block) -> BlockDifference:
        kind = block.kind
        if kind is BlockKind.SYNC:
            raise InvalidArgument(f"block {block.index} is a sync block and cannot be compared")
        tolerance = max(reference.adjusted_bin_hz, comparison.adjusted_bin_hz) / 2.0 + MATCH_EPSILON

        if kind is BlockKind.WATERMARK:
            check = WatermarkCheck(
                reference_state=self.watermark_state(reference, block, tolerance),
                comparison_state=self.watermark_state(comparison, block, tolerance),
            )
            return BlockDifference(
                block_index=block.index,
                block_name=block.block_type.name,
                kind=kind,
                sequence=block.sequence,
                watermark=check,
            )
        if kind in (BlockKind.REGULAR, BlockKind.SILENCE):
            return self._compare_spectra(reference, comparison, block, tolerance)
        raise InvalidArgument(f"unsupported block kind {kind!r}")

    def _compare_spectra(self, reference: Spectrum, comparison: Spectrum, block: Block, tolerance: float) -> BlockDifference:
        cfg = self.config
        ref_f, ref_m = self.present(reference)
        cmp_f, cmp_m = self.present(comparison)

        missing: List[FrequencyDifference] = []
        amplitude: List[AmplitudeDifference] = []
        matched = np.zeros(cmp_f.size, dtype=bool)
        for freq, mag in zip(ref_f, ref_m):
            j, dist = _nearest(cmp_f, float(freq))
            if j < 0 or dist > tolerance:
                missing.append(FrequencyDifference(float(freq), float(mag), hi_diff=bool(mag > cfg.hi_diff_missing)))
                continue
            matched[j] = True
            delta = round(float(cmp_m[j]) - float(mag), 6)
            if abs(delta) > cfg.amplitude_bar:
                amplitude.append(
                    AmplitudeDifference(
                        frequency_hz=float(freq),
                        reference_db=float(mag),
                        comparison_db=float(cmp_m[j]),
                        delta_db=delta,
                        hi_diff=abs(delta) > cfg.hi_diff_amplitude,
                    )
                )

        extra: List[FrequencyDifference] = []
        for j in np.flatnonzero(~matched):
            freq, mag = float(cmp_f[j]), float(cmp_m[j])
            _, dist = _nearest(ref_f, freq)
            if dist <= tolerance:
                continue
            if self._is_extra_data(freq, tolerance):
                continue
            extra.append(FrequencyDifference(freq, mag, hi_diff=mag > cfg.hi_diff_extra))

        return BlockDifference(
            block_index=block.index,
            block_name=block.block_type.name,
            kind=block.kind,
            sequence=block.sequence,
            compared_frequencies=int(ref_f.size),
            missing=tuple(missing),
            extra=tuple(extra),
            amplitude=tuple(amplitude),
        )

    def _is_extra_data(self, freq: float, tolerance: float) -> bool:
        if not self.config.use_extra_data:
            return False
        _, dist = _nearest(self._extra_data, freq)
        return dist <= max(tolerance, EXTRA_DATA_MIN_TOLERANCE_HZ)

    def watermark_state(self, spectrum: Spectrum, block: Block, tolerance: Optional[float] = None) -> WatermarkState:
        if tolerance is None:
            tolerance = spectrum.adjusted_bin_hz / 2.0 + MATCH_EPSILON
        freqs, _ = self.present(spectrum)
        valid = _nearest(freqs, block.block_type.watermark_valid_hz)[1] <= tolerance
        invalid = _nearest(freqs, block.block_type.watermark_invalid_hz)[1] <= tolerance
        if valid and not invalid:
            return WatermarkState.VALID
        if invalid and not valid:
            return WatermarkState.INVALID
        return WatermarkState.UNKNOWN
