"""Sync pulse detection and framerate drift estimation.

Each recording is searched for the pulse train of its selected sync format.
Every pulse is matched on its own with a quadrature filter (sine and cosine
templates one pulse long), so the match depends neither on the carrier phase
of the capture nor on phase drift accumulated between pulses when the
recording runs slightly fast or slow. The train score adds the pulse
envelopes at their nominal spacing:

    R(k) = sum_i |P(k + i * period)| / sqrt(E_x(k) * E_g / 2)

where |P| is the quadrature magnitude of the single-pulse correlation, E_x(k)
the recording energy under the whole pattern at lag k and E_g the energy of
the on/off gate. A clean capture of the pulse train scores 1.0; a continuous
tone at the pulse frequency scores sqrt(on / pattern). The strongest lag
within one pattern length of the first lag above the confidence threshold is
the sync; the first pulse alone refines it to the exact sample with the
in-phase correlation.

Drift comes from the distance between the opening and the closing sync,
or from a designated clock block when the profile has one.
"""

from __future__ import annotations

import math
from typing import List, Optional, Tuple

import numpy as np
import scipy.fft

from audiorev.compare.timeline import TimelineEntry, expand_catalog, sync_entries
from audiorev.compare.types import Block, BlockTypeCatalog, Signal, SyncFormat, SyncResult
from audiorev.config import RunConfig, WindowKind
from audiorev.dsp.fft import FORWARD, INVERSE, SpectralAnalyzer
from audiorev.errors import InvalidArgument, SyncNotFound
from audiorev.util.logging import get_logger, with_context
from audiorev.util.math import DB_FLOOR

SYNC_TOLERANCE_RELAX = 0.7
END_SYNC_SEARCH_RATIO = 0.05
CLOCK_SEARCH_RATIO = 0.1
MIN_RMS = 1e-5

logger = get_logger(__name__)


def pulse_layout(fmt: SyncFormat, sample_rate: float) -> Tuple[int, int, int]:
    """(pulse, period, pattern) lengths in samples.

    The pattern starts with the first pulse and ends with the last one.
    """
    spf = fmt.samples_per_frame(sample_rate)
    pulse = int(round(fmt.pulse_frames * spf))
    period = pulse + int(round(fmt.silence_frames * spf))
    if pulse <= 0 or fmt.pulse_count <= 0:
        raise InvalidArgument(f"sync format '{fmt.name}' defines an empty pulse train")
    return pulse, period, period * (fmt.pulse_count - 1) + pulse


def pulse_templates(fmt: SyncFormat, sample_rate: float) -> Tuple[np.ndarray, np.ndarray]:
    """In-phase and quadrature templates of a single sync pulse.

    The in-phase template is the waveform a generator emits for each pulse.
    """
    pulse, _, _ = pulse_layout(fmt, sample_rate)
    phase = 2.0 * np.pi * fmt.pulse_frequency_hz * np.arange(pulse) / sample_rate
    return np.sin(phase), np.cos(phase)


def parabolic_peak(freqs: np.ndarray, mags: np.ndarray, k: int) -> float:
    """Refine a spectral peak position with a parabola through the log magnitudes."""
    if k <= 0 or k >= mags.size - 1:
        return float(freqs[k])
    a, b, c = np.log(np.maximum(mags[k - 1 : k + 2], DB_FLOOR))
    denom = a - 2.0 * b + c
    if denom == 0.0:
        return float(freqs[k])
    delta = 0.5 * (a - c) / denom
    return float(freqs[k] + delta * (freqs[k + 1] - freqs[k]))


class Synchronizer:
    """Locate the catalog timeline inside each recording."""

    def __init__(self, config: RunConfig, catalog: BlockTypeCatalog, analyzer: SpectralAnalyzer):
        self.config = config
        self.catalog = catalog
        self.analyzer = analyzer
        self.timeline: List[TimelineEntry] = expand_catalog(catalog)
        self.threshold = config.sync_confidence * (SYNC_TOLERANCE_RELAX if config.sync_tolerance else 1.0)

    def format_for(self, role: str) -> SyncFormat:
        index = self.config.comparison_format if role == "comparison" else self.config.reference_format
        try:
            return self.catalog.sync_format(index)
        except IndexError as exc:
            raise InvalidArgument(str(exc)) from exc

    def synchronize_pair(self, reference: Signal, comparison: Signal) -> Tuple[SyncResult, SyncResult]:
        return self.synchronize(reference, "reference"), self.synchronize(comparison, "comparison")

    def synchronize(self, signal: Signal, role: str = "reference") -> SyncResult:
        log = with_context(logger, role=role)
        fmt = self.format_for(role)
        sample_rate = signal.sample_rate
        spf = fmt.samples_per_frame(sample_rate)
        syncs = sync_entries(self.timeline)
        if not syncs:
            log.info("profile has no sync blocks, aligning %s at sample 0", signal.name or role)
            return SyncResult(offset=0, drift_ratio=1.0, samples_per_frame=spf, confidence=0.0)

        x = signal.mono()
        templates = pulse_templates(fmt, sample_rate)
        anchor, confidence = self._locate(x, templates, 0, x.size, fmt, sample_rate, role, signal.name)
        log.info("opening sync at sample %d (%.3fs) confidence %.3f", anchor, anchor / sample_rate, confidence)

        first = syncs[0]
        drift = 1.0
        end_offset: Optional[int] = None
        if len(syncs) > 1 and not self.config.ignore_framerate_difference:
            last = syncs[-1]
            span = (last.position_frames - first.position_frames) * spf
            ratio = END_SYNC_SEARCH_RATIO * (2.0 if self.config.sync_tolerance else 1.0)
            margin = int(math.ceil(span * ratio))
            expected = anchor + int(round(span))
            lo = max(anchor + 1, expected - margin)
            end_offset, _ = self._locate(x, templates, lo, expected + margin + 1, fmt, sample_rate, role, signal.name)
            drift = span / float(end_offset - anchor)
            log.info("closing sync at sample %d, spacing drift %.6f", end_offset, drift)

        clock_hz: Optional[float] = None
        if self.catalog.clock is not None and not self.config.ignore_framerate_difference:
            measured = self._measure_clock(signal, spf, anchor, first, drift, role)
            if measured is not None:
                clock_hz = measured
                drift = measured / self.catalog.clock.frequency_hz
                log.info("clock %.2f Hz (nominal %.2f Hz), drift %.6f", measured, self.catalog.clock.frequency_hz, drift)

        offset = anchor - int(round(first.position_frames * spf / drift))
        return SyncResult(
            offset=offset,
            drift_ratio=drift,
            samples_per_frame=spf,
            confidence=confidence,
            end_offset=end_offset,
            clock_hz=clock_hz,
        )

    def _correlate(self, x: np.ndarray, templates: Tuple[np.ndarray, np.ndarray]) -> Tuple[np.ndarray, np.ndarray]:
        """Valid-mode correlation of x with both pulse templates through the analyzer's plans."""
        length = templates[0].size
        size = scipy.fft.next_fast_len(x.size + length - 1, real=True)
        forward = self.analyzer.plan(size, FORWARD)
        inverse = self.analyzer.plan(size, INVERSE)
        spectrum = forward.execute(x)
        valid = x.size - length + 1
        out = []
        for template in templates:
            corr = inverse.execute(spectrum * np.conj(forward.execute(template)))
            out.append(corr[:valid])
        return out[0], out[1]

    def _locate(
        self,
        x: np.ndarray,
        templates: Tuple[np.ndarray, np.ndarray],
        lo: int,
        hi: int,
        fmt: SyncFormat,
        sample_rate: float,
        role: str,
        name: str,
    ) -> Tuple[int, float]:
        """Best lag in [lo, hi) and its confidence; raises SyncNotFound."""
        pulse, period, length = pulse_layout(fmt, sample_rate)
        lo = max(0, int(lo))
        segment = x[lo : min(x.size, int(hi) + length - 1)]
        if segment.size < length:
            raise SyncNotFound(role, name, "recording too short for the sync pattern")

        in_phase, quadrature = self._correlate(segment, templates)
        envelope = np.hypot(in_phase, quadrature)
        lags = segment.size - length + 1
        train = np.zeros(lags, dtype=np.float64)
        for i in range(fmt.pulse_count):
            train += envelope[i * period : i * period + lags]

        sq = np.concatenate(([0.0], np.cumsum(np.square(segment))))
        energy = sq[length:] - sq[:-length]
        gate_energy = fmt.pulse_count * float(np.sum(np.square(templates[0]) + np.square(templates[1])))
        norm = np.sqrt(np.maximum(energy, 0.0) * gate_energy / 2.0)
        valid = energy > length * MIN_RMS * MIN_RMS
        score = np.zeros(lags, dtype=np.float64)
        score[valid] = train[valid] / norm[valid]

        above = np.flatnonzero(score >= self.threshold)
        if above.size == 0:
            best = float(score.max()) if score.size else 0.0
            raise SyncNotFound(role, name, f"best confidence {best:.2f} below {self.threshold:.2f}")
        # partial overlaps of the pulse train score above threshold up to one pattern early
        first = int(above[0])
        candidate = first + int(np.argmax(score[first : first + length]))

        if self.config.sync_tolerance:
            reach = int(round(fmt.samples_per_frame(sample_rate)))
            a, b = max(0, candidate - reach), min(score.size, candidate + reach + 1)
            candidate = a + int(np.argmax(score[a:b]))

        # under drift the train peak spreads over the pulse offsets; the first pulse fixes the lag
        reach = pulse // 2
        a, b = max(0, candidate - reach), min(envelope.size, candidate + reach + 1)
        first_pulse = a + int(np.argmax(envelope[a:b]))

        half_period = max(1, int(round(sample_rate / fmt.pulse_frequency_hz / 2.0)))
        a, b = max(0, first_pulse - half_period), min(in_phase.size, first_pulse + half_period + 1)
        best_lag = a + int(np.argmax(in_phase[a:b]))
        return lo + best_lag, float(min(score[candidate], 1.0))

    def _measure_clock(
        self,
        signal: Signal,
        spf: float,
        anchor: int,
        first: TimelineEntry,
        drift: float,
        role: str,
    ) -> Optional[float]:
        clock = self.catalog.clock
        if clock is None:
            return None
        entry = next((e for e in self.timeline if e.block_type.name == clock.block_name), None)
        if entry is None:
            logger.warning("clock block '%s' not in profile timeline", clock.block_name, extra={"role": role})
            return None
        scaled = spf / drift
        block = Block(
            index=entry.index,
            block_type=entry.block_type,
            sequence=entry.sequence,
            start=anchor + int(round((entry.position_frames - first.position_frames) * scaled)),
            length=int(round(entry.block_type.frames * scaled)),
            drift_ratio=drift,
        )
        if block.start < 0 or block.end > signal.frames:
            logger.warning("clock block %d outside recording, keeping spacing drift", block.index, extra={"role": role})
            return None

        samples = self.analyzer.block_samples(signal, block)
        per_second = int(round(signal.sample_rate))
        size = max(block.length, int(math.ceil(block.length / per_second)) * per_second)
        freqs, mags, _ = self.analyzer.magnitude_spectrum(
            samples, signal.sample_rate, kind=WindowKind.HANN, size=size, block_index=block.index
        )
        nominal = clock.frequency_hz
        band = np.flatnonzero((freqs >= nominal * (1.0 - CLOCK_SEARCH_RATIO)) & (freqs <= nominal * (1.0 + CLOCK_SEARCH_RATIO)))
        if band.size == 0 or float(np.max(mags[band])) <= DB_FLOOR:
            logger.warning("no clock tone near %.1f Hz", nominal, extra={"role": role})
            return None
        k = int(band[np.argmax(mags[band])])
        return parabolic_peak(freqs, mags, k)
