import numpy as np
import pytest

from audiorev.compare.types import Block, BlockKind, BlockType, Signal
from audiorev.config import Normalization, RunConfig, WindowKind
from audiorev.dsp.fft import FORWARD, INVERSE, SpectralAnalyzer, local_peaks, nearest_bins
from audiorev.errors import InvalidArgument
from synth import SR, tones


def _block(length: int = SR, kind: BlockKind = BlockKind.REGULAR, freqs=(1000.0,), start: int = 0) -> Block:
    bt = BlockType("Tones", kind, frames=50, frequencies=tuple(freqs))
    return Block(index=2, block_type=bt, sequence=0, start=start, length=length)


def _strong(spectrum, floor: float = -100.0) -> dict:
    keep = spectrum.magnitudes_db > floor
    return dict(zip(spectrum.frequencies[keep].tolist(), spectrum.magnitudes_db[keep].tolist()))


def _analyze(signal: Signal, block: Block, **options):
    options.setdefault("window", WindowKind.HANN)
    with SpectralAnalyzer(RunConfig(**options)) as analyzer:
        return analyzer.analyze(signal, block)


def test_full_scale_sine_reads_zero_dbfs() -> None:
    signal = Signal(tones([(1000.0, 0.0)], SR), SR)
    spectrum = _analyze(signal, _block(), normalization=Normalization.NONE)
    levels = _strong(spectrum)
    assert list(levels) == [1000.0]
    assert levels[1000.0] == pytest.approx(0.0, abs=0.01)


@pytest.mark.parametrize("kind", [WindowKind.TUKEY, WindowKind.HANN, WindowKind.HAMMING, WindowKind.FLATTOP, WindowKind.NONE])
def test_level_is_window_independent(kind: WindowKind) -> None:
    signal = Signal(tones([(1000.0, -20.0)], SR), SR)
    spectrum = _analyze(signal, _block(), normalization=Normalization.NONE, window=kind)
    idx = int(np.argmax(spectrum.magnitudes_db))
    assert spectrum.frequencies[idx] == 1000.0
    assert spectrum.magnitudes_db[idx] == pytest.approx(-20.0, abs=0.05)


def test_frequency_normalization_puts_peak_at_zero_and_keeps_relative_levels() -> None:
    signal = Signal(tones([(1000.0, -12.0), (2500.0, -30.0)], SR), SR)
    spectrum = _analyze(signal, _block())
    levels = _strong(spectrum)
    assert levels[1000.0] == pytest.approx(0.0, abs=0.01)
    assert levels[2500.0] == pytest.approx(-18.0, abs=0.01)
    assert spectrum.reference_level_db == pytest.approx(-12.0, abs=0.01)


def test_normalization_round_trip_restores_levels() -> None:
    signal = Signal(tones([(1000.0, -6.0), (3000.0, -26.0)], SR), SR)
    raw = _analyze(signal, _block(), normalization=Normalization.NONE)
    normalized = _analyze(signal, _block(), normalization=Normalization.FREQUENCY)
    expected = _strong(raw)
    restored = _strong(normalized, floor=-100.0 - normalized.reference_level_db)
    assert list(restored) == list(expected) == [1000.0, 3000.0]
    for freq, level in restored.items():
        assert level + normalized.reference_level_db == pytest.approx(expected[freq], abs=0.02)


def test_time_normalization_scales_to_sample_peak() -> None:
    signal = Signal(tones([(1000.0, -20.0)], SR), SR)
    spectrum = _analyze(signal, _block(), normalization=Normalization.TIME)
    assert spectrum.magnitudes_db.max() == pytest.approx(0.0, abs=0.05)


def test_average_normalization_uses_fundamentals() -> None:
    signal = Signal(tones([(1000.0, -10.0), (3000.0, -4.0)], SR), SR)
    spectrum = _analyze(signal, _block(freqs=(1000.0,)), normalization=Normalization.AVERAGE)
    levels = _strong(spectrum)
    assert levels[1000.0] == pytest.approx(0.0, abs=0.01)
    assert levels[3000.0] == pytest.approx(6.0, abs=0.01)


def test_silence_blocks_are_never_rescaled() -> None:
    signal = Signal(tones([(700.0, -70.0)], SR), SR)
    spectrum = _analyze(signal, _block(kind=BlockKind.SILENCE, freqs=()))
    assert spectrum.peak_db() == pytest.approx(-70.0, abs=0.05)


def test_silence_peaks_at_or_below_floor_are_dropped() -> None:
    signal = Signal(tones([(700.0, -70.0), (900.0, -50.0)], SR), SR)
    with SpectralAnalyzer(RunConfig(window=WindowKind.HANN)) as analyzer:
        spectrum = analyzer.analyze(signal, _block(kind=BlockKind.SILENCE, freqs=()), noise_floor_db=-69.5)
    assert spectrum.frequencies.tolist() == [900.0]


def test_tolerant_normalization_skips_a_spur_louder_than_the_fundamental() -> None:
    # 60 Hz hum at -20 dBFS over a -40 dBFS test tone
    signal = Signal(tones([(60.0, -20.0), (1000.0, -40.0)], SR), SR)
    plain = _analyze(signal, _block())
    assert plain.reference_level_db == pytest.approx(-20.0, abs=0.01)

    tolerant = _analyze(signal, _block(), normalization_tolerant=True, normalization_tries=1)
    assert tolerant.reference_level_db == pytest.approx(-40.0, abs=0.01)
    levels = _strong(tolerant)
    assert levels[1000.0] == pytest.approx(0.0, abs=0.01)
    assert levels[60.0] == pytest.approx(20.0, abs=0.01)


def test_tolerant_normalization_falls_back_to_the_strongest_peak() -> None:
    signal = Signal(tones([(60.0, -20.0), (1000.0, -40.0)], SR), SR)
    spent = _analyze(signal, _block(), normalization_tolerant=True, normalization_tries=0)
    assert spent.reference_level_db == pytest.approx(-20.0, abs=0.01)
    assert spent.peak_db() == pytest.approx(0.0, abs=0.01)


def test_tolerant_normalization_still_scales_a_quiet_block() -> None:
    signal = Signal(tones([(1000.0, -80.0)], SR), SR)
    spectrum = _analyze(signal, _block(), normalization_tolerant=True, normalization_tries=1)
    assert spectrum.reference_level_db == pytest.approx(-80.0, abs=0.01)
    assert spectrum.peak_db() == pytest.approx(0.0, abs=0.01)


def test_range_and_count_limits() -> None:
    signal = Signal(tones([(50.0, -10.0), (1000.0, -20.0), (2000.0, -30.0), (3000.0, -40.0)], SR), SR)
    spectrum = _analyze(signal, _block(), normalization=Normalization.NONE, start_hz=100.0, max_frequencies=2)
    assert sorted(_strong(spectrum)) == [1000.0, 2000.0]


def test_zero_padding_gives_one_hz_bins() -> None:
    signal = Signal(tones([(1000.0, -20.0)], 6000), SR)
    with SpectralAnalyzer(RunConfig(zero_pad=True)) as analyzer:
        spectrum = analyzer.analyze(signal, _block(length=6000))
        assert spectrum.bin_hz == pytest.approx(1.0)
    with SpectralAnalyzer(RunConfig()) as analyzer:
        assert analyzer.analyze(signal, _block(length=6000)).bin_hz == pytest.approx(SR / 6000)


def test_channel_selection() -> None:
    left = tones([(1000.0, -20.0)], SR)
    right = tones([(2000.0, -20.0)], SR)
    signal = Signal(np.column_stack([left, right]), SR)
    only_right = _analyze(signal, _block(), channel="r", normalization=Normalization.NONE)
    assert only_right.frequencies[np.argmax(only_right.magnitudes_db)] == 2000.0
    both = _analyze(signal, _block(), channel="s", normalization=Normalization.NONE)
    present = both.frequencies[both.magnitudes_db > -60.0].tolist()
    assert present == [1000.0, 2000.0]


def test_block_outside_signal_is_rejected() -> None:
    signal = Signal(np.zeros(100), SR)
    with SpectralAnalyzer(RunConfig()) as analyzer:
        with pytest.raises(InvalidArgument):
            analyzer.block_samples(signal, _block(length=200))


def test_plans_are_shared_and_released() -> None:
    analyzer = SpectralAnalyzer(RunConfig())
    assert analyzer.plan(1024) is analyzer.plan(1024, FORWARD)
    assert analyzer.plan(1024, INVERSE) is not analyzer.plan(1024, FORWARD)
    assert analyzer.plan_count == 2
    analyzer.close()
    assert analyzer.plan_count == 0
    with pytest.raises(RuntimeError):
        analyzer.plan(1024)


def test_local_peaks_and_nearest_bins() -> None:
    data = np.array([0.0, 3.0, 1.0, 1.0, 5.0, 5.0, 2.0])
    assert local_peaks(data).tolist() == [1, 4]
    freqs = np.arange(0.0, 10.0, 1.0)
    assert nearest_bins(freqs, [2.2, 7.8, 100.0]).tolist() == [2, 8, 9]
