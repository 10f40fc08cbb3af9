import random
import threading

import pytest

from audiorev.compare.aggregator import ResultAggregator
from audiorev.compare.types import (
    AmplitudeDifference,
    BlockDifference,
    BlockKind,
    FrequencyDifference,
    WatermarkCheck,
    WatermarkState,
)
from audiorev.errors import InvalidArgument


def _diff(index: int, *, missing: int = 0, extra: int = 0, amplitude: int = 0, watermark_ok=None) -> BlockDifference:
    watermark = None
    if watermark_ok is not None:
        state = WatermarkState.VALID if watermark_ok else WatermarkState.INVALID
        watermark = WatermarkCheck(WatermarkState.VALID, state)
    return BlockDifference(
        block_index=index,
        block_name=f"b{index}",
        kind=BlockKind.WATERMARK if watermark else BlockKind.REGULAR,
        compared_frequencies=10 if watermark is None else 0,
        missing=tuple(FrequencyDifference(100.0 * i, -20.0, hi_diff=True) for i in range(missing)),
        extra=tuple(FrequencyDifference(150.0 * i, -50.0) for i in range(extra)),
        amplitude=tuple(AmplitudeDifference(200.0 * i, -10.0, -12.0, -2.0) for i in range(amplitude)),
        watermark=watermark,
    )


def test_report_is_ordered_by_block_index() -> None:
    agg = ResultAggregator("p", "ref.wav", "cmp.wav")
    for index in (7, 2, 5, 1):
        agg.add(_diff(index))
    report = agg.build()
    assert [d.block_index for d in report] == [1, 2, 5, 7]
    assert report.profile_name == "p" and report.comparison_name == "cmp.wav"
    assert report.block(5).block_name == "b5"
    assert report.block(3) is None


def test_totals() -> None:
    agg = ResultAggregator()
    agg.add(_diff(1, missing=2, extra=1))
    agg.add(_diff(2, amplitude=3))
    agg.add(_diff(3))
    agg.add(_diff(4, watermark_ok=False))
    agg.add(_diff(5, watermark_ok=True))
    totals = agg.build().totals
    assert totals.compared_blocks == 5
    assert totals.differing_blocks == 3
    assert totals.compared_frequencies == 30
    assert (totals.missing, totals.extra, totals.amplitude) == (2, 1, 3)
    assert totals.frequency_diff == 3
    assert (totals.hi_missing, totals.hi_extra, totals.hi_amplitude) == (2, 0, 0)
    assert totals.watermark_failures == 1
    assert totals.frequency_match_percent == pytest.approx(100.0 * 28 / 30)
    assert totals.amplitude_match_percent == pytest.approx(100.0 * 25 / 30)


def test_empty_report_matches_fully() -> None:
    report = ResultAggregator().build()
    assert len(report) == 0
    assert report.totals.frequency_match_percent == 100.0


def test_duplicates_and_late_adds_are_rejected() -> None:
    agg = ResultAggregator()
    agg.add(_diff(1))
    with pytest.raises(InvalidArgument):
        agg.add(_diff(1))
    report = agg.build()
    assert agg.build() is report
    with pytest.raises(RuntimeError):
        agg.add(_diff(2))


def test_concurrent_adds_keep_every_block() -> None:
    agg = ResultAggregator()
    indexes = list(range(200))
    random.Random(4).shuffle(indexes)
    chunks = [indexes[i::8] for i in range(8)]

    def worker(chunk) -> None:
        for index in chunk:
            agg.add(_diff(index, extra=1))

    threads = [threading.Thread(target=worker, args=(c,)) for c in chunks]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    report = agg.build()
    assert [d.block_index for d in report] == list(range(200))
    assert report.totals.extra == 200
