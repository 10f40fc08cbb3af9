import csv
import json

from audiorev.compare.aggregator import ResultAggregator
from audiorev.compare.types import (
    AmplitudeDifference,
    BlockDifference,
    BlockKind,
    FrequencyDifference,
    SyncResult,
    WatermarkCheck,
    WatermarkState,
)
from audiorev.io.report import format_summary, report_to_dict, write_csv_report, write_json_report


def _make_report():
    agg = ResultAggregator("suite", "ref.wav", "cmp.wav")
    agg.add(
        BlockDifference(
            block_index=2,
            block_name="Tones",
            kind=BlockKind.REGULAR,
            sequence=0,
            compared_frequencies=4,
            missing=(FrequencyDifference(2500.0, -6.0, hi_diff=True),),
            extra=(FrequencyDifference(3000.0, -30.0, hi_diff=True),),
            amplitude=(AmplitudeDifference(1000.0, -20.0, -22.0, -2.0),),
        )
    )
    agg.add(BlockDifference(block_index=3, block_name="Tones", kind=BlockKind.REGULAR, sequence=1, compared_frequencies=4))
    agg.add(
        BlockDifference(
            block_index=4,
            block_name="Watermark",
            kind=BlockKind.WATERMARK,
            watermark=WatermarkCheck(WatermarkState.VALID, WatermarkState.INVALID),
        )
    )
    return agg.build(reference_sync=SyncResult(offset=10, samples_per_frame=160.0), comparison_sync=SyncResult(offset=20))


def test_report_to_dict_is_json_ready() -> None:
    data = report_to_dict(_make_report())
    assert json.loads(json.dumps(data)) == data
    assert data["profile"] == "suite"
    assert data["reference_sync"]["offset"] == 10
    assert data["totals"]["frequency_diff"] == 2
    assert data["totals"]["watermark_failures"] == 1
    assert [b["block_index"] for b in data["blocks"]] == [2, 3, 4]
    assert data["blocks"][2]["watermark"] == {"reference": "valid", "comparison": "invalid", "passed": False}
    assert data["blocks"][0]["amplitude"][0]["delta_db"] == -2.0


def test_write_json_report(tmp_path) -> None:
    path = tmp_path / "report.json"
    write_json_report(_make_report(), str(path))
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["totals"]["compared_blocks"] == 3


def test_write_csv_report_has_one_row_per_entry(tmp_path) -> None:
    path = tmp_path / "report.csv"
    rows = write_csv_report(_make_report(), str(path))
    assert rows == 4
    with open(path, newline="", encoding="utf-8") as f:
        parsed = list(csv.DictReader(f))
    assert [r["category"] for r in parsed] == ["missing", "extra", "amplitude", "watermark"]
    assert parsed[2]["delta_db"] == "-2.0"
    assert parsed[0]["hi_diff"] == "1"


def test_format_summary() -> None:
    report = _make_report()
    text = format_summary(report)
    assert "[2] Tones#0: 1 missing, 1 extra, 1 amplitude of 4" in text
    assert "[3]" not in text
    assert "watermark invalid (FAILED)" in text
    assert "Blocks compared: 3, with differences: 2" in text

    totals_only = format_summary(report, just_totals=True)
    assert "[2]" not in totals_only
    extended = format_summary(report, extended=True)
    assert "[3] Tones#1" in extended
    assert "missing    2500.00 Hz" in extended
