"""DifferenceReport serialization: JSON document, CSV rows and a text summary."""

from __future__ import annotations

import csv
import json
from dataclasses import asdict
from typing import Any, Dict, Iterator, List, Optional

from audiorev.compare.types import BlockDifference, DifferenceReport, SyncResult

CSV_FIELDS = [
    "block_index",
    "block_name",
    "sequence",
    "category",
    "frequency_hz",
    "reference_db",
    "comparison_db",
    "delta_db",
    "hi_diff",
]


def _sync_dict(sync: Optional[SyncResult]) -> Optional[Dict[str, Any]]:
    return asdict(sync) if sync is not None else None


def _block_dict(diff: BlockDifference) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "block_index": diff.block_index,
        "block_name": diff.block_name,
        "kind": diff.kind.value,
        "sequence": diff.sequence,
        "compared_frequencies": diff.compared_frequencies,
        "missing": [asdict(d) for d in diff.missing],
        "extra": [asdict(d) for d in diff.extra],
        "amplitude": [asdict(d) for d in diff.amplitude],
    }
    if diff.watermark is not None:
        out["watermark"] = {
            "reference": diff.watermark.reference_state.value,
            "comparison": diff.watermark.comparison_state.value,
            "passed": diff.watermark.passed,
        }
    return out


def report_to_dict(report: DifferenceReport) -> Dict[str, Any]:
    totals = report.totals
    return {
        "profile": report.profile_name,
        "reference": report.reference_name,
        "comparison": report.comparison_name,
        "reference_sync": _sync_dict(report.reference_sync),
        "comparison_sync": _sync_dict(report.comparison_sync),
        "noise_floor_db": report.noise_floor_db,
        "totals": dict(
            asdict(totals),
            frequency_diff=totals.frequency_diff,
            frequency_match_percent=round(totals.frequency_match_percent, 4),
            amplitude_match_percent=round(totals.amplitude_match_percent, 4),
        ),
        "blocks": [_block_dict(d) for d in report.blocks],
    }


def write_json_report(report: DifferenceReport, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report_to_dict(report), f, indent=2)
        f.write("\n")


def iter_rows(report: DifferenceReport) -> Iterator[Dict[str, Any]]:
    """One row per difference entry; watermark failures get a row without a frequency."""
    for diff in report.blocks:
        base = {"block_index": diff.block_index, "block_name": diff.block_name, "sequence": diff.sequence}
        for d in diff.missing:
            yield dict(base, category="missing", frequency_hz=d.frequency_hz, reference_db=d.magnitude_db,
                       comparison_db="", delta_db="", hi_diff=int(d.hi_diff))
        for d in diff.extra:
            yield dict(base, category="extra", frequency_hz=d.frequency_hz, reference_db="",
                       comparison_db=d.magnitude_db, delta_db="", hi_diff=int(d.hi_diff))
        for a in diff.amplitude:
            yield dict(base, category="amplitude", frequency_hz=a.frequency_hz, reference_db=a.reference_db,
                       comparison_db=a.comparison_db, delta_db=a.delta_db, hi_diff=int(a.hi_diff))
        if diff.watermark_failed:
            yield dict(base, category="watermark", frequency_hz="", reference_db="", comparison_db="",
                       delta_db="", hi_diff=1)


def write_csv_report(report: DifferenceReport, path: str) -> int:
    """Write the CSV and return the number of data rows."""
    rows = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in iter_rows(report):
            writer.writerow(row)
            rows += 1
    return rows


def format_summary(report: DifferenceReport, *, just_totals: bool = False, extended: bool = False) -> str:
    t = report.totals
    lines: List[str] = [
        f"Profile: {report.profile_name}",
        f"Reference: {report.reference_name}",
        f"Comparison: {report.comparison_name}",
    ]
    for label, sync in (("Reference", report.reference_sync), ("Comparison", report.comparison_sync)):
        if sync is not None:
            lines.append(f"{label} sync: offset {sync.offset} drift {sync.drift_ratio:.6f} confidence {sync.confidence:.3f}")
    if report.noise_floor_db is not None:
        lines.append(f"Noise floor: {report.noise_floor_db:.2f} dBFS")

    if not just_totals:
        for diff in report.blocks:
            if not diff.has_differences and not extended:
                continue
            head = f"[{diff.block_index}] {diff.block_name}#{diff.sequence}"
            if diff.watermark is not None:
                state = "ok" if diff.watermark.passed else "FAILED"
                lines.append(f"{head}: watermark {diff.watermark.comparison_state.value} ({state})")
                continue
            lines.append(
                f"{head}: {len(diff.missing)} missing, {len(diff.extra)} extra, "
                f"{len(diff.amplitude)} amplitude of {diff.compared_frequencies}"
            )
            if extended:
                for d in diff.missing:
                    lines.append(f"    missing {d.frequency_hz:10.2f} Hz {d.magnitude_db:8.2f} dBFS{' *' if d.hi_diff else ''}")
                for d in diff.extra:
                    lines.append(f"    extra   {d.frequency_hz:10.2f} Hz {d.magnitude_db:8.2f} dBFS{' *' if d.hi_diff else ''}")
                for a in diff.amplitude:
                    lines.append(f"    ampl    {a.frequency_hz:10.2f} Hz {a.delta_db:+8.2f} dB{' *' if a.hi_diff else ''}")

    lines.append(
        f"Blocks compared: {t.compared_blocks}, with differences: {t.differing_blocks}, "
        f"watermark failures: {t.watermark_failures}"
    )
    lines.append(
        f"Frequencies compared: {t.compared_frequencies}, missing: {t.missing} (hi {t.hi_missing}), "
        f"extra: {t.extra} (hi {t.hi_extra}), amplitude: {t.amplitude} (hi {t.hi_amplitude})"
    )
    lines.append(
        f"Frequency match: {t.frequency_match_percent:.2f}%, amplitude match: {t.amplitude_match_percent:.2f}%"
    )
    return "\n".join(lines)
