"""Comparison profile loading and serialization.

A profile is a JSON document:

    {
      "name": "240p suite",
      "sync_formats": [
        {"name": "NTSC", "ms_per_frame": 16.6833, "pulse_frequency_hz": 8000,
         "pulse_frames": 1, "silence_frames": 1, "pulse_count": 10}
      ],
      "clock": {"block": "Clock", "frequency_hz": 8000},
      "extra_frequencies": [15734.26],
      "blocks": [
        {"name": "Sync", "type": "sync", "frames": 20},
        {"name": "Silence", "type": "silence", "frames": 20},
        {"name": "Tones", "type": "regular", "frames": 20, "count": 12,
         "skip_frames": 1, "frequencies": [440, 880]},
        {"name": "Sync", "type": "sync", "frames": 20}
      ]
    }

`clock` and `extra_frequencies` are optional; `count` defaults to 1 and
`skip_frames` to 0.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping

from audiorev.compare.types import BlockKind, BlockType, BlockTypeCatalog, ClockSpec, SyncFormat
from audiorev.errors import ProfileError


def _number(data: Mapping[str, Any], key: str, where: str, *, positive: bool = True) -> float:
    if key not in data:
        raise ProfileError(f"{where}: missing '{key}'")
    try:
        value = float(data[key])
    except (TypeError, ValueError) as exc:
        raise ProfileError(f"{where}: '{key}' must be a number") from exc
    if positive and value <= 0:
        raise ProfileError(f"{where}: '{key}' must be positive")
    return value


def _sync_format(data: Mapping[str, Any], i: int) -> SyncFormat:
    where = f"sync format {i}"
    return SyncFormat(
        name=str(data.get("name") or f"format{i}"),
        ms_per_frame=_number(data, "ms_per_frame", where),
        pulse_frequency_hz=_number(data, "pulse_frequency_hz", where),
        pulse_frames=int(_number(data, "pulse_frames", where)),
        silence_frames=int(_number(data, "silence_frames", where, positive=False)),
        pulse_count=int(_number(data, "pulse_count", where)),
    )


def _block_type(data: Mapping[str, Any], i: int) -> BlockType:
    where = f"block {i}"
    name = data.get("name")
    if not name:
        raise ProfileError(f"{where}: missing 'name'")
    raw_kind = str(data.get("type", "")).strip().lower()
    try:
        kind = BlockKind(raw_kind)
    except ValueError as exc:
        raise ProfileError(f"{where} ('{name}'): unknown type '{raw_kind}'") from exc

    try:
        frequencies = tuple(float(f) for f in data.get("frequencies") or ())
    except (TypeError, ValueError) as exc:
        raise ProfileError(f"{where} ('{name}'): frequencies must be numbers") from exc
    if kind is BlockKind.WATERMARK and len(frequencies) != 2:
        raise ProfileError(f"{where} ('{name}'): watermark blocks need exactly [valid_hz, invalid_hz]")

    count = int(_number(data, "count", where)) if "count" in data else 1
    skip = int(_number(data, "skip_frames", where, positive=False)) if "skip_frames" in data else 0
    if count < 1 or skip < 0:
        raise ProfileError(f"{where} ('{name}'): count must be >= 1 and skip_frames >= 0")
    return BlockType(
        name=str(name),
        kind=kind,
        frames=int(_number(data, "frames", where)),
        count=count,
        skip_frames=skip,
        frequencies=frequencies,
    )


def catalog_from_dict(data: Mapping[str, Any]) -> BlockTypeCatalog:
    if not isinstance(data, Mapping):
        raise ProfileError("profile must be a JSON object")
    formats = tuple(_sync_format(f, i) for i, f in enumerate(data.get("sync_formats") or ()))
    if not formats:
        raise ProfileError("profile defines no sync formats")
    blocks = tuple(_block_type(b, i) for i, b in enumerate(data.get("blocks") or ()))

    clock = None
    raw_clock = data.get("clock")
    if raw_clock:
        block_name = raw_clock.get("block")
        if not block_name or not any(b.name == block_name for b in blocks):
            raise ProfileError(f"clock block '{block_name}' is not defined")
        clock = ClockSpec(str(block_name), _number(raw_clock, "frequency_hz", "clock"))

    try:
        extra = tuple(float(f) for f in data.get("extra_frequencies") or ())
    except (TypeError, ValueError) as exc:
        raise ProfileError("extra_frequencies must be numbers") from exc

    return BlockTypeCatalog(
        name=str(data.get("name") or "unnamed"),
        block_types=blocks,
        sync_formats=formats,
        clock=clock,
        extra_frequencies=extra,
    )


def load_profile(path: str) -> BlockTypeCatalog:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ProfileError(f"could not read profile '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ProfileError(f"profile '{path}' is not valid JSON: {exc}") from exc
    return catalog_from_dict(data)


def catalog_to_dict(catalog: BlockTypeCatalog) -> Dict[str, Any]:
    blocks: List[Dict[str, Any]] = []
    for bt in catalog.block_types:
        entry: Dict[str, Any] = {"name": bt.name, "type": bt.kind.value, "frames": bt.frames}
        if bt.count != 1:
            entry["count"] = bt.count
        if bt.skip_frames:
            entry["skip_frames"] = bt.skip_frames
        if bt.frequencies:
            entry["frequencies"] = list(bt.frequencies)
        blocks.append(entry)
    payload: Dict[str, Any] = {
        "name": catalog.name,
        "sync_formats": [
            {
                "name": fmt.name,
                "ms_per_frame": fmt.ms_per_frame,
                "pulse_frequency_hz": fmt.pulse_frequency_hz,
                "pulse_frames": fmt.pulse_frames,
                "silence_frames": fmt.silence_frames,
                "pulse_count": fmt.pulse_count,
            }
            for fmt in catalog.sync_formats
        ],
        "blocks": blocks,
    }
    if catalog.clock is not None:
        payload["clock"] = {"block": catalog.clock.block_name, "frequency_hz": catalog.clock.frequency_hz}
    if catalog.extra_frequencies:
        payload["extra_frequencies"] = list(catalog.extra_frequencies)
    return payload
