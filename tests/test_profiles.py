import json

import pytest

from audiorev.compare.types import BlockKind
from audiorev.errors import ProfileError
from audiorev.io.profiles import catalog_from_dict, catalog_to_dict, load_profile
from synth import make_catalog

PROFILE = {
    "name": "240p suite",
    "sync_formats": [
        {"name": "NTSC", "ms_per_frame": 16.6833, "pulse_frequency_hz": 8000, "pulse_frames": 1, "silence_frames": 1, "pulse_count": 10},
        {"name": "PAL", "ms_per_frame": 20.0, "pulse_frequency_hz": 8000, "pulse_frames": 1, "silence_frames": 1, "pulse_count": 10},
    ],
    "clock": {"block": "Clock", "frequency_hz": 8000},
    "extra_frequencies": [15734.26],
    "blocks": [
        {"name": "Sync", "type": "sync", "frames": 20},
        {"name": "Silence", "type": "silence", "frames": 20},
        {"name": "Tones", "type": "regular", "frames": 20, "count": 12, "skip_frames": 1, "frequencies": [440, 880]},
        {"name": "Clock", "type": "regular", "frames": 60},
        {"name": "Watermark", "type": "watermark", "frames": 20, "frequencies": [1000, 2000]},
        {"name": "Sync", "type": "SYNC", "frames": 20},
    ],
}


def test_catalog_from_dict() -> None:
    catalog = catalog_from_dict(PROFILE)
    assert catalog.name == "240p suite"
    assert [f.name for f in catalog.sync_formats] == ["NTSC", "PAL"]
    assert catalog.total_blocks == 17
    assert catalog.comparable_blocks == 15
    tones = catalog.find("Tones")
    assert tones.kind is BlockKind.REGULAR
    assert (tones.count, tones.skip_frames, tones.frequencies) == (12, 1, (440.0, 880.0))
    assert catalog.find("Watermark").watermark_invalid_hz == 2000.0
    assert catalog.block_types[-1].kind is BlockKind.SYNC
    assert catalog.clock.block_name == "Clock"
    assert catalog.extra_frequencies == (15734.26,)


def test_load_profile_and_round_trip(tmp_path) -> None:
    path = tmp_path / "profile.json"
    path.write_text(json.dumps(PROFILE), encoding="utf-8")
    catalog = load_profile(str(path))
    assert catalog_from_dict(catalog_to_dict(catalog)) == catalog
    synthetic = make_catalog()
    assert catalog_from_dict(catalog_to_dict(synthetic)) == synthetic


def _broken(**changes) -> dict:
    data = json.loads(json.dumps(PROFILE))
    data.update(changes)
    return data


@pytest.mark.parametrize(
    "data",
    [
        [],
        _broken(sync_formats=[]),
        _broken(blocks=[{"name": "X", "type": "noise", "frames": 10}]),
        _broken(blocks=[{"name": "W", "type": "watermark", "frames": 10, "frequencies": [1000]}]),
        _broken(blocks=[{"name": "T", "type": "regular", "frames": 0}]),
        _broken(blocks=[{"name": "T", "type": "regular", "frames": 10, "count": "many"}]),
        _broken(clock={"block": "Nope", "frequency_hz": 100}),
        _broken(sync_formats=[{"name": "bad", "ms_per_frame": 16.6}]),
    ],
)
def test_malformed_profiles_are_rejected(data) -> None:
    with pytest.raises(ProfileError):
        catalog_from_dict(data)


def test_unreadable_profile(tmp_path) -> None:
    with pytest.raises(ProfileError):
        load_profile(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ProfileError):
        load_profile(str(bad))
