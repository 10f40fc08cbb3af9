"""Run configuration.

A RunConfig is built once per comparison run, validated on construction and
never mutated afterwards. Option enums accept either their value or the
single-letter codes used by the command line (`-w h`, `-a l`, `-n f`).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping

from audiorev.errors import InvalidArgument

START_HZ = 10.0
END_HZ = 20_000.0
MAX_HZ = 48_000.0
FREQ_COUNT = 2000
MAX_FREQ_COUNT = 22050
SIGNIFICANT_VOLUME = -60.0
BAR_DIFF_DB_TOLERANCE = 1.0
AMPL_HIDIFF = 6.0
MISS_HIDIFF = -40.0
EXTRA_HIDIFF = -40.0


class _CodedEnum(str, Enum):
    @classmethod
    def parse(cls, raw: Any) -> "_CodedEnum":
        if isinstance(raw, cls):
            return raw
        text = str(raw).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower(), member.code):
                return member
        raise InvalidArgument(f"invalid {cls.__name__} '{raw}'")

    @property
    def code(self) -> str:
        return self.value[0]


class WindowKind(_CodedEnum):
    NONE = "none"
    TUKEY = "tukey"
    HANN = "hann"
    FLATTOP = "flattop"
    HAMMING = "hamming"

    @property
    def code(self) -> str:
        return "m" if self is WindowKind.HAMMING else self.value[0]


class Channel(_CodedEnum):
    LEFT = "left"
    RIGHT = "right"
    STEREO = "stereo"


class Normalization(_CodedEnum):
    TIME = "max_time"
    FREQUENCY = "max_frequency"
    AVERAGE = "average"
    NONE = "none"

    @property
    def code(self) -> str:
        return {"max_time": "t", "max_frequency": "f", "average": "a", "none": "n"}[self.value]


@dataclass(frozen=True)
class RunConfig:
    """Immutable options for one comparison run."""

    # FFT and analysis
    window: WindowKind = WindowKind.TUKEY
    channel: Channel = Channel.STEREO
    start_hz: float = START_HZ
    end_hz: float = END_HZ
    max_frequencies: int = FREQ_COUNT
    zero_pad: bool = False
    quantize_round: bool = True
    channel_balance: bool = True

    # Normalization
    normalization: Normalization = Normalization.FREQUENCY
    normalization_tolerant: bool = False
    normalization_tries: int = 0
    normalization_tolerance_db: float = 6.0

    # Classification thresholds (dBFS / dB)
    significant_amplitude: float = SIGNIFICANT_VOLUME
    amplitude_bar: float = BAR_DIFF_DB_TOLERANCE
    hi_diff_amplitude: float = AMPL_HIDIFF
    hi_diff_missing: float = MISS_HIDIFF
    hi_diff_extra: float = EXTRA_HIDIFF
    ignore_floor: bool = False
    use_extra_data: bool = True

    # Synchronization
    sync_tolerance: bool = False
    sync_confidence: float = 0.8
    ignore_framerate_difference: bool = False
    reference_format: int = 0
    comparison_format: int = 0

    # Swap the recordings so the comparison becomes the reference
    reverse_compare: bool = False

    workers: int = 4

    def __post_init__(self) -> None:
        # Coerce enum fields so callers may pass plain strings or letter codes.
        object.__setattr__(self, "window", WindowKind.parse(self.window))
        object.__setattr__(self, "channel", Channel.parse(self.channel))
        object.__setattr__(self, "normalization", Normalization.parse(self.normalization))

        if not 1.0 <= self.start_hz <= END_HZ - 100.0:
            raise InvalidArgument(f"start_hz {self.start_hz} out of range (1-{END_HZ - 100.0:g})")
        if not START_HZ * 2.0 <= self.end_hz <= MAX_HZ:
            raise InvalidArgument(f"end_hz {self.end_hz} out of range ({START_HZ * 2.0:g}-{MAX_HZ:g})")
        if self.end_hz <= self.start_hz:
            raise InvalidArgument(f"invalid frequency range {self.start_hz:g}-{self.end_hz:g} Hz")
        if not 1 <= self.max_frequencies <= MAX_FREQ_COUNT:
            raise InvalidArgument(f"max_frequencies must be between 1 and {MAX_FREQ_COUNT}")
        if not -120.0 < self.significant_amplitude < -1.0:
            raise InvalidArgument("significant_amplitude must be between -120 and -1 dBFS")
        if not 0.0 <= self.amplitude_bar <= 16.0:
            raise InvalidArgument("amplitude_bar must be between 0 and 16 dB")
        if self.normalization_tries < 0 or self.normalization_tolerance_db < 0.0:
            raise InvalidArgument("normalization retries and tolerance must not be negative")
        if not 0.0 < self.sync_confidence <= 1.0:
            raise InvalidArgument("sync_confidence must be within (0, 1]")
        if self.reference_format < 0 or self.comparison_format < 0:
            raise InvalidArgument("sync format indexes must not be negative")
        if self.workers < 1:
            raise InvalidArgument("workers must be at least 1")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "RunConfig":
        """Build from a mapping, ignoring unknown keys and None values."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {k: v for k, v in values.items() if k in known and v is not None}
        return cls(**kwargs)

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly view, used for logging and report metadata."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, Enum) else value
        return out
