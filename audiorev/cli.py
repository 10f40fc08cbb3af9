#!/usr/bin/env python3
"""audiorev CLI entrypoint (package module)."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from audiorev.compare.engine import ComparisonEngine
from audiorev.config import RunConfig
from audiorev.errors import (
    AnalysisError,
    AudioLoadError,
    EmptyCatalog,
    InvalidArgument,
    NoBlocks,
    ProfileError,
    SignalTruncated,
    SyncNotFound,
)
from audiorev.io.audio import load_signal
from audiorev.io.profiles import load_profile
from audiorev.io.report import format_summary, write_csv_report, write_json_report
from audiorev.util.exit_codes import ExitCode
from audiorev.util.logging import configure_logging, get_logger, log_exception

# RunConfig fields settable from --options or from the flag with the same dest.
_CONFIG_FLAGS = (
    "window",
    "channel",
    "start_hz",
    "end_hz",
    "max_frequencies",
    "zero_pad",
    "normalization",
    "normalization_tolerant",
    "normalization_tries",
    "significant_amplitude",
    "amplitude_bar",
    "ignore_floor",
    "sync_tolerance",
    "ignore_framerate_difference",
    "reference_format",
    "comparison_format",
    "reverse_compare",
    "hi_diff_amplitude",
    "hi_diff_missing",
    "hi_diff_extra",
    "normalization_tolerance_db",
    "workers",
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]

    p = argparse.ArgumentParser(
        description="Compare the spectral content of two recordings of the same test signal",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("-P", "--profile", required=True, help="Profile JSON describing the block timeline")
    p.add_argument("-r", "--reference", required=True, help="Reference WAV recording")
    p.add_argument("-c", "--comparison", required=True, help="Comparison WAV recording")
    p.add_argument("--options", type=str, help="JSON file with run options; command-line flags take precedence")

    p.add_argument("-a", "--channel", help="Channel to compare: s(tereo), l(eft) or r(ight) (default s)")
    p.add_argument("-w", "--window", help="Window: n(one), t(ukey), h(ann), f(lattop) or m (hamming) (default t)")
    p.add_argument("-f", "--max-frequencies", dest="max_frequencies", type=int, help="Strongest peaks kept per block (default 2000)")
    p.add_argument("-s", "--start-hz", dest="start_hz", type=float, help="Start of the compared range in Hz (default 10)")
    p.add_argument("-e", "--end-hz", dest="end_hz", type=float, help="End of the compared range in Hz (default 20000)")
    p.add_argument("-z", "--zero-pad", dest="zero_pad", action="store_true", help="Zero pad blocks to 1 Hz bins")
    p.add_argument("-q", "--no-round", dest="no_round", action="store_true", help="Do not round frequencies and amplitudes to 0.01")
    p.add_argument("-n", "--normalization", help="t(ime) max, f(requency) max, a(verage) or n(one) (default f)")
    p.add_argument("--normalization-tolerant", dest="normalization_tolerant", action="store_true", help="Normalize on a weaker peak when the strongest one buries the block fundamentals")
    p.add_argument("--normalization-tries", dest="normalization_tries", type=int, help="Bounded retries for tolerant normalization (default 0)")
    p.add_argument("--normalization-tolerance", dest="normalization_tolerance_db", type=float, help="dB the tolerant bar widens per retry (default 6)")
    p.add_argument("-p", "--significant", dest="significant_amplitude", type=float, help="Significant amplitude in dBFS (default -60)")
    p.add_argument("-b", "--bar", dest="amplitude_bar", type=float, help="Amplitude match tolerance in dB (default 1.0)")
    p.add_argument("--hi-diff-amplitude", dest="hi_diff_amplitude", type=float, help="Amplitude delta in dB flagged as hi-diff (default 6)")
    p.add_argument("--hi-diff-missing", dest="hi_diff_missing", type=float, help="Missing entries louder than this dBFS are hi-diff (default -40)")
    p.add_argument("--hi-diff-extra", dest="hi_diff_extra", type=float, help="Extra entries louder than this dBFS are hi-diff (default -40)")
    p.add_argument("-i", "--ignore-floor", dest="ignore_floor", action="store_true", help="Ignore the silence block noise floor")
    p.add_argument("-B", "--no-balance", dest="no_balance", action="store_true", help="Do not balance stereo channels")
    p.add_argument("-I", "--ignore-framerate", dest="ignore_framerate_difference", action="store_true", help="Ignore frame rate difference")
    p.add_argument("-T", "--sync-tolerance", dest="sync_tolerance", action="store_true", help="Increase sync detection tolerance")
    p.add_argument("-X", "--no-extra-data", dest="no_extra_data", action="store_true", help="Do not use extra data frequencies from the profile")
    p.add_argument("-Y", "--reference-format", dest="reference_format", type=int, help="Sync format index for the reference (default 0)")
    p.add_argument("-Z", "--comparison-format", dest="comparison_format", type=int, help="Sync format index for the comparison (default 0)")
    p.add_argument("-R", "--reverse", dest="reverse_compare", action="store_true", help="Swap the recordings: compare the reference against the comparison")
    p.add_argument("--workers", type=int, help="Block analysis threads (default 4)")

    p.add_argument("-C", "--csv", type=str, help="Write one CSV row per difference to this path")
    p.add_argument("--json", type=str, help="Write the full report as JSON to this path")
    p.add_argument("-j", "--just-totals", dest="just_totals", action="store_true", help="Only print run totals")
    p.add_argument("-x", "--extended", action="store_true", help="Print every difference entry")
    p.add_argument("--log-level", dest="log_level", type=str, help="DEBUG, INFO, WARNING or ERROR")
    p.add_argument("--log-json", dest="log_json", type=str, help="Append JSON-lines logs to this path")
    p.add_argument("--no-color", dest="no_color", action="store_true", help="Disable colored console logs")

    args = p.parse_args(argv)
    for attr, value in (
        ("options", None),
        ("no_balance", False),
        ("no_extra_data", False),
        ("no_round", False),
        ("csv", None),
        ("json", None),
        ("just_totals", False),
        ("extended", False),
        ("log_level", None),
        ("log_json", None),
        ("no_color", False),
    ):
        if not hasattr(args, attr):
            setattr(args, attr, value)

    try:
        args.config = build_config(args)
    except InvalidArgument as exc:
        p.error(str(exc))
    return args


def _load_options(path: str) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidArgument(f"could not read options file '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidArgument(f"options file '{path}' must hold a JSON object")
    return data


def build_config(args: argparse.Namespace) -> RunConfig:
    """Options file first, then explicit command-line flags on top."""
    values: Dict[str, Any] = _load_options(args.options) if args.options else {}
    for name in _CONFIG_FLAGS:
        if hasattr(args, name):
            values[name] = getattr(args, name)
    if args.no_balance:
        values["channel_balance"] = False
    if args.no_extra_data:
        values["use_extra_data"] = False
    if args.no_round:
        values["quantize_round"] = False
    return RunConfig.from_mapping(values)


def run(args: argparse.Namespace) -> int:
    """Execute one comparison and return the process exit code."""
    configure_logging(level=args.log_level, json_file=args.log_json, use_color=not args.no_color)
    logger = get_logger(__name__)
    try:
        catalog = load_profile(args.profile)
        reference = load_signal(args.reference)
        comparison = load_signal(args.comparison)
        report = ComparisonEngine(args.config, catalog).run(reference, comparison)
    except ProfileError as exc:
        log_exception(logger, f"profile error: {exc}", error_type="ProfileError")
        return ExitCode.PROFILE_ERROR
    except (EmptyCatalog, NoBlocks) as exc:
        log_exception(logger, f"unusable profile: {exc}", error_type=type(exc).__name__)
        return ExitCode.PROFILE_ERROR
    except (AudioLoadError, SignalTruncated) as exc:
        log_exception(logger, f"audio error: {exc}", error_type=type(exc).__name__)
        return ExitCode.AUDIO_ERROR
    except SyncNotFound as exc:
        log_exception(logger, str(exc), error_type="SyncNotFound", role=exc.role)
        return ExitCode.SYNC_NOT_FOUND
    except InvalidArgument as exc:
        log_exception(logger, f"invalid argument: {exc}", error_type="InvalidArgument")
        return ExitCode.INVALID_ARGS
    except AnalysisError as exc:
        log_exception(logger, f"comparison failed: {exc}", error_type=type(exc).__name__)
        return ExitCode.GENERAL_ERROR

    print(format_summary(report, just_totals=args.just_totals, extended=args.extended), flush=True)
    if args.csv:
        rows = write_csv_report(report, args.csv)
        logger.info("wrote %d CSV rows to %s", rows, args.csv)
    if args.json:
        write_json_report(report, args.json)
        logger.info("wrote JSON report to %s", args.json)

    return ExitCode.DIFFERENCES_FOUND if report.differing else ExitCode.SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
