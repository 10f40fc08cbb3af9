"""Exception taxonomy for comparison runs.

Everything except InvalidArgument is fatal to a run: the engine aborts and
no partial DifferenceReport is produced.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for all audiorev failures."""


class InvalidArgument(AnalysisError, ValueError):
    """Rejected request (bad window length, out-of-range option)."""


class EmptyCatalog(AnalysisError):
    """The profile defines no block types."""


class NoBlocks(AnalysisError):
    """The profile defines no block that can be compared."""


class SyncNotFound(AnalysisError):
    def __init__(self, role: str, signal_name: str = "", detail: str = ""):
        self.role = role
        self.signal_name = signal_name
        self.detail = detail
        label = f"{role} ({signal_name})" if signal_name else role
        message = f"sync pulse not found in {label} signal"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SignalTruncated(AnalysisError):
    def __init__(self, role: str, block_index: int, start: int, end: int, frames: int):
        self.role = role
        self.block_index = block_index
        super().__init__(
            f"block {block_index} of {role} signal spans samples {start}-{end} "
            f"but the recording has {frames}"
        )


class TransformError(AnalysisError):
    def __init__(self, block_index: int, cause: BaseException):
        self.block_index = block_index
        super().__init__(f"transform failed for block {block_index}: {cause}")


class ProfileError(AnalysisError):
    """Malformed or unreadable profile file."""


class AudioLoadError(AnalysisError):
    """Unreadable or unsupported recording."""
