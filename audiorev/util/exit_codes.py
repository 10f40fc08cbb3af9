"""Documented exit codes for the audiorev CLI.

Exit codes follow UNIX conventions:
- 0: Success
- 1: General/unspecified error
- 2: Invalid command-line arguments or usage
- 3-6: Application-specific errors

These codes enable shell scripts and test benches to distinguish
failure modes without parsing stderr output.

Usage:
    from audiorev.util.exit_codes import ExitCode
    sys.exit(ExitCode.SYNC_NOT_FOUND)
"""

from __future__ import annotations


class ExitCode:
    """Exit code constants for audiorev processes.

    Attributes:
        SUCCESS: Comparison finished, no differences found.
        GENERAL_ERROR: Unspecified runtime error.
        INVALID_ARGS: Command-line argument validation failed.
        SYNC_NOT_FOUND: Sync pulses could not be located in a recording.
        PROFILE_ERROR: Profile file missing or malformed.
        AUDIO_ERROR: Recording missing, unreadable or too short.
        DIFFERENCES_FOUND: Comparison finished and reported differences.
    """

    SUCCESS: int = 0
    GENERAL_ERROR: int = 1
    INVALID_ARGS: int = 2
    SYNC_NOT_FOUND: int = 3
    PROFILE_ERROR: int = 4
    AUDIO_ERROR: int = 5
    DIFFERENCES_FOUND: int = 6

    @classmethod
    def message(cls, code: int) -> str:
        """Return a human-readable message for an exit code."""
        messages = {
            cls.SUCCESS: "Success",
            cls.GENERAL_ERROR: "General error",
            cls.INVALID_ARGS: "Invalid arguments",
            cls.SYNC_NOT_FOUND: "Sync pulse not found",
            cls.PROFILE_ERROR: "Profile error",
            cls.AUDIO_ERROR: "Audio file error",
            cls.DIFFERENCES_FOUND: "Differences found",
        }
        return messages.get(code, f"Unknown exit code {code}")
