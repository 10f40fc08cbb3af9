"""Logging configuration for audiorev.

One `audiorev` logger tree with:
- a console handler on stderr (colored when attached to a TTY)
- an optional JSON-lines file handler for test-bench archives
- context fields (role, block index) carried through `extra=` or a
  `ContextAdapter`, rendered by both formatters

Usage:
    from audiorev.util.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", json_file="run.jsonl")
    logger = get_logger(__name__)
    logger.info("sync located", extra={"role": "reference"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple


_configured = False
_root_logger_name = "audiorev"

CONTEXT_FIELDS: Tuple[str, ...] = ("role", "signal", "block_index", "error_type", "duration_ms")


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        output: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        output.update(_context_of(record))
        if record.exc_info:
            output["traceback"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(output, default=str)


class ConsoleFormatter(logging.Formatter):
    """Compact console lines: `HH:MM:SS LEVEL [module] (ctx) message`."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        level_str = f"{record.levelname:8}"
        if self.use_color:
            level_str = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level_str}{self.RESET}"
        name = record.name.replace(f"{_root_logger_name}.", "")
        context = _context_of(record)
        ctx_str = ""
        if context:
            ctx_str = " (" + " ".join(f"{k}={v}" for k, v in context.items()) + ")"
        base = f"{ts} {level_str} [{name}]{ctx_str} {record.getMessage()}"
        if record.exc_info:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return base


class ContextAdapter(logging.LoggerAdapter):
    """Attach fixed context (e.g. role="comparison") to every record."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(
    *,
    level: Optional[str] = None,
    json_file: Optional[str] = None,
    use_color: bool = True,
) -> None:
    """(Re)configure the audiorev logger tree.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. When omitted, AUDIOREV_DEBUG=1
               selects DEBUG, otherwise AUDIOREV_LOG_LEVEL (default INFO).
        json_file: Optional path that receives JSON-lines records.
        use_color: Colorize console output (ignored when stderr is not a TTY).
    """
    global _configured

    if level is None:
        if os.environ.get("AUDIOREV_DEBUG", "").strip() in ("1", "true", "yes"):
            level = "DEBUG"
        else:
            level = os.environ.get("AUDIOREV_LOG_LEVEL", "INFO")
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(_root_logger_name)
    logger.setLevel(numeric_level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(ConsoleFormatter(use_color=use_color))
    logger.addHandler(console_handler)

    if json_file:
        try:
            file_handler = logging.FileHandler(json_file, mode="a", encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to open JSON log file %s: %s", json_file, exc)
        else:
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the audiorev namespace, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    if not name.startswith(_root_logger_name):
        name = f"{_root_logger_name}.main" if name == "__main__" else f"{_root_logger_name}.{name}"
    return logging.getLogger(name)


def with_context(logger: logging.Logger, **context: Any) -> ContextAdapter:
    return ContextAdapter(logger, context)


def log_exception(
    logger: logging.Logger,
    message: str,
    *,
    error_type: Optional[str] = None,
    **extra: Any,
) -> None:
    """Log the exception being handled with structured context.

    Call this inside an except block.
    """
    extra_dict = dict(extra)
    if error_type:
        extra_dict["error_type"] = error_type
    logger.exception(message, extra=extra_dict)
