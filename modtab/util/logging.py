"""
MIT License

Logging helpers for modtab.

Parsers report through :class:`ErrorLogger`, which accepts leveled
diagnostics (debug, notice, warning, error) plus an optional indent marker
used to nest the messages emitted while one file is being read.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

_LOGGER: Optional[logging.Logger] = None
_ERROR_LOGGER: Optional["ErrorLogger"] = None

SEVERITIES = {
    "debug": logging.DEBUG,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger(name: str = "modtab") -> logging.Logger:
    """Return a process-wide logger configured for CLI use."""
    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger(name)
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(message)s", "%Y-%m-%dT%H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        _LOGGER = logger
    return _LOGGER


class ErrorLogger:
    """Severity/indent front-end over a standard :class:`logging.Logger`.

    ``">"`` indents every following message one level (after this one is
    written), ``"<"`` removes one level before this message is written.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, indent_width: int = 2) -> None:
        self.logger = logger or get_logger()
        self.indent_width = indent_width
        self.depth = 0

    def log_error(self, message: str, severity: str = "error", indent: Optional[str] = None) -> None:
        try:
            level = SEVERITIES[severity]
        except KeyError:
            raise ValueError(f"Unknown severity: {severity}") from None
        if indent == "<":
            self.depth = max(0, self.depth - 1)
        self.logger.log(level, "%s%s", " " * (self.depth * self.indent_width), message)
        if indent == ">":
            self.depth += 1

    def debug(self, message: str) -> None:
        self.log_error(message, "debug")

    def notice(self, message: str, indent: Optional[str] = None) -> None:
        self.log_error(message, "notice", indent)

    def warning(self, message: str) -> None:
        self.log_error(message, "warning")

    def error(self, message: str, indent: Optional[str] = None) -> None:
        self.log_error(message, "error", indent)


def get_error_logger() -> ErrorLogger:
    """Return the process-wide :class:`ErrorLogger` bound to :func:`get_logger`."""
    global _ERROR_LOGGER
    if _ERROR_LOGGER is None:
        _ERROR_LOGGER = ErrorLogger(get_logger())
    return _ERROR_LOGGER


__all__ = ["get_logger", "get_error_logger", "ErrorLogger", "SEVERITIES"]
