# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Pluggable logger used by the relay for flush-time diagnostics.

Flush-time failures never reach the caller of consume_error, so this logger
is the only place they surface.
"""

import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

DEFAULT_LOGGER_NAME = "copilot_error_relay"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class Logger(ABC):
    """Abstract base class for relay loggers."""

    @abstractmethod
    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info-level message with structured fields."""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning-level message with structured fields."""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs: Any) -> None:
        """Log an error-level message with structured fields."""
        pass

    @abstractmethod
    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug-level message with structured fields."""
        pass


def _validate_level(level: str) -> str:
    level = level.upper()
    if level not in _LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {list(_LEVELS)}")
    return level


class StdoutLogger(Logger):
    """Writes one JSON object per line to stdout.

    Every entry is also emitted through stdlib logging under the same name so
    handlers and pytest's caplog see it.
    """

    def __init__(self, level: str = "WARNING", name: str | None = None):
        self.level = _validate_level(level)
        self.name = name or DEFAULT_LOGGER_NAME
        self._stdlib_logger = logging.getLogger(self.name)

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        if _LEVELS[level] < _LEVELS[self.level]:
            return

        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }
        if kwargs:
            entry["extra"] = kwargs

        try:
            print(json.dumps(entry, default=str), file=sys.stdout, flush=True)
        except (TypeError, ValueError) as e:
            print(f"{level}: {message} (JSON serialization failed: {e})", file=sys.stderr, flush=True)

        extra = {"extra": kwargs} if kwargs else None
        self._stdlib_logger.log(_LEVELS[level], message, extra=extra)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)


class SilentLogger(Logger):
    """Keeps log entries in memory without output. Intended for tests.

    Entries are captured regardless of level.
    """

    def __init__(self) -> None:
        self.logs: list[dict[str, Any]] = []

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        entry: dict[str, Any] = {"level": level, "message": message}
        if kwargs:
            entry["extra"] = kwargs
        self.logs.append(entry)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)

    def get_logs(self, level: str | None = None) -> list[dict[str, Any]]:
        """Get stored entries, optionally filtered by level."""
        if level is None:
            return list(self.logs)
        return [entry for entry in self.logs if entry["level"] == level.upper()]

    def has_log(self, message: str, level: str | None = None) -> bool:
        """Check whether an entry containing ``message`` was logged."""
        return any(message in entry["message"] for entry in self.get_logs(level))

    def clear_logs(self) -> None:
        """Drop all stored entries."""
        self.logs.clear()


def _default(value: str | None, env_var: str, fallback: str) -> str:
    """Pick an explicit value, then the env var, then the fallback."""
    return value or os.getenv(env_var) or fallback


def create_logger(
    logger_type: str | None = None,
    level: str | None = None,
    name: str | None = None,
) -> Logger:
    """Create a relay logger.

    Args:
        logger_type: "stdout" or "silent". Defaults to LOG_TYPE env or "stdout".
        level: DEBUG, INFO, WARNING or ERROR. Defaults to LOG_LEVEL env or "WARNING".
        name: Logger name. Defaults to LOG_NAME env or "copilot_error_relay".

    Raises:
        ValueError: If logger_type or level is not recognized
    """
    logger_type = _default(logger_type, "LOG_TYPE", "stdout").lower()
    level = _default(level, "LOG_LEVEL", "WARNING").upper()
    name = _default(name, "LOG_NAME", DEFAULT_LOGGER_NAME)

    if logger_type == "stdout":
        return StdoutLogger(level=level, name=name)
    if logger_type == "silent":
        _validate_level(level)
        return SilentLogger()
    raise ValueError(f"Unknown logger_type: {logger_type}. Must be one of: stdout, silent")
