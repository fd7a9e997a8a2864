# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Relay configuration with environment overrides."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .context import DEFAULT_HEADER_NAME
from .error_queue import DEFAULT_QUEUE_CAPACITY, QueuePolicy

DEFAULT_FLUSH_INTERVAL_SECONDS = 10.0
DEFAULT_SINK_ADDRESS = "https://pub.highlight.run"
DEFAULT_SINK_TIMEOUT_SECONDS = 10.0

ENV_PREFIX = "ERROR_RELAY_"


@dataclass
class RelayConfig:
    """Configuration for an ErrorRelay.

    Attributes:
        flush_interval_seconds: Time between periodic flushes
        sink_address: Collector endpoint used by the graphql sink
        queue_capacity: Maximum buffered records
        queue_policy: Behaviour when the queue is full (block, drop, raise)
        enqueue_timeout_seconds: Bound on a blocked put (None waits forever)
        sink_type: Sink built when none is injected (graphql, console, silent)
        sink_timeout_seconds: HTTP timeout for network sinks
        header_name: Inbound header carrying "<sessionID>/<requestID>"
        handle_signals: Install SIGINT/SIGTERM handlers that drain the relay
        flush_on_exit: Stop and flush the relay at interpreter exit
        include_source_context: Attach source lines to traceback frames
        log_type: Logger type used when no logger is injected
        log_level: Logger level used when no logger is injected
    """

    flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS
    sink_address: str = DEFAULT_SINK_ADDRESS
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    queue_policy: QueuePolicy = QueuePolicy.BLOCK
    enqueue_timeout_seconds: float | None = None
    sink_type: str = "graphql"
    sink_timeout_seconds: float = DEFAULT_SINK_TIMEOUT_SECONDS
    header_name: str = DEFAULT_HEADER_NAME
    handle_signals: bool = True
    flush_on_exit: bool = True
    include_source_context: bool = False
    log_type: str = "stdout"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        self.queue_policy = QueuePolicy(self.queue_policy)

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a value is out of range
        """
        validate_flush_interval(self.flush_interval_seconds)
        if self.queue_capacity < 1:
            raise ValueError(f"queue_capacity must be positive, got {self.queue_capacity}")
        if self.enqueue_timeout_seconds is not None and self.enqueue_timeout_seconds < 0:
            raise ValueError("enqueue_timeout_seconds must not be negative")
        if self.sink_timeout_seconds <= 0:
            raise ValueError("sink_timeout_seconds must be positive")
        if not self.sink_address:
            raise ValueError("sink_address must not be empty")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelayConfig":
        """Build a config from ERROR_RELAY_* environment variables.

        Unset or unparsable values fall back to the defaults.

        Args:
            environ: Mapping to read instead of os.environ
        """
        env = _EnvReader(environ if environ is not None else os.environ)
        defaults = cls()

        policy = env.get("QUEUE_POLICY", defaults.queue_policy.value).lower()
        if policy not in {p.value for p in QueuePolicy}:
            policy = defaults.queue_policy.value

        return cls(
            flush_interval_seconds=env.get_float("FLUSH_INTERVAL_SECONDS", defaults.flush_interval_seconds),
            sink_address=env.get("SINK_ADDRESS", defaults.sink_address),
            queue_capacity=env.get_int("QUEUE_CAPACITY", defaults.queue_capacity),
            queue_policy=QueuePolicy(policy),
            enqueue_timeout_seconds=env.get_float("ENQUEUE_TIMEOUT_SECONDS", None),
            sink_type=env.get("SINK_TYPE", defaults.sink_type).lower(),
            sink_timeout_seconds=env.get_float("SINK_TIMEOUT_SECONDS", defaults.sink_timeout_seconds),
            header_name=env.get("HEADER_NAME", defaults.header_name),
            handle_signals=env.get_bool("HANDLE_SIGNALS", defaults.handle_signals),
            flush_on_exit=env.get_bool("FLUSH_ON_EXIT", defaults.flush_on_exit),
            include_source_context=env.get_bool("INCLUDE_SOURCE_CONTEXT", defaults.include_source_context),
            log_type=env.get_raw("LOG_TYPE", defaults.log_type).lower(),
            log_level=env.get_raw("LOG_LEVEL", defaults.log_level).upper(),
        )


def validate_flush_interval(seconds: float) -> None:
    """Raise ValueError unless ``seconds`` is a positive number."""
    if seconds <= 0:
        raise ValueError(f"flush interval must be positive, got {seconds}")


class _EnvReader:
    """Tolerant typed reads from an environment mapping."""

    def __init__(self, environ: Mapping[str, str]):
        self._environ = environ

    def get_raw(self, key: str, default: str) -> str:
        return self._environ.get(key) or default

    def get(self, key: str, default: str) -> str:
        return self._environ.get(ENV_PREFIX + key) or default

    def get_bool(self, key: str, default: bool) -> bool:
        value = self._environ.get(ENV_PREFIX + key)
        if value is None:
            return default
        value_lower = value.lower()
        if value_lower in ("true", "1", "yes", "on"):
            return True
        if value_lower in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int) -> int:
        value = self._environ.get(ENV_PREFIX + key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_float(self, key: str, default: float | None) -> float | None:
        value = self._environ.get(ENV_PREFIX + key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            return default
