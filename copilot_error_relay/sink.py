# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Sink abstraction: delivers flushed batches of error records."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from .errors import SinkDeliveryError
from .log import Logger, create_logger
from .models import ErrorRecord


class ErrorSink(ABC):
    """Abstract base class for batch delivery.

    ``submit`` raises on failure. The relay never retries a failed batch;
    wrap a sink in RetryingSink to get backoff.
    """

    @abstractmethod
    def submit(self, records: Sequence[ErrorRecord]) -> None:
        """Deliver a batch of records.

        Args:
            records: Records to deliver; an empty batch is a no-op

        Raises:
            SinkDeliveryError: If delivery failed
        """
        pass

    def close(self) -> None:
        """Release resources held by the sink."""
        pass


class SilentSink(ErrorSink):
    """Sink that stores batches in memory for testing.

    Attributes:
        batches: Every non-empty batch submitted, in submission order
        fail_with: If set, submit raises this exception instead of storing
    """

    def __init__(self) -> None:
        self.batches: list[list[ErrorRecord]] = []
        self.fail_with: Exception | None = None
        self._lock = threading.Lock()
        self._submitted = threading.Condition(self._lock)

    def submit(self, records: Sequence[ErrorRecord]) -> None:
        if not records:
            return
        with self._lock:
            if self.fail_with is not None:
                raise self.fail_with
            self.batches.append(list(records))
            self._submitted.notify_all()

    @property
    def records(self) -> list[ErrorRecord]:
        """All delivered records flattened across batches."""
        with self._lock:
            return [record for batch in self.batches for record in batch]

    def wait_for_records(self, count: int, timeout: float = 5.0) -> bool:
        """Block until at least ``count`` records were delivered."""
        with self._lock:
            return self._submitted.wait_for(
                lambda: sum(len(batch) for batch in self.batches) >= count, timeout
            )

    def clear(self) -> None:
        """Drop all stored batches."""
        with self._lock:
            self.batches.clear()


class ConsoleSink(ErrorSink):
    """Sink that writes each record to a logger instead of the network.

    Records are logged at INFO, so the logger must not filter that level.
    """

    def __init__(self, logger: Logger | None = None):
        self.logger = logger or create_logger(logger_type="stdout", level="INFO")

    def submit(self, records: Sequence[ErrorRecord]) -> None:
        for record in records:
            self.logger.info("Backend error", **record.to_dict())


def _build_graphql(address: str, timeout_seconds: float) -> ErrorSink:
    from .graphql_sink import GraphQLSink

    return GraphQLSink(address=address, timeout_seconds=timeout_seconds)


def _build_console(address: str, timeout_seconds: float) -> ErrorSink:
    return ConsoleSink()


def _build_silent(address: str, timeout_seconds: float) -> ErrorSink:
    return SilentSink()


_SINKS: dict[str, Callable[[str, float], ErrorSink]] = {
    "graphql": _build_graphql,
    "console": _build_console,
    "silent": _build_silent,
}


def create_sink(
    sink_type: str,
    address: str,
    timeout_seconds: float = 10.0,
) -> ErrorSink:
    """Create a sink by type name.

    Args:
        sink_type: "graphql", "console" or "silent"
        address: Collector endpoint (graphql only)
        timeout_seconds: Request timeout (graphql only)

    Raises:
        ValueError: If sink_type is not recognized
    """
    builder = _SINKS.get(sink_type.lower())
    if builder is None:
        raise ValueError(f"Unknown sink_type: {sink_type}. Must be one of: {', '.join(_SINKS)}")
    return builder(address, timeout_seconds)


__all__ = [
    "ConsoleSink",
    "ErrorSink",
    "SilentSink",
    "SinkDeliveryError",
    "create_sink",
]
