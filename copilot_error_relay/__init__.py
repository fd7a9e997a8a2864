# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Copilot-for-Consensus Error Relay.

Buffers backend errors tagged with the client's session and request
identifiers and ships them to a collector in periodic batches, without
blocking request handling.

Most applications construct an ErrorRelay explicitly. The module-level
functions below operate on a default relay that is built from
ERROR_RELAY_* environment variables the first time one of them is called.

Example:
    >>> import copilot_error_relay as relay
    >>> relay.start()
    >>> ctx = relay.intercept_header("sess1/req1")
    >>> relay.consume_error(ctx, ValueError("bad input"), "checkout")
    >>> relay.stop()
"""

import threading
from collections.abc import Mapping
from typing import Any

from .client import ErrorRelay
from .config import RelayConfig
from .context import (
    REQUEST_ID_KEY,
    SESSION_ID_KEY,
    bind_identifiers,
    current_context,
    extract_identifiers,
    intercept_header,
    intercept_request_headers,
    reset_identifiers,
)
from .error_queue import BoundedErrorQueue, QueuePolicy
from .errors import (
    ErrorRelayError,
    MissingIdentifierError,
    MissingRequestIDError,
    MissingSessionIDError,
    QueueClosedError,
    QueueFullError,
    SinkDeliveryError,
    StackTraceError,
    TagSerializationError,
    WorkerStoppedError,
)
from .graphql_sink import GraphQLSink
from .lifecycle import CancellationToken, WorkerState
from .log import Logger, SilentLogger, StdoutLogger, create_logger
from .models import EMPTY_RECORD, ErrorRecord, PlainMessage, StackTracer, StructuredStack, classify_error
from .retry import RetryConfig, RetryingSink
from .sink import ConsoleSink, ErrorSink, SilentSink, create_sink
from .worker import RelayStats

__version__ = "0.1.0"

_default_relay: ErrorRelay | None = None
_default_lock = threading.Lock()


def get_default_relay() -> ErrorRelay:
    """Return the default relay, creating it from the environment if needed."""
    global _default_relay
    with _default_lock:
        if _default_relay is None:
            _default_relay = ErrorRelay(RelayConfig.from_env())
        return _default_relay


def set_default_relay(relay: ErrorRelay | None) -> None:
    """Replace the default relay (None resets to lazy creation)."""
    global _default_relay
    with _default_lock:
        _default_relay = relay


def start() -> None:
    """Start the default relay."""
    get_default_relay().start()


def start_with_context(cancellation: CancellationToken) -> None:
    """Start the default relay; cancelling the token stops it."""
    get_default_relay().start_with_context(cancellation)


def stop(timeout: float | None = None) -> bool:
    """Drain and stop the default relay."""
    return get_default_relay().stop(timeout)


def set_flush_interval(seconds: float) -> None:
    """Set the flush interval of the default relay."""
    get_default_relay().set_flush_interval(seconds)


def set_sink_address(address: str) -> None:
    """Set the collector address of the default relay."""
    get_default_relay().set_sink_address(address)


def set_logger(logger: Logger) -> None:
    """Set the diagnostics logger of the default relay."""
    get_default_relay().set_logger(logger)


def consume_error(ctx: Mapping[str, Any] | None, error: Any, *tags: str) -> None:
    """Queue an error on the default relay."""
    get_default_relay().consume_error(ctx, error, *tags)


def flush() -> int:
    """Flush the default relay now."""
    return get_default_relay().flush()


__all__ = [
    # Version
    "__version__",
    # Client
    "ErrorRelay",
    "RelayConfig",
    "RelayStats",
    "WorkerState",
    "CancellationToken",
    # Default relay
    "consume_error",
    "flush",
    "get_default_relay",
    "set_default_relay",
    "set_flush_interval",
    "set_logger",
    "set_sink_address",
    "start",
    "start_with_context",
    "stop",
    # Context
    "REQUEST_ID_KEY",
    "SESSION_ID_KEY",
    "bind_identifiers",
    "current_context",
    "extract_identifiers",
    "intercept_header",
    "intercept_request_headers",
    "reset_identifiers",
    # Records
    "EMPTY_RECORD",
    "ErrorRecord",
    "PlainMessage",
    "StackTracer",
    "StructuredStack",
    "classify_error",
    # Queue
    "BoundedErrorQueue",
    "QueuePolicy",
    # Sinks
    "ConsoleSink",
    "ErrorSink",
    "GraphQLSink",
    "RetryConfig",
    "RetryingSink",
    "SilentSink",
    "create_sink",
    # Logging
    "Logger",
    "SilentLogger",
    "StdoutLogger",
    "create_logger",
    # Errors
    "ErrorRelayError",
    "MissingIdentifierError",
    "MissingRequestIDError",
    "MissingSessionIDError",
    "QueueClosedError",
    "QueueFullError",
    "SinkDeliveryError",
    "StackTraceError",
    "TagSerializationError",
    "WorkerStoppedError",
]
