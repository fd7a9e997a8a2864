# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Exception hierarchy for the error relay client.

Errors raised by ``consume_error`` are returned to the caller synchronously.
Errors raised by sinks are swallowed at flush time and only logged.
"""


class ErrorRelayError(Exception):
    """Base class for all error relay exceptions."""
    pass


class WorkerStoppedError(ErrorRelayError):
    """Raised when an error is consumed after the worker was shut down.

    Not retryable: a stopped relay never accepts records again.
    """

    def __init__(self, message: str = "error relay worker stopped"):
        super().__init__(message)


class MissingIdentifierError(ErrorRelayError):
    """Raised when the request context lacks a correlation identifier."""

    def __init__(self, key: str):
        """Initialize missing identifier error.

        Args:
            key: Context key that was absent or empty
        """
        super().__init__(
            f"context does not contain {key}; context must carry values "
            f"injected by intercept_header or ErrorRelayMiddleware"
        )
        self.key = key


class MissingSessionIDError(MissingIdentifierError):
    """Raised when the session identifier is missing from the context."""
    pass


class MissingRequestIDError(MissingIdentifierError):
    """Raised when the request identifier is missing from the context."""
    pass


class TagSerializationError(ErrorRelayError, ValueError):
    """Raised when tags cannot be serialized into the record payload."""
    pass


class StackTraceError(ErrorRelayError, ValueError):
    """Raised when an error exposes a structured stack trace with no frames."""
    pass


class QueueFullError(ErrorRelayError):
    """Raised when the queue has no room under the raise or timeout policy."""
    pass


class QueueClosedError(ErrorRelayError):
    """Raised when writing to a queue that has already been closed."""
    pass


class SinkDeliveryError(ErrorRelayError):
    """Raised by a sink when a batch could not be delivered.

    Attributes:
        batch_size: Number of records in the failed batch
    """

    def __init__(self, message: str, batch_size: int = 0):
        super().__init__(message)
        self.batch_size = batch_size
