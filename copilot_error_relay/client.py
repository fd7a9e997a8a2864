# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""ErrorRelay: buffers backend errors and ships them in batches.

Example:
    >>> from copilot_error_relay import ErrorRelay, RelayConfig
    >>> relay = ErrorRelay(RelayConfig(flush_interval_seconds=5))
    >>> relay.start()
    >>> ctx = intercept_header(request.headers.get("X-Highlight-Request"))
    >>> try:
    ...     handle(request)
    ... except Exception as e:
    ...     relay.consume_error(ctx, e, "checkout")
    >>> relay.stop()
"""

import atexit
import threading
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .config import RelayConfig, validate_flush_interval
from .context import REQUEST_ID_KEY, SESSION_ID_KEY, current_context, intercept_request_headers
from .error_queue import BoundedErrorQueue
from .errors import MissingRequestIDError, MissingSessionIDError
from .frames import SourceReader
from .graphql_sink import GraphQLSink
from .lifecycle import CancellationToken, LifecycleController, WorkerState
from .log import Logger, create_logger
from .models import build_record, classify_error, serialize_tags
from .sink import ErrorSink, create_sink
from .worker import FlushWorker, RelayStats


class ErrorRelay:
    """Owns the queue, lifecycle, sink and flush worker of one relay.

    Configuration setters may be called at any time; a new flush interval
    applies from the next cycle and a new sink address from the next batch.
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        sink: ErrorSink | None = None,
        logger: Logger | None = None,
    ):
        """Initialize the relay.

        Args:
            config: Relay configuration (defaults if None)
            sink: Sink for batches; built from config.sink_type on first flush if None
            logger: Logger for flush-time diagnostics; built from config if None

        Raises:
            ValueError: If the configuration is invalid
        """
        self.config = config or RelayConfig()
        self.config.validate()

        self._config_lock = threading.Lock()
        self._logger = logger or create_logger(
            logger_type=self.config.log_type,
            level=self.config.log_level,
        )
        self._sink = sink
        self._owns_sink = sink is None
        self._source_reader = SourceReader() if self.config.include_source_context else None

        self._queue = BoundedErrorQueue(self.config.queue_capacity)
        self._lifecycle = LifecycleController()
        self._worker = FlushWorker(
            queue=self._queue,
            lifecycle=self._lifecycle,
            sink_provider=self._get_sink,
            interval_provider=self._get_flush_interval,
            logger_provider=self._get_logger,
        )
        self._atexit_registered = False

    @property
    def state(self) -> WorkerState:
        """Current lifecycle state."""
        return self._lifecycle.state

    @property
    def queue_closed(self) -> bool:
        """Whether the queue has been closed by shutdown."""
        return self._queue.closed

    def queue_size(self) -> int:
        """Number of records waiting for the next flush."""
        return len(self._queue)

    def stats(self) -> RelayStats:
        """Snapshot of enqueue and delivery counters."""
        return self._worker.stats.snapshot()

    def start(self) -> None:
        """Start the background flush worker. Later calls are no-ops."""
        self.start_with_context(None)

    def start_with_context(self, cancellation: CancellationToken | None) -> None:
        """Start the worker; cancelling ``cancellation`` stops it like stop()."""
        started = self._worker.start(
            cancellation=cancellation,
            install_signal_handlers=self.config.handle_signals,
        )
        if started and self.config.flush_on_exit and not self._atexit_registered:
            atexit.register(self._stop_at_exit)
            self._atexit_registered = True

    def stop(self, timeout: float | None = None) -> bool:
        """Drain remaining records, close the queue and stop the worker.

        A sink the relay built itself is closed once the worker has stopped.

        Blocks until the worker has stopped or ``timeout`` seconds elapse.
        Does nothing if the relay was never started.

        Returns:
            True if the relay is stopped when this returns
        """
        if self._lifecycle.state is WorkerState.IDLE:
            return False

        self._worker.request_stop("stop")
        stopped = self._worker.join(timeout)
        if stopped:
            self._worker.restore_signal_handlers()
            self._close_owned_sink()
            if self._atexit_registered:
                atexit.unregister(self._stop_at_exit)
                self._atexit_registered = False
        return stopped

    def flush(self) -> int:
        """Flush queued records now. Returns the number delivered."""
        return self._worker.flush()

    def set_flush_interval(self, seconds: float) -> None:
        """Set the time between periodic flushes.

        Raises:
            ValueError: If seconds is not positive
        """
        validate_flush_interval(seconds)
        with self._config_lock:
            self.config.flush_interval_seconds = seconds

    def set_sink_address(self, address: str) -> None:
        """Point the default graphql sink at another collector endpoint."""
        if not address:
            raise ValueError("sink address must not be empty")
        with self._config_lock:
            self.config.sink_address = address
            if self._owns_sink and isinstance(self._sink, GraphQLSink):
                self._sink.address = address.rstrip("/")

    def set_logger(self, logger: Logger) -> None:
        """Replace the logger used for flush-time diagnostics."""
        with self._config_lock:
            self._logger = logger

    def intercept_request_headers(
        self,
        headers: Mapping[str, str],
        ctx: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        """Intercept the configured identifier header from a headers mapping."""
        return intercept_request_headers(headers, ctx, header_name=self.config.header_name)

    def consume_error(self, ctx: Mapping[str, Any] | None, error: Any, *tags: str) -> None:
        """Queue an error for the next flush.

        Args:
            ctx: Request context carrying the session and request identifiers;
                None uses the context bound by the middleware
            error: Exception, StackTracer, or any value with a useful str()
            *tags: String tags stored in the record payload

        Raises:
            WorkerStoppedError: If the relay is draining or stopped
            MissingSessionIDError: If the context has no session identifier
            MissingRequestIDError: If the context has no request identifier
            TagSerializationError: If a tag is not a string
            StackTraceError: If a StackTracer error has no frames
            QueueFullError: If the queue is full under the raise policy or
                the enqueue timeout elapsed
        """
        with self._lifecycle.enqueue_slot():
            timestamp = datetime.now(timezone.utc)
            if ctx is None:
                ctx = current_context()

            session_id = ctx.get(SESSION_ID_KEY)
            if not session_id:
                raise MissingSessionIDError(SESSION_ID_KEY)
            request_id = ctx.get(REQUEST_ID_KEY)
            if not request_id:
                raise MissingRequestIDError(REQUEST_ID_KEY)

            payload = serialize_tags(tags)
            classified = classify_error(error, self._source_reader)
            record = build_record(str(session_id), str(request_id), classified, payload, timestamp)

            queued = self._queue.put(
                record,
                policy=self.config.queue_policy,
                timeout=self.config.enqueue_timeout_seconds,
            )

        if queued:
            self._worker.stats.increment("enqueued")
        else:
            self._worker.stats.increment("dropped")
            self._get_logger().warning(
                "Error queue full; dropping record",
                queue_capacity=self._queue.capacity,
                session_id=record.session_id,
                request_id=record.request_id,
            )

    def _get_sink(self) -> ErrorSink:
        with self._config_lock:
            if self._sink is None:
                self._sink = create_sink(
                    self.config.sink_type,
                    address=self.config.sink_address,
                    timeout_seconds=self.config.sink_timeout_seconds,
                )
            return self._sink

    def _close_owned_sink(self) -> None:
        # the flush thread may still be submitting when stop runs on it
        if self._lifecycle.state is not WorkerState.STOPPED:
            return
        with self._config_lock:
            if not self._owns_sink or self._sink is None:
                return
            sink, self._sink = self._sink, None
        sink.close()

    def _get_flush_interval(self) -> float:
        with self._config_lock:
            return self.config.flush_interval_seconds

    def _get_logger(self) -> Logger:
        with self._config_lock:
            return self._logger

    def _stop_at_exit(self) -> None:
        self._atexit_registered = False
        self.stop()
