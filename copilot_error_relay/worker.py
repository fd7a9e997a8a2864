# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Background flush worker.

One daemon thread waits on a single wake event with the flush interval as
its timeout. An explicit stop, a process signal and a cancellation token all
set that event, so a stop request always wins over a timer that is due at
the same moment.
"""

import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass, fields

from .error_queue import BoundedErrorQueue
from .lifecycle import CancellationToken, LifecycleController, WorkerState
from .log import Logger
from .sink import ErrorSink

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# How often draining re-flushes while producers are still in flight.
DRAIN_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class RelayStats:
    """Point-in-time counters for a relay."""

    enqueued: int = 0
    dropped: int = 0
    delivered: int = 0
    failed: int = 0
    batches: int = 0
    failed_batches: int = 0


class _StatsCounter:
    """Lock-protected mutable counterpart of RelayStats."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values = {f.name: 0 for f in fields(RelayStats)}

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._values[name] += value

    def snapshot(self) -> RelayStats:
        with self._lock:
            return RelayStats(**self._values)


class FlushWorker:
    """Drains the queue on a timer and hands batches to the sink."""

    def __init__(
        self,
        queue: BoundedErrorQueue,
        lifecycle: LifecycleController,
        sink_provider: Callable[[], ErrorSink],
        interval_provider: Callable[[], float],
        logger_provider: Callable[[], Logger],
    ):
        """Initialize the worker.

        Args:
            queue: Queue to drain
            lifecycle: Shared lifecycle controller
            sink_provider: Returns the sink to use for the next batch
            interval_provider: Returns the current flush interval in seconds
            logger_provider: Returns the current logger
        """
        self._queue = queue
        self._lifecycle = lifecycle
        self._sink_provider = sink_provider
        self._interval_provider = interval_provider
        self._logger_provider = logger_provider

        self.stats = _StatsCounter()
        self.stop_reason: str | None = None

        self._wake = threading.Event()
        self._reason_lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._previous_handlers: dict[int, object] = {}
        self._unregister_cancellation: Callable[[], None] | None = None

    @property
    def thread(self) -> threading.Thread | None:
        """The flush thread, once started."""
        return self._thread

    def start(
        self,
        cancellation: CancellationToken | None = None,
        install_signal_handlers: bool = False,
    ) -> bool:
        """Start the flush thread.

        Returns:
            True if this call started the worker, False if it was a no-op
        """
        if not self._lifecycle.try_start():
            return False

        if install_signal_handlers:
            self._install_signal_handlers()

        self._thread = threading.Thread(target=self._run, name="error-relay-flush", daemon=True)
        self._thread.start()

        if cancellation is not None:
            self._unregister_cancellation = cancellation.add_callback(
                lambda: self.request_stop("cancelled")
            )

        self._logger_provider().info(
            "Error relay worker started",
            flush_interval_seconds=self._interval_provider(),
            queue_capacity=self._queue.capacity,
        )
        return True

    def request_stop(self, reason: str = "stop") -> None:
        """Ask the worker to drain and stop. Safe to call repeatedly."""
        with self._reason_lock:
            state = self._lifecycle.state
            if state is WorkerState.IDLE:
                return
            if state is WorkerState.RUNNING:
                self.stop_reason = reason
                self._lifecycle.begin_drain()
        self._wake.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker to reach STOPPED.

        Returns:
            True if stopped, False on timeout. Always True when called from
            the flush thread itself, which cannot wait on its own exit.
        """
        if self._thread is None:
            return self._lifecycle.state is not WorkerState.RUNNING
        if self._thread is threading.current_thread():
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def flush(self) -> int:
        """Drain the queue once and submit the batch.

        Sink failures are logged and counted, never raised.

        Returns:
            Number of records delivered
        """
        with self._flush_lock:
            records = self._queue.drain()
            if not records:
                return 0

            try:
                self._sink_provider().submit(records)
            except Exception as e:
                self.stats.increment("failed", len(records))
                self.stats.increment("failed_batches")
                self._logger_provider().error(
                    "Failed to deliver error batch",
                    batch_size=len(records),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return 0

            self.stats.increment("delivered", len(records))
            self.stats.increment("batches")
            self._logger_provider().debug("Delivered error batch", batch_size=len(records))
            return len(records)

    def restore_signal_handlers(self) -> None:
        """Put back the handlers replaced at start. Main thread only."""
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, handler in list(self._previous_handlers.items()):
            if signal.getsignal(signum) == self._handle_signal:
                signal.signal(signum, handler)
            del self._previous_handlers[signum]

    def _run(self) -> None:
        """Flush loop; exits into the draining sequence when woken."""
        try:
            while not self._wake.wait(self._interval_provider()):
                self.flush()
        finally:
            self._drain_and_stop()

    def _drain_and_stop(self) -> None:
        self.request_stop("worker exit")
        self._logger_provider().info("Error relay draining", reason=self.stop_reason)

        # Keep making room so producers blocked on a full queue can finish.
        while not self._lifecycle.wait_idle(DRAIN_POLL_SECONDS):
            self.flush()
        self.flush()

        self._queue.close()
        if self._unregister_cancellation is not None:
            self._unregister_cancellation()
            self._unregister_cancellation = None
        self._lifecycle.mark_stopped()

        stats = self.stats.snapshot()
        self._logger_provider().info(
            "Error relay stopped",
            delivered=stats.delivered,
            failed=stats.failed,
            dropped=stats.dropped,
        )

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            self._logger_provider().debug("Not on main thread; skipping signal handlers")
            return
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum, frame) -> None:
        self.request_stop(f"signal {signal.Signals(signum).name}")
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
