# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Worker lifecycle state machine and shutdown coordination.

A relay moves IDLE -> RUNNING -> DRAINING -> STOPPED and never goes back.
Producers register as in flight while they write to the queue; draining
waits on that count before the queue is closed.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

from .errors import WorkerStoppedError

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    """Lifecycle states of a relay."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"

    @property
    def accepts_errors(self) -> bool:
        """Whether consume_error may enqueue in this state."""
        return self in (WorkerState.IDLE, WorkerState.RUNNING)


class CancellationToken:
    """Thread-safe, one-shot cancellation signal.

    Example:
        token = CancellationToken()
        relay.start_with_context(token)
        ...
        token.cancel()  # relay drains and stops
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def cancel(self) -> None:
        """Cancel the token and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns cancelled()."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for cancellation.

        The callback runs immediately if the token is already cancelled.

        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


class LifecycleController:
    """Owns the worker state and the in-flight producer count.

    The state check in begin_enqueue and the transition in begin_drain share
    one lock, so once draining starts no new producer can register.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._state = WorkerState.IDLE
        self._in_flight = 0

    @property
    def state(self) -> WorkerState:
        """Current lifecycle state."""
        with self._cond:
            return self._state

    @property
    def in_flight(self) -> int:
        """Number of enqueue operations currently in progress."""
        with self._cond:
            return self._in_flight

    def try_start(self) -> bool:
        """Move IDLE -> RUNNING. Returns False if already started or stopped."""
        with self._cond:
            if self._state is not WorkerState.IDLE:
                return False
            self._state = WorkerState.RUNNING
            return True

    def begin_enqueue(self) -> None:
        """Register an in-flight producer.

        Raises:
            WorkerStoppedError: If the relay is draining or stopped
        """
        with self._cond:
            if not self._state.accepts_errors:
                raise WorkerStoppedError()
            self._in_flight += 1

    def end_enqueue(self) -> None:
        """Unregister an in-flight producer."""
        with self._cond:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._cond.notify_all()

    @contextmanager
    def enqueue_slot(self) -> Iterator[None]:
        """Context manager pairing begin_enqueue and end_enqueue."""
        self.begin_enqueue()
        try:
            yield
        finally:
            self.end_enqueue()

    def begin_drain(self) -> bool:
        """Move RUNNING -> DRAINING. Returns False from any other state."""
        with self._cond:
            if self._state is not WorkerState.RUNNING:
                return False
            self._state = WorkerState.DRAINING
            self._cond.notify_all()
            return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no producer is in flight.

        Returns:
            True if the in-flight count reached zero, False on timeout
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._in_flight == 0, timeout)

    def mark_stopped(self) -> None:
        """Enter the terminal STOPPED state."""
        with self._cond:
            self._state = WorkerState.STOPPED
            self._cond.notify_all()

    def wait_stopped(self, timeout: float | None = None) -> bool:
        """Wait until the state is STOPPED; returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state is WorkerState.STOPPED, timeout)
