# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Bounded multi-producer, single-consumer queue of error records."""

import logging
import threading
import time
from collections import deque
from enum import Enum

from .errors import QueueClosedError, QueueFullError
from .models import ErrorRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 128


class QueuePolicy(str, Enum):
    """What ``put`` does when the queue is at capacity.

    BLOCK waits for space (optionally bounded by a timeout, after which
    QueueFullError is raised). DROP discards the record and reports it.
    RAISE fails fast with QueueFullError.
    """

    BLOCK = "block"
    DROP = "drop"
    RAISE = "raise"


class BoundedErrorQueue:
    """Fixed-capacity FIFO buffer of pending error records.

    ``drain`` removes exactly the records present when it is called, in
    insertion order, so each record is handed out at most once.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY):
        """Initialize the queue.

        Args:
            capacity: Maximum number of buffered records

        Raises:
            ValueError: If capacity is not positive
        """
        if capacity < 1:
            raise ValueError(f"queue capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: deque[ErrorRecord] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def put(
        self,
        record: ErrorRecord,
        policy: QueuePolicy = QueuePolicy.BLOCK,
        timeout: float | None = None,
    ) -> bool:
        """Append a record.

        Args:
            record: Record to enqueue
            policy: Behaviour when the queue is full
            timeout: Maximum seconds to wait under BLOCK (None waits forever)

        Returns:
            True if the record was queued, False if it was dropped

        Raises:
            QueueFullError: Under RAISE, or when a BLOCK timeout elapses
            QueueClosedError: If the queue is closed
        """
        with self._cond:
            if self._closed:
                raise QueueClosedError("cannot put on a closed queue")

            if len(self._items) >= self.capacity:
                if policy is QueuePolicy.DROP:
                    return False
                if policy is QueuePolicy.RAISE:
                    raise QueueFullError(f"queue is full ({self.capacity} records)")

                deadline = None if timeout is None else time.monotonic() + timeout
                while len(self._items) >= self.capacity and not self._closed:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        raise QueueFullError(
                            f"queue still full after waiting {timeout}s ({self.capacity} records)"
                        )
                    self._cond.wait(remaining)

                if self._closed:
                    raise QueueClosedError("queue closed while waiting for space")

            self._items.append(record)
            return True

    def drain(self) -> list[ErrorRecord]:
        """Remove and return every record currently queued.

        Sentinel empty records are discarded.
        """
        with self._cond:
            snapshot = len(self._items)
            drained = [self._items.popleft() for _ in range(snapshot)]
            if snapshot:
                self._cond.notify_all()

        records = [record for record in drained if not record.is_empty()]
        skipped = len(drained) - len(records)
        if skipped:
            logger.debug("Skipped %d empty records during drain", skipped)
        return records

    def close(self) -> None:
        """Close the queue and wake any blocked producers. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)
