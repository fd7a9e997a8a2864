# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for the flush worker loop."""

import threading

from copilot_error_relay import BoundedErrorQueue, ErrorRecord, SilentLogger, SilentSink, WorkerState
from copilot_error_relay.lifecycle import LifecycleController
from copilot_error_relay.worker import FlushWorker


def _record(n):
    return ErrorRecord(session_id="s", request_id=str(n), event=f"e{n}", stack_trace=f"e{n}")


class TestFlushWorker:
    """Tests for FlushWorker."""

    def setup_method(self):
        self.queue = BoundedErrorQueue(10)
        self.lifecycle = LifecycleController()
        self.sink = SilentSink()
        self.logger = SilentLogger()
        self.gate = threading.Event()
        self.worker = FlushWorker(
            queue=self.queue,
            lifecycle=self.lifecycle,
            sink_provider=lambda: self.sink,
            interval_provider=self._interval,
            logger_provider=lambda: self.logger,
        )

    def _interval(self):
        # The flush thread's first wait is held until the test releases it,
        # then every wait has an already expired timer.
        if threading.current_thread() is self.worker.thread:
            self.gate.wait(5)
        return 0.0

    def test_stop_wins_over_due_timer(self):
        """Test that a stop requested while the timer is due skips the periodic flush."""
        self.worker.start()
        self.queue.put(_record(1))
        self.queue.put(_record(2))

        self.worker.request_stop("stop")
        assert self.lifecycle.state is WorkerState.DRAINING
        self.gate.set()

        assert self.worker.join(5)
        assert self.lifecycle.state is WorkerState.STOPPED
        assert [len(batch) for batch in self.sink.batches] == [2]

        messages = [entry["message"] for entry in self.logger.logs]
        assert messages.index("Error relay draining") < messages.index("Delivered error batch")

    def test_request_stop_before_start_is_ignored(self):
        """Test that a stop request on an idle worker does not pre-arm shutdown."""
        self.gate.set()

        self.worker.request_stop("early")

        assert self.lifecycle.state is WorkerState.IDLE
        assert self.worker.stop_reason is None

    def test_stats_start_at_zero(self):
        """Test that every counter starts at zero."""
        stats = self.worker.stats.snapshot()

        assert (stats.enqueued, stats.delivered, stats.failed, stats.batches) == (0, 0, 0, 0)
