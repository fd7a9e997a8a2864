# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for lifecycle state and cancellation."""

import threading
import time

import pytest
from copilot_error_relay import CancellationToken, WorkerState, WorkerStoppedError
from copilot_error_relay.lifecycle import LifecycleController


class TestLifecycleController:
    """Tests for LifecycleController."""

    def test_initial_state(self):
        """Test that a new controller is idle with nothing in flight."""
        lifecycle = LifecycleController()

        assert lifecycle.state is WorkerState.IDLE
        assert lifecycle.in_flight == 0

    def test_start_only_once(self):
        """Test that only the first start transitions."""
        lifecycle = LifecycleController()

        assert lifecycle.try_start()
        assert not lifecycle.try_start()
        assert lifecycle.state is WorkerState.RUNNING

    def test_drain_requires_running(self):
        """Test that draining is only entered from RUNNING."""
        lifecycle = LifecycleController()
        assert not lifecycle.begin_drain()

        lifecycle.try_start()
        assert lifecycle.begin_drain()
        assert not lifecycle.begin_drain()
        assert lifecycle.state is WorkerState.DRAINING

    def test_stopped_cannot_restart(self):
        """Test that STOPPED is terminal."""
        lifecycle = LifecycleController()
        lifecycle.try_start()
        lifecycle.begin_drain()
        lifecycle.mark_stopped()

        assert not lifecycle.try_start()
        assert lifecycle.state is WorkerState.STOPPED

    def test_enqueue_accepted_while_idle_or_running(self):
        """Test in-flight accounting in accepting states."""
        lifecycle = LifecycleController()

        with lifecycle.enqueue_slot():
            assert lifecycle.in_flight == 1
        lifecycle.try_start()
        with lifecycle.enqueue_slot():
            assert lifecycle.in_flight == 1
        assert lifecycle.in_flight == 0

    def test_enqueue_rejected_after_drain(self):
        """Test that producers cannot register once draining begins."""
        lifecycle = LifecycleController()
        lifecycle.try_start()
        lifecycle.begin_drain()

        with pytest.raises(WorkerStoppedError):
            lifecycle.begin_enqueue()
        assert lifecycle.in_flight == 0

    def test_slot_released_on_error(self):
        """Test that a failing producer still leaves the in-flight count."""
        lifecycle = LifecycleController()

        with pytest.raises(RuntimeError):
            with lifecycle.enqueue_slot():
                raise RuntimeError("boom")

        assert lifecycle.in_flight == 0

    def test_wait_idle(self):
        """Test waiting for in-flight producers to finish."""
        lifecycle = LifecycleController()
        lifecycle.begin_enqueue()

        assert not lifecycle.wait_idle(0.05)

        threading.Timer(0.05, lifecycle.end_enqueue).start()
        assert lifecycle.wait_idle(5)

    def test_wait_stopped(self):
        """Test waiting for the terminal state."""
        lifecycle = LifecycleController()
        lifecycle.try_start()

        assert not lifecycle.wait_stopped(0.01)
        lifecycle.mark_stopped()
        assert lifecycle.wait_stopped(0.01)

    def test_accepts_errors(self):
        """Test which states accept new records."""
        assert WorkerState.IDLE.accepts_errors
        assert WorkerState.RUNNING.accepts_errors
        assert not WorkerState.DRAINING.accepts_errors
        assert not WorkerState.STOPPED.accepts_errors


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_cancel_runs_callbacks_once(self):
        """Test that callbacks fire exactly once."""
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))

        token.cancel()
        token.cancel()

        assert token.cancelled
        assert calls == [1]

    def test_callback_after_cancel_runs_immediately(self):
        """Test late registration on a cancelled token."""
        token = CancellationToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append(1))

        assert calls == [1]

    def test_unregister(self):
        """Test that an unregistered callback does not fire."""
        token = CancellationToken()
        calls = []
        unregister = token.add_callback(lambda: calls.append(1))

        unregister()
        token.cancel()

        assert calls == []

    def test_failing_callback_does_not_block_others(self):
        """Test that one failing callback does not stop the rest."""
        token = CancellationToken()
        calls = []

        def failing():
            raise RuntimeError("boom")

        token.add_callback(failing)
        token.add_callback(lambda: calls.append(1))
        token.cancel()

        assert calls == [1]

    def test_wait(self):
        """Test waiting for cancellation from another thread."""
        token = CancellationToken()
        assert not token.wait(0.01)

        threading.Timer(0.05, token.cancel).start()
        start = time.monotonic()
        assert token.wait(5)
        assert time.monotonic() - start < 5
