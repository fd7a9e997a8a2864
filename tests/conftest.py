# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Shared fixtures for error relay tests."""

import pytest
from copilot_error_relay import (
    REQUEST_ID_KEY,
    SESSION_ID_KEY,
    ErrorRelay,
    RelayConfig,
    SilentLogger,
    SilentSink,
)


@pytest.fixture
def sink():
    """In-memory sink."""
    return SilentSink()


@pytest.fixture
def silent_logger():
    """In-memory logger."""
    return SilentLogger()


@pytest.fixture
def ctx():
    """Request context carrying both identifiers."""
    return {SESSION_ID_KEY: "abc", REQUEST_ID_KEY: "123"}


@pytest.fixture
def make_relay(sink, silent_logger):
    """Factory for relays that are always stopped at teardown.

    Signal handlers and the atexit hook are off unless a test asks for them.
    """
    relays = []

    def _make(**overrides):
        overrides.setdefault("handle_signals", False)
        overrides.setdefault("flush_on_exit", False)
        relay_sink = overrides.pop("sink", sink)
        relay = ErrorRelay(RelayConfig(**overrides), sink=relay_sink, logger=silent_logger)
        relays.append(relay)
        return relay

    yield _make

    for relay in relays:
        relay.stop(timeout=5)
