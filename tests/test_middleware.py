# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for the Starlette/FastAPI middleware."""

import pytest
from copilot_error_relay import (
    REQUEST_ID_KEY,
    SESSION_ID_KEY,
    ErrorRelay,
    RelayConfig,
    SilentLogger,
    SilentSink,
    current_context,
)
from copilot_error_relay.middleware import ErrorRelayMiddleware, get_request_context
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient


@pytest.fixture
def relay(make_relay):
    """Idle relay flushed manually."""
    return make_relay()


@pytest.fixture
def client(relay):
    """Test client for an app with the middleware installed."""
    app = FastAPI()
    app.add_middleware(ErrorRelayMiddleware)

    @app.get("/context")
    async def context(request: Request):
        return {"state": dict(get_request_context(request)), "ambient": current_context()}

    @app.get("/fail")
    async def fail():
        try:
            raise ValueError("bad input")
        except ValueError as e:
            relay.consume_error(None, e, "orders")
        return {"status": "recorded"}

    return TestClient(app)


class TestErrorRelayMiddleware:
    """Tests for ErrorRelayMiddleware."""

    def test_header_populates_context(self, client):
        """Test that the identifiers reach request.state and the ambient context."""
        response = client.get("/context", headers={"X-Highlight-Request": "sess1/req1"})

        assert response.status_code == 200
        body = response.json()
        expected = {SESSION_ID_KEY: "sess1", REQUEST_ID_KEY: "req1"}
        assert body["state"] == expected
        assert body["ambient"] == expected

    def test_missing_header(self, client):
        """Test that requests without the header get an empty context."""
        body = client.get("/context").json()

        assert body == {"state": {}, "ambient": {}}

    def test_malformed_header(self, client):
        """Test that a header without a delimiter is ignored."""
        body = client.get("/context", headers={"X-Highlight-Request": "no-delimiter"}).json()

        assert body["state"] == {}

    def test_consume_error_inside_handler(self, client, relay, sink):
        """Test recording an error with the ambient request context."""
        response = client.get("/fail", headers={"X-Highlight-Request": "sess1/req1"})

        assert response.json() == {"status": "recorded"}
        relay.flush()
        record = sink.records[0]
        assert (record.session_id, record.request_id) == ("sess1", "req1")
        assert record.event == "bad input"

    def test_context_not_leaked_between_requests(self, client):
        """Test that the binding ends with the request."""
        client.get("/context", headers={"X-Highlight-Request": "sess1/req1"})

        assert client.get("/context").json()["ambient"] == {}
        assert current_context() == {}

    def test_custom_header_name(self):
        """Test reading identifiers from another header."""
        app = FastAPI()
        app.add_middleware(ErrorRelayMiddleware, header_name="X-Trace")

        @app.get("/context")
        async def context(request: Request):
            return dict(get_request_context(request))

        body = TestClient(app).get("/context", headers={"X-Trace": "s/r"}).json()

        assert body == {SESSION_ID_KEY: "s", REQUEST_ID_KEY: "r"}

    def test_header_name_from_relay_config(self, monkeypatch):
        """Test that the middleware reads the header configured through the environment."""
        monkeypatch.setenv("ERROR_RELAY_HEADER_NAME", "X-Correlation")
        relay = ErrorRelay(RelayConfig.from_env(), sink=SilentSink(), logger=SilentLogger())
        app = FastAPI()
        app.add_middleware(ErrorRelayMiddleware, relay=relay)

        @app.get("/context")
        async def context(request: Request):
            return dict(get_request_context(request))

        client = TestClient(app)
        body = client.get("/context", headers={"X-Correlation": "s/r"}).json()
        ignored = client.get("/context", headers={"X-Highlight-Request": "a/b"}).json()

        assert body == {SESSION_ID_KEY: "s", REQUEST_ID_KEY: "r"}
        assert ignored == {}
