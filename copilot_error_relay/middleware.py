# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Starlette/FastAPI middleware that captures correlation identifiers.

Example:
    >>> app = FastAPI()
    >>> app.add_middleware(ErrorRelayMiddleware)
    >>>
    >>> @app.get("/orders")
    ... def orders(request: Request):
    ...     try:
    ...         ...
    ...     except Exception as e:
    ...         relay.consume_error(request.state.error_relay_context, e)
"""

import logging
from collections.abc import Mapping
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .client import ErrorRelay
from .context import (
    DEFAULT_HEADER_NAME,
    bind_context,
    extract_identifiers,
    intercept_header,
    reset_identifiers,
)

logger = logging.getLogger(__name__)

STATE_ATTRIBUTE = "error_relay_context"


class ErrorRelayMiddleware(BaseHTTPMiddleware):
    """Reads the identifier header and exposes the resulting context.

    The context is stored on ``request.state.error_relay_context`` and bound
    to the ambient context for the duration of the request, so
    ``consume_error(None, ...)`` works inside handlers.
    """

    def __init__(
        self,
        app: ASGIApp,
        header_name: str | None = None,
        relay: ErrorRelay | None = None,
    ):
        """Initialize middleware.

        Args:
            app: ASGI application
            header_name: Header carrying "<sessionID>/<requestID>"; defaults to
                the relay's configured header, else X-Highlight-Request
            relay: Relay whose configuration supplies the header name
        """
        super().__init__(app)
        if header_name is None:
            header_name = relay.config.header_name if relay is not None else DEFAULT_HEADER_NAME
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = intercept_request(request, self.header_name)
        setattr(request.state, STATE_ATTRIBUTE, ctx)

        if extract_identifiers(ctx) is None:
            logger.debug(f"No {self.header_name} identifiers on {request.url.path}")
            return await call_next(request)

        token = bind_context(ctx)
        try:
            return await call_next(request)
        finally:
            reset_identifiers(token)


def intercept_request(
    request: Request,
    header_name: str = DEFAULT_HEADER_NAME,
    ctx: Mapping[str, Any] | None = None,
) -> Mapping[str, Any]:
    """Intercept the identifier header of a Starlette request."""
    return intercept_header(request.headers.get(header_name), ctx)


def get_request_context(request: Request) -> Mapping[str, Any]:
    """Return the context stored by ErrorRelayMiddleware (empty if absent)."""
    return getattr(request.state, STATE_ATTRIBUTE, {})
