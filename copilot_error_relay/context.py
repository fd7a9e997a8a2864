# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Request context helpers for session and request correlation.

The inbound identifier header has the form ``"<sessionID>/<requestID>"``.
Only this delimiter and field order are recognized.
"""

import contextvars
from collections.abc import Mapping
from typing import Any

SESSION_ID_KEY = "highlightSessionSecureID"
REQUEST_ID_KEY = "highlightRequestID"

DEFAULT_HEADER_NAME = "X-Highlight-Request"
HEADER_DELIMITER = "/"

_relay_context_var: contextvars.ContextVar[Mapping[str, Any] | None] = contextvars.ContextVar(
    "error_relay_context", default=None
)


def extract_identifiers(ctx: Mapping[str, Any] | None) -> tuple[str, str] | None:
    """Return ``(session_id, request_id)`` if both keys are present in ``ctx``.

    Values are not validated beyond presence.
    """
    if ctx is None or SESSION_ID_KEY not in ctx or REQUEST_ID_KEY not in ctx:
        return None
    return str(ctx[SESSION_ID_KEY]), str(ctx[REQUEST_ID_KEY])


def intercept_header(value: str | None, ctx: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    """Inject the identifiers carried by a header value into a context.

    Args:
        value: Raw header value, ``"<sessionID>/<requestID>"``
        ctx: Existing context (a new empty one if None)

    Returns:
        A new context with both identifiers, or ``ctx`` itself unchanged when
        the header does not split into at least two parts
    """
    if ctx is None:
        ctx = {}
    ids = (value or "").split(HEADER_DELIMITER)
    if len(ids) < 2:
        return ctx
    return {**ctx, SESSION_ID_KEY: ids[0], REQUEST_ID_KEY: ids[1]}


def intercept_request_headers(
    headers: Mapping[str, str],
    ctx: Mapping[str, Any] | None = None,
    header_name: str = DEFAULT_HEADER_NAME,
) -> Mapping[str, Any]:
    """Read the identifier header from a headers mapping and intercept it."""
    value = headers.get(header_name)
    if value is None:
        # plain dicts are case-sensitive, HTTP header names are not
        lowered = header_name.lower()
        value = next((v for k, v in headers.items() if k.lower() == lowered), None)
    return intercept_header(value, ctx)


def bind_identifiers(session_id: str, request_id: str) -> contextvars.Token:
    """Bind identifiers to the current execution context.

    Returns:
        Token for reset_identifiers
    """
    return _relay_context_var.set({SESSION_ID_KEY: session_id, REQUEST_ID_KEY: request_id})


def bind_context(ctx: Mapping[str, Any]) -> contextvars.Token:
    """Bind an intercepted context to the current execution context."""
    return _relay_context_var.set(dict(ctx))


def reset_identifiers(token: contextvars.Token) -> None:
    """Restore the context that was active before a bind."""
    _relay_context_var.reset(token)


def current_context() -> dict[str, Any]:
    """Return a copy of the bound context (empty if nothing is bound)."""
    return dict(_relay_context_var.get() or {})
