# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""GraphQL sink that pushes batches to the collector over HTTP."""

import logging
from collections.abc import Sequence
from typing import Any

import requests

from .errors import SinkDeliveryError
from .models import ErrorRecord
from .sink import ErrorSink

logger = logging.getLogger(__name__)

PUSH_BACKEND_PAYLOAD_MUTATION = (
    "mutation PushBackendPayload($errors: [BackendErrorObjectInput]!) {\n"
    "  pushBackendPayload(errors: $errors)\n"
    "}"
)


class GraphQLSink(ErrorSink):
    """Sink that sends the pushBackendPayload mutation.

    A request that hangs stalls the flush loop until ``timeout_seconds``
    expires, so keep the timeout well under the flush interval.
    """

    def __init__(
        self,
        address: str,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ):
        """Initialize GraphQL sink.

        Args:
            address: Collector GraphQL endpoint
            timeout_seconds: Per-request timeout
            session: Optional requests session (a new one is created if None)
        """
        self.address = address.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def build_payload(self, records: Sequence[ErrorRecord]) -> dict[str, Any]:
        """Build the GraphQL request body for a batch."""
        return {
            "operationName": "PushBackendPayload",
            "query": PUSH_BACKEND_PAYLOAD_MUTATION,
            "variables": {"errors": [record.to_dict() for record in records]},
        }

    def submit(self, records: Sequence[ErrorRecord]) -> None:
        if not records:
            return

        try:
            response = self._session.post(
                self.address,
                json=self.build_payload(records),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SinkDeliveryError(f"Failed to push {len(records)} errors: {e}", len(records)) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in body["errors"]
            )
            raise SinkDeliveryError(f"Collector rejected batch: {messages}", len(records))

        logger.debug("Pushed %d errors to %s", len(records), self.address)

    def close(self) -> None:
        self._session.close()
