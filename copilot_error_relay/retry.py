# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Retry wrapper for sinks, with exponential backoff and full jitter.

The relay core treats every submission as fire-and-forget. Retrying belongs
to the sink, so it lives here as a decorator around another sink.
"""

import logging
import random
import time
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import SinkDeliveryError
from .models import ErrorRecord
from .sink import ErrorSink

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first (default: 3)
        base_delay_ms: Base delay in milliseconds (default: 250)
        backoff_factor: Exponential backoff multiplier (default: 2.0)
        max_delay_ms: Maximum delay cap in milliseconds (default: 5000)
        use_jitter: Whether to apply full jitter to delays (default: True)
    """

    max_attempts: int = 3
    base_delay_ms: int = 250
    backoff_factor: float = 2.0
    max_delay_ms: int = 5000
    use_jitter: bool = True


class RetryPolicy:
    """Exponential backoff with full jitter."""

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()

    def calculate_delay_ms(self, attempt_number: int) -> int:
        """Delay before ``attempt_number`` (1-indexed; the first attempt has none)."""
        if attempt_number <= 1:
            return 0

        delay_ms = int(self.config.base_delay_ms * (self.config.backoff_factor ** (attempt_number - 1)))
        delay_ms = min(delay_ms, self.config.max_delay_ms)

        if self.config.use_jitter:
            delay_ms = random.randint(0, delay_ms)
        return delay_ms

    def should_retry(self, attempt_number: int) -> bool:
        """Whether another attempt is allowed after ``attempt_number``."""
        return attempt_number < self.config.max_attempts

    def sleep(self, delay_ms: int) -> None:
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)


class RetryingSink(ErrorSink):
    """Sink decorator that retries SinkDeliveryError with backoff.

    Retries run on the flush thread, so the total backoff delays the next
    flush cycle. Other exceptions propagate immediately.
    """

    def __init__(self, inner: ErrorSink, config: RetryConfig | None = None):
        self.inner = inner
        self.policy = RetryPolicy(config)

    def submit(self, records: Sequence[ErrorRecord]) -> None:
        if not records:
            return

        attempt = 1
        while True:
            try:
                self.inner.submit(records)
                if attempt > 1:
                    logger.info(f"Batch of {len(records)} delivered after {attempt} attempts")
                return
            except SinkDeliveryError as e:
                if not self.policy.should_retry(attempt):
                    raise SinkDeliveryError(
                        f"Retry exhausted after {attempt} attempts: {e}", len(records)
                    ) from e

                delay_ms = self.policy.calculate_delay_ms(attempt + 1)
                logger.warning(f"Delivery attempt {attempt} failed, retrying in {delay_ms}ms: {e}")
                self.policy.sleep(delay_ms)
                attempt += 1

    def close(self) -> None:
        self.inner.close()
