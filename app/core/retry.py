"""
Bounded retry with exponential backoff for outbound calls.

Every failure is retried the same way; there is no distinction between
retryable and non-retryable errors. No jitter is applied.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from app.config import get_settings
from app.infra.logging_config import get_logger

logger = get_logger("retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOptions:
    max_attempts: int = 3
    delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 10000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must not be negative")

    @classmethod
    def from_settings(cls) -> "RetryOptions":
        """Build options from RETRY_* settings."""
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            delay_ms=settings.retry_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay_ms=settings.retry_max_delay_ms,
        )


async def retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> T:
    """
    Await ``operation`` until it succeeds or ``max_attempts`` is reached.

    Sleeps ``delay_ms`` after the first failure and multiplies the delay by
    ``backoff_multiplier`` after each further failure, capped at
    ``max_delay_ms``. The last error is re-raised once attempts run out.
    """
    opts = options or RetryOptions()
    current_delay = float(opts.delay_ms)
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= opts.max_attempts:
                logger.error(
                    "Retry failed after max attempts: attempts=%s error=%s",
                    opts.max_attempts,
                    e,
                )
                raise
            logger.warning(
                "Retry attempt %s failed, retrying in %sms: %s",
                attempt,
                int(current_delay),
                e,
            )
            await asyncio.sleep(current_delay / 1000)
            current_delay = min(current_delay * opts.backoff_multiplier, opts.max_delay_ms)
            attempt += 1


class RetryExecutor:
    """Holds a set of retry options and applies them to each call."""

    def __init__(self, options: Optional[RetryOptions] = None) -> None:
        self.options = options or RetryOptions()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        options: Optional[RetryOptions] = None,
    ) -> T:
        return await retry(operation, options or self.options)
