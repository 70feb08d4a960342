"""Optional retry wrapper for iTop API calls.

The client itself never retries. Callers that want resilience wrap a call
factory with :func:`call_with_retry`; the defaults retry an ``UNAUTHORIZED``
answer once after two seconds, which some iTop deployments return
transiently while a session is being set up.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from .itopapi import ApiError, ApiStatus, TransportError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Which failures to retry and how often."""

    max_attempts: int = 2
    delay: float = 2.0
    retry_codes: frozenset[int] = field(
        default_factory=lambda: frozenset({ApiStatus.UNAUTHORIZED}),
    )
    retry_transport_errors: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        if self.delay < 0:
            msg = "delay cannot be negative"
            raise ValueError(msg)

    def should_retry(self, error: Exception) -> bool:
        if isinstance(error, ApiError):
            return error.code in self.retry_codes
        if isinstance(error, TransportError):
            return self.retry_transport_errors
        return False


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
) -> T:
    """Await ``func()`` until it succeeds or a failure is not retryable.

    Each attempt calls ``func`` again, so it must build a fresh request
    every time (e.g. ``lambda: client.get("Person", 12)``).

    Args:
        func: Zero-argument callable returning an awaitable API call.
        config: Retry settings (default: :class:`RetryConfig`).

    Returns:
        The result of the first successful attempt.

    Raises:
        The error of the last attempt, or the first non-retryable error.
    """
    config = config or RetryConfig()
    attempt = 1
    while True:
        try:
            return await func()
        except (ApiError, TransportError) as exc:
            if attempt >= config.max_attempts or not config.should_retry(exc):
                raise
            logger.warning(
                "API call failed, retrying",
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=config.delay,
                error=str(exc),
            )
        await asyncio.sleep(config.delay)
        attempt += 1
