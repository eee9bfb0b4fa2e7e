"""Retry and backoff utilities for resilient operations.

This module provides exponential backoff retry functionality for async operations,
used for the GitHub API and render backend HTTP calls. Only transport errors and
5xx/429 responses are retried; other 4xx client errors fail on the first attempt.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from app.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_retryable_http_error(exc: BaseException) -> bool:
    """Return True for transport errors and 5xx/429 responses."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))
    should_retry: Callable[[BaseException], bool] | None = None


def http_retry_config(
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    backoff_max: float = 10.0,
) -> RetryConfig:
    """Retry config for outbound HTTP: 5xx/429 and transport errors only."""
    return RetryConfig(
        max_attempts=max_attempts,
        backoff_base=backoff_base,
        backoff_max=backoff_max,
        retryable_exceptions=(httpx.HTTPError,),
        should_retry=is_retryable_http_error,
    )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute async function with exponential backoff retry.

    Uses exponential backoff with optional jitter to retry failed operations.
    Each retry waits for: min(backoff_base * 2^attempt, backoff_max) seconds,
    with random jitter applied if enabled.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration, uses defaults if not provided
        operation_name: Name for logging purposes

    Returns:
        Result of fn()

    Raises:
        Exception: The last exception if all retries are exhausted, or the
            first exception rejected by ``config.should_retry``

    Example:
        ```python
        result = await retry_with_backoff(
            lambda: client.get(url),
            config=http_retry_config(),
            operation_name=f"github:{url}",
        )
        ```
    """
    config = config or RetryConfig()
    last_exception: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except config.retryable_exceptions as e:
            last_exception = e

            if config.should_retry is not None and not config.should_retry(e):
                logger.bind(operation=operation_name, error=str(e)).debug("retry_not_retryable")
                raise

            if attempt + 1 == config.max_attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=config.max_attempts,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            # Calculate backoff with optional jitter
            delay = min(config.backoff_base * (2**attempt), config.backoff_max)
            if config.jitter:
                delay *= 0.5 + random.random()

            logger.bind(
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)

    # This should never be reached, but satisfies type checker
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Unexpected state in retry_with_backoff")
