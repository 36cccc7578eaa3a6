"""Bounded retry for stale writes.

The care-team service wraps each write attempt, a whole unit of work, in
``async_retry``. An attempt that lost an optimistic guard raises
``StaleWriteError`` and is re-run from scratch after a short backoff, so it
re-reads the state the winner committed. Any other exception propagates on
the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

from config.settings import ResilienceSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")
ExceptionTypes = Union[Type[Exception], Tuple[Type[Exception], ...]]
RetryCallback = Callable[[int, Exception, float], None]


class RetryExhausted(Exception):
    """Every attempt failed with a retryable exception."""

    def __init__(self, message: str, attempts: int, last_exception: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass
class RetryConfig:
    """How often, and how patiently, a stale write is re-run.

    ``max_attempts`` counts the first attempt. The wait before attempt
    ``n + 1`` is ``base_delay * backoff_multiplier ** (n - 1)``, capped at
    ``max_delay`` and spread by ``jitter`` (a fraction of the delay) so that
    racing writers do not wake up together.
    """
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 0.5
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: ExceptionTypes = (Exception,)
    on_retry: Optional[RetryCallback] = None

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        retryable_exceptions: ExceptionTypes,
    ) -> "RetryConfig":
        return cls(
            max_attempts=settings.conflict_retry_attempts,
            base_delay=settings.conflict_retry_delay,
            max_delay=settings.conflict_retry_max_delay,
            backoff_multiplier=settings.conflict_retry_backoff_multiplier,
            retryable_exceptions=retryable_exceptions,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-indexed)."""
        delay = min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def should_retry(self, exception: Exception) -> bool:
        return isinstance(exception, self.retryable_exceptions)


def async_retry(
    config: Optional[RetryConfig] = None,
    **options: Any,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate a coroutine function with bounded retry.

    Pass either a ready ``RetryConfig`` or its fields as keywords::

        @async_retry(max_attempts=3, retryable_exceptions=(StaleWriteError,))
        async def write_once():
            ...

        retried = async_retry(config=policy)(write_once)

    Raises ``RetryExhausted`` (chained to the last failure) once
    ``max_attempts`` attempts failed with a retryable exception.
    """
    policy = config or RetryConfig(**options)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not policy.should_retry(e):
                        raise
                    if attempt >= policy.max_attempts:
                        logger.warning(
                            "%s gave up after %d attempts: %s", func.__name__, attempt, e
                        )
                        raise RetryExhausted(
                            f"Retry exhausted after {attempt} attempts",
                            attempts=attempt,
                            last_exception=e,
                        ) from e

                    delay = policy.calculate_delay(attempt)
                    logger.info(
                        "%s attempt %d/%d failed, retrying in %.3fs: %s",
                        func.__name__, attempt, policy.max_attempts, delay, e,
                    )
                    if policy.on_retry:
                        policy.on_retry(attempt, e, delay)
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
