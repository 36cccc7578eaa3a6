"""Resilience patterns for concurrent writers.

Provides bounded retry with exponential backoff for optimistic-concurrency
writes that lost a race.
"""

from .retry import (
    async_retry,
    RetryConfig,
    RetryExhausted,
)

__all__ = [
    "async_retry",
    "RetryConfig",
    "RetryExhausted",
]
