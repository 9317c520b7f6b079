"""Shared resilience helpers for transient API failures and rate limits."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from fescue.search.errors import RateLimitedError

RETRYABLE_HTTP_STATUSES = {429, 500, 502, 503, 504}

_T = TypeVar("_T")


def is_retryable_exception(exc: Exception) -> bool:
    # Transport failures are already retried per request by IndexerHttpClient.
    return isinstance(exc, RateLimitedError)


def parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


def retry_delay_seconds(attempt: int, exc: Exception | None = None) -> float:
    """Exponential backoff (2, 4, 8, ...) unless the indexer named a delay."""
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        return exc.retry_after
    return 2 ** attempt


async def run_with_retries(
    operation: Callable[[], Awaitable[_T]],
    *,
    max_attempts: int,
    on_retry: Callable[[int, int, float, Exception], None] | None = None,
) -> _T:
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable_exception(exc):
                raise
            delay = retry_delay_seconds(attempt, exc)
            if on_retry is not None:
                on_retry(attempt, max_attempts, delay, exc)
            await asyncio.sleep(delay)
    raise RuntimeError("Unreachable retry exit")
