"""Central API rate-limit settings and shared per-server limiter state."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field

# Gazelle trackers (RED/OPS): minimum interval between calls to the same server.
GAZELLE_MIN_INTERVAL_SECONDS = 2.0
# Newznab/torznab endpoints are usually a local Jackett/Prowlarr or a usenet
# indexer with a daily quota, so only a light spacing is applied.
NEWZNAB_MIN_INTERVAL_SECONDS = 0.5
WAIT_LOG_THRESHOLD_SECONDS = 1.75
RATE_LIMIT_WINDOW_SECONDS = 10.0


@dataclass
class _ServerBucket:
    lock: asyncio.Lock
    last_request_started: float = 0.0
    request_starts: deque[float] = field(default_factory=deque)


_server_buckets: dict[str, _ServerBucket] = {}
_server_buckets_lock = asyncio.Lock()


def _normalize_server_key(base_url: str) -> str:
    return base_url.rstrip("/").lower()


def _prune_window(bucket: _ServerBucket, now: float, window_seconds: float) -> None:
    if window_seconds <= 0:
        bucket.request_starts.clear()
        return
    cutoff = now - window_seconds
    while bucket.request_starts and bucket.request_starts[0] <= cutoff:
        bucket.request_starts.popleft()


async def _get_or_create_bucket(base_url: str) -> _ServerBucket:
    key = _normalize_server_key(base_url)
    bucket = _server_buckets.get(key)
    if bucket is not None:
        return bucket

    async with _server_buckets_lock:
        bucket = _server_buckets.get(key)
        if bucket is None:
            bucket = _ServerBucket(lock=asyncio.Lock())
            _server_buckets[key] = bucket
        return bucket


async def enforce_min_interval(
    base_url: str,
    min_interval_seconds: float = GAZELLE_MIN_INTERVAL_SECONDS,
    request_limit: int | None = None,
    window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
) -> float:
    """
    Enforce shared per-server request spacing.

    ``request_limit`` additionally caps the number of requests started within
    ``window_seconds``. Returns the wait time applied (seconds).
    """
    bucket = await _get_or_create_bucket(base_url)
    window_seconds = window_seconds if request_limit else 0.0
    async with bucket.lock:
        now = time.monotonic()
        effective_min_interval = max(0.0, float(min_interval_seconds))
        min_wait = effective_min_interval - (now - bucket.last_request_started)
        _prune_window(bucket, now, window_seconds)
        window_wait = 0.0
        if request_limit and len(bucket.request_starts) >= request_limit:
            window_wait = bucket.request_starts[0] + window_seconds - now
        wait = max(min_wait, window_wait, 0.0)
        if wait > 0:
            await asyncio.sleep(wait)
            now = time.monotonic()
            _prune_window(bucket, now, window_seconds)
        bucket.last_request_started = now
        if request_limit:
            bucket.request_starts.append(now)
        return wait


def _reset_rate_limits_for_tests() -> None:
    """Test helper to clear shared limiter state."""
    _server_buckets.clear()
