"""aiohttp transport shared by every indexer definition."""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Mapping, Optional

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from fescue import logger
from fescue.__version__ import __version__
from fescue.config import IndexerConfig
from fescue.rate_limits import (
    NEWZNAB_MIN_INTERVAL_SECONDS,
    WAIT_LOG_THRESHOLD_SECONDS,
    enforce_min_interval,
)
from fescue.search.resilience import RETRYABLE_HTTP_STATUSES, parse_retry_after
from fescue.search.types import IndexerRequest, IndexerResponse

DEFAULT_USER_AGENT = f"fescue/{__version__}"


class IndexerHttpClient:
    """
    Executes indexer requests with pacing, a concurrency cap and retries.

    Retryable statuses (429/5xx) are retried while attempts remain; the final
    response is returned as is so the parser can classify it. Connection
    failures and timeouts are retried and re-raised after the last attempt.
    """

    def __init__(
        self,
        indexer: IndexerConfig,
        timeout: int = 30,
        max_concurrency: int = 2,
        max_attempts: int = 3,
        min_interval_seconds: float = NEWZNAB_MIN_INTERVAL_SECONDS,
        request_limit: Optional[int] = None,
    ):
        self.indexer = indexer
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_url = indexer.base_url
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._min_interval_seconds = max(0.0, float(min_interval_seconds))
        self._request_limit = request_limit
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    @property
    def label(self) -> str:
        return self.indexer.name.upper()

    async def execute(self, request: IndexerRequest) -> IndexerResponse:
        headers = {"Accept": request.accept, **dict(request.headers)}
        status, response_headers, content = await self._fetch(request.url, headers)
        return IndexerResponse(request, status, response_headers, content)

    async def get_bytes(
        self, url: str, headers: Optional[Mapping[str, str]] = None, *, allow_redirects: bool = True
    ) -> bytes:
        """Fetch a payload (e.g. a .torrent or .nzb); non-2xx responses raise."""
        target = URL(url)
        status, response_headers, content = await self._fetch(
            target, dict(headers or {}), allow_redirects=allow_redirects
        )
        if not 200 <= status < 300:
            raise aiohttp.ClientResponseError(
                request_info=aiohttp.RequestInfo(target, "GET", CIMultiDict(), target),
                history=(),
                status=status,
                message=f"Unexpected response status {status} downloading {target.path}",
                headers=response_headers,
            )
        return content

    async def _fetch(
        self, url: URL, headers: Dict[str, str], *, allow_redirects: bool = True
    ) -> tuple[int, CIMultiDict, bytes]:
        logger.get_logger().api_request("GET", str(url))
        request_start = time.monotonic()

        async with self._semaphore:
            await self._enforce_interval()
            session = await self._ensure_session()
            for attempt in range(self.max_attempts):
                try:
                    async with session.get(url, headers=headers, allow_redirects=allow_redirects) as response:
                        content = await response.read()
                        response_headers = CIMultiDict(response.headers)
                        status = response.status
                    if status in RETRYABLE_HTTP_STATUSES and attempt < self.max_attempts - 1:
                        delay = parse_retry_after(response_headers.get("Retry-After")) or 2 ** (attempt + 1)
                        reason = "rate limited" if status == 429 else f"server error {status}"
                        logger.get_logger().api_retry(self.label, attempt + 1, self.max_attempts, delay, reason)
                        await asyncio.sleep(delay)
                        continue
                    elapsed_ms = (time.monotonic() - request_start) * 1000
                    logger.get_logger().api_response(status, content.decode("utf-8", errors="replace"), elapsed_ms)
                    return status, response_headers, content
                except (asyncio.TimeoutError, aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError):
                    if attempt < self.max_attempts - 1:
                        delay = 2 ** (attempt + 1)
                        logger.get_logger().api_retry(self.label, attempt + 1, self.max_attempts, delay)
                        await asyncio.sleep(delay)
                    else:
                        logger.get_logger().api_failed(self.label, self.max_attempts)
                        raise
        raise RuntimeError("Unreachable retry exit")

    async def _enforce_interval(self) -> None:
        wait = await enforce_min_interval(
            self.base_url,
            min_interval_seconds=self._min_interval_seconds,
            request_limit=self._request_limit,
        )
        log = logger.get_logger()
        log.api_wait_debug(self.label, wait)
        if wait > WAIT_LOG_THRESHOLD_SECONDS:
            log.api_wait(self.label, wait)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        session = self._session
        if session is not None and not session.closed:
            return session

        async with self._session_lock:
            session = self._session
            if session is None or session.closed:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                self._session = aiohttp.ClientSession(
                    headers={"User-Agent": DEFAULT_USER_AGENT},
                    timeout=timeout,
                )
            return self._session

    async def close(self) -> None:
        """Close any open connections."""
        async with self._session_lock:
            session = self._session
            self._session = None
        if session is not None and not session.closed:
            await session.close()

    async def __aenter__(self) -> "IndexerHttpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
