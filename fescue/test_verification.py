from __future__ import annotations

from pathlib import Path

import aiohttp
import pytest
from multidict import CIMultiDict

from fescue import verification
from fescue.config import FescueConfig, IndexerConfig
from fescue.search.errors import RateLimitedError
from fescue.search.indexer import Indexer
from fescue.search.types import IndexerRequest, IndexerResponse

FIXTURE_DIR = Path(__file__).parent / "search" / "fixtures"


class _FakeClient:
    def __init__(self, responses: list[tuple[int, str, bytes]]) -> None:
        self._responses = list(responses)
        self.requests: list[IndexerRequest] = []
        self.closed = False

    async def execute(self, request: IndexerRequest) -> IndexerResponse:
        self.requests.append(request)
        status, content_type, body = self._responses.pop(0)
        return IndexerResponse(request, status, CIMultiDict({"Content-Type": content_type}), body)

    async def close(self) -> None:
        self.closed = True


def _caps() -> tuple[int, str, bytes]:
    return 200, "application/xml", (FIXTURE_DIR / "newznab_caps.xml").read_bytes()


def _torznab(client: _FakeClient) -> Indexer:
    settings = IndexerConfig(name="tz", url="https://tracker.example", definition="torznab", api_key="abcd")
    return Indexer(settings, client=client)


@pytest.mark.asyncio
async def test_verify_indexer_reports_first_page_counts() -> None:
    feed = (200, "application/rss+xml", (FIXTURE_DIR / "torznab_feed.xml").read_bytes())
    client = _FakeClient([_caps(), feed])

    name, ok, details = await verification.verify_indexer(_torznab(client))

    assert (name, ok) == ("TZ", True)
    assert details.startswith("3 releases on first page")
    assert client.requests[1].query["t"] == "search"
    assert "q" not in client.requests[1].query


@pytest.mark.asyncio
async def test_verify_indexer_flags_rejected_key() -> None:
    error = (200, "application/xml", b'<error code="100" description="Incorrect user credentials"/>')
    client = _FakeClient([_caps(), error])

    _, ok, details = await verification.verify_indexer(_torznab(client))

    assert ok is False
    assert details == "Invalid API key"


@pytest.mark.asyncio
async def test_verify_indexer_maps_unauthorized_status_to_invalid_key() -> None:
    client = _FakeClient([_caps(), (401, "text/html", b"denied")])

    _, ok, details = await verification.verify_indexer(_torznab(client))

    assert ok is False
    assert details == "Invalid API key - 401 from API request"


@pytest.mark.asyncio
async def test_verify_with_retry_reports_connection_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    delays: list[float] = []

    async def _fake_sleep(delay: float) -> None:
        delays.append(delay)

    async def _always_fails(*_args):
        raise aiohttp.ClientConnectionError("refused")

    monkeypatch.setattr(verification.asyncio, "sleep", _fake_sleep)

    result = await verification.verify_with_retry(_always_fails, "TZ", max_retries=2)

    assert result == ("TZ", False, "Connection failed after 3 attempts")
    assert delays == [1, 2]


@pytest.mark.asyncio
async def test_verify_with_retry_retries_rate_limits(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"n": 0}

    async def _no_sleep(_delay: float) -> None:
        return None

    async def _limited_once(*_args):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RateLimitedError("Request limit reached")
        return "TZ", True, "ok"

    monkeypatch.setattr(verification.asyncio, "sleep", _no_sleep)

    assert await verification.verify_with_retry(_limited_once, "TZ") == ("TZ", True, "ok")
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_verify_indexers_without_indexers_returns_false() -> None:
    assert await verification.verify_indexers(FescueConfig()) is False


@pytest.mark.asyncio
async def test_verify_indexers_reports_invalid_configuration() -> None:
    config = FescueConfig(indexers={"ops": IndexerConfig(name="ops", url="https://ops.example", definition="ops")})

    assert await verification.verify_indexers(config) is False
