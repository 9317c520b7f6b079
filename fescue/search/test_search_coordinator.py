from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest
from yarl import URL

from fescue.config import IndexerConfig
from fescue.search import indexer_client, resilience, search_coordinator
from fescue.search.errors import AuthenticationError, RateLimitedError
from fescue.search.request_chain import PageSequence, RequestChain
from fescue.search.types import IndexerRequest, IndexerResponse, ReleaseInfo

BASE_DATE = datetime(2021, 1, 1, tzinfo=timezone.utc)


def _release(guid: str, days: int = 0) -> ReleaseInfo:
    return ReleaseInfo(guid=guid, title=guid, publish_date=BASE_DATE + timedelta(days=days), indexer="nab")


def _sequence(name: str, page_size: int = 2, max_pages: int = 5) -> PageSequence:
    return PageSequence(
        lambda page: IndexerRequest(URL(f"https://nab.example/api?s={name}&page={page}")),
        max_pages=max_pages,
        page_size=page_size,
    )


class _FakeClient:
    def __init__(self) -> None:
        self.requests: list[IndexerRequest] = []

    async def execute(self, request: IndexerRequest) -> IndexerResponse:
        self.requests.append(request)
        return IndexerResponse(request, 200)


class _FakeParser:
    def __init__(self, pages: dict[tuple[str, int], list]) -> None:
        self.pages = pages

    def parse_response(self, response: IndexerResponse) -> list[ReleaseInfo]:
        key = (response.request.query["s"], int(response.request.query["page"]))
        outcome = self.pages.get(key, [])
        if isinstance(outcome, list) and outcome and isinstance(outcome[0], Exception):
            raise outcome.pop(0)
        return outcome


class _FakeLog:
    def __init__(self) -> None:
        self.retries: list[tuple] = []

    def api_retry(self, *args, **kwargs) -> None:
        self.retries.append(args + tuple(kwargs.values()))

    def debug(self, *_args, **_kwargs) -> None:
        return None


@pytest.fixture
def fake_log(monkeypatch: pytest.MonkeyPatch) -> _FakeLog:
    log = _FakeLog()
    monkeypatch.setattr(search_coordinator.logger, "get_logger", lambda: log)

    async def _no_sleep(_delay: float) -> None:
        return None

    monkeypatch.setattr(resilience.asyncio, "sleep", _no_sleep)
    return log


def _chain(*tiers: list[PageSequence]) -> RequestChain:
    chain = RequestChain()
    for sequences in tiers:
        chain.add_tier()
        for sequence in sequences:
            chain.add(sequence)
    return chain


@pytest.mark.asyncio
async def test_stops_sequence_on_short_page_and_after_first_productive_tier(fake_log: _FakeLog) -> None:
    client = _FakeClient()
    parser = _FakeParser(
        {
            ("ids", 0): [_release("a", 1), _release("b", 3)],
            ("ids", 1): [_release("c", 2)],
            ("q", 0): [_release("z", 9)],
        }
    )

    releases = await search_coordinator.search_with_tiers(
        client, _chain([_sequence("ids")], [_sequence("q")]), parser
    )

    assert [r.guid for r in releases] == ["b", "c", "a"]
    assert [r.query["s"] for r in client.requests] == ["ids", "ids"]


@pytest.mark.asyncio
async def test_falls_back_to_next_tier_when_first_is_empty(fake_log: _FakeLog) -> None:
    client = _FakeClient()
    parser = _FakeParser({("q", 0): [_release("z")]})

    releases = await search_coordinator.search_with_tiers(
        client, _chain([_sequence("ids")], [_sequence("q")]), parser
    )

    assert [r.guid for r in releases] == ["z"]
    assert [(r.tier, r.query["s"]) for r in client.requests] == [(0, "ids"), (1, "q")]


@pytest.mark.asyncio
async def test_all_tiers_merges_and_deduplicates_by_guid(fake_log: _FakeLog) -> None:
    parser = _FakeParser(
        {
            ("ids", 0): [_release("a", 1)],
            ("q", 0): [_release("a", 1), _release("b", 5)],
        }
    )

    releases = await search_coordinator.search_with_tiers(
        _FakeClient(), _chain([_sequence("ids")], [_sequence("q")]), parser, all_tiers=True
    )

    assert [r.guid for r in releases] == ["b", "a"]


@pytest.mark.asyncio
async def test_max_results_stops_early(fake_log: _FakeLog) -> None:
    client = _FakeClient()
    parser = _FakeParser(
        {
            ("q", 0): [_release("a", 1), _release("b", 2)],
            ("q", 1): [_release("c", 3), _release("d", 4)],
        }
    )

    releases = await search_coordinator.search_with_tiers(
        client, _chain([_sequence("q")]), parser, max_results=3
    )

    assert len(releases) == 3
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_full_pages_are_bounded_by_sequence_ceiling(fake_log: _FakeLog) -> None:
    client = _FakeClient()
    parser = _FakeParser({("q", page): [_release(f"{page}-1"), _release(f"{page}-2")] for page in range(10)})

    releases = await search_coordinator.search_with_tiers(client, _chain([_sequence("q", max_pages=3)]), parser)

    assert len(client.requests) == 3
    assert len(releases) == 6


@pytest.mark.asyncio
async def test_rate_limited_pages_are_retried(fake_log: _FakeLog) -> None:
    parser = _FakeParser({("q", 0): [RateLimitedError("API limit reached")]})

    releases = await search_coordinator.search_with_tiers(_FakeClient(), _chain([_sequence("q")]), parser)

    assert releases == []
    assert fake_log.retries == [("INDEXER", 1, 3, 2, "RateLimitedError")]


@pytest.mark.asyncio
async def test_authentication_errors_propagate(fake_log: _FakeLog) -> None:
    parser = _FakeParser({("q", 0): [AuthenticationError("Invalid API key")]})

    with pytest.raises(AuthenticationError):
        await search_coordinator.search_with_tiers(_FakeClient(), _chain([_sequence("q")]), parser)


class _RefusingSession:
    def __init__(self) -> None:
        self.closed = False
        self.calls: list[str] = []

    def get(self, url, **_kwargs):
        self.calls.append(str(url))
        raise aiohttp.ClientConnectionError("connection refused")


class _FakeClientLog:
    def __init__(self) -> None:
        self.retries: list[tuple] = []
        self.failures: list[tuple] = []

    def api_request(self, *_args, **_kwargs) -> None:
        return None

    def api_retry(self, *args, **_kwargs) -> None:
        self.retries.append(args)

    def debug(self, *_args, **_kwargs) -> None:
        return None

    def api_failed(self, *args, **_kwargs) -> None:
        self.failures.append(args)


def test_transport_failures_are_retried_only_by_the_client(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _RefusingSession()
    client_log = _FakeClientLog()
    sleeps: list[float] = []
    client = indexer_client.IndexerHttpClient(IndexerConfig(name="nab", url="https://nab.example"), max_attempts=3)

    async def _fake_ensure_session():
        return session

    async def _fake_enforce() -> None:
        return None

    async def _record_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr(client, "_ensure_session", _fake_ensure_session)
    monkeypatch.setattr(client, "_enforce_interval", _fake_enforce)
    monkeypatch.setattr(indexer_client.asyncio, "sleep", _record_sleep)
    monkeypatch.setattr(indexer_client.logger, "get_logger", lambda: client_log)

    with pytest.raises(aiohttp.ClientConnectionError):
        asyncio.run(
            search_coordinator.search_with_tiers(
                client, _chain([_sequence("q")]), _FakeParser({}), max_attempts=3, indexer_name="nab"
            )
        )

    assert len(session.calls) == 3
    assert sleeps == [2, 4]
    assert client_log.retries == [("NAB", 1, 3, 2), ("NAB", 2, 3, 4)]
    assert client_log.failures == [("NAB", 3)]
