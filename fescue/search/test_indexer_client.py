from __future__ import annotations

import asyncio

import pytest
from yarl import URL

from fescue.config import IndexerConfig
from fescue.search import indexer_client
from fescue.search.types import IndexerRequest


class _FakeResponseCtx:
    def __init__(
        self,
        *,
        status: int = 200,
        body: bytes = b"",
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self._body = body
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self) -> bytes:
        return self._body


class _SequencedSession:
    def __init__(self, responses: list) -> None:
        self.closed = False
        self._responses = responses
        self.calls: list[dict] = []

    def get(self, url, **kwargs):
        idx = min(len(self.calls), len(self._responses) - 1)
        self.calls.append({"url": url, **kwargs})
        response = self._responses[idx]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class _FakeLog:
    def __init__(self) -> None:
        self.retries: list[tuple] = []
        self.failures: list[tuple] = []

    def api_request(self, *_args, **_kwargs) -> None:
        return None

    def api_response(self, *_args, **_kwargs) -> None:
        return None

    def api_retry(self, *args, **_kwargs) -> None:
        self.retries.append(args)

    def api_failed(self, *args, **_kwargs) -> None:
        self.failures.append(args)

    def api_wait_debug(self, *_args, **_kwargs) -> None:
        return None

    def api_wait(self, *_args, **_kwargs) -> None:
        return None


def _client(monkeypatch: pytest.MonkeyPatch, session: _SequencedSession, sleeps: list[float]):
    client = indexer_client.IndexerHttpClient(
        IndexerConfig(name="nab", url="https://nab.example"),
        max_attempts=3,
    )
    log = _FakeLog()

    async def _fake_ensure_session():
        return session

    async def _fake_enforce() -> None:
        return None

    async def _record_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr(client, "_ensure_session", _fake_ensure_session)
    monkeypatch.setattr(client, "_enforce_interval", _fake_enforce)
    monkeypatch.setattr(indexer_client.asyncio, "sleep", _record_sleep)
    monkeypatch.setattr(indexer_client.logger, "get_logger", lambda: log)
    return client, log


def _request() -> IndexerRequest:
    return IndexerRequest(
        URL("https://nab.example/api?t=search&q=x"),
        headers={"Authorization": "key"},
        accept="application/json",
    )


def test_execute_returns_response_with_headers(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession(
        [_FakeResponseCtx(body=b"<rss/>", headers={"Content-Type": "application/rss+xml"})]
    )
    client, _log = _client(monkeypatch, session, [])

    response = asyncio.run(client.execute(_request()))

    assert response.status == 200
    assert response.content == b"<rss/>"
    assert response.content_type == "application/rss+xml"
    assert response.headers["content-type"] == "application/rss+xml"
    assert session.calls[0]["headers"] == {"Accept": "application/json", "Authorization": "key"}


def test_execute_retries_429_honouring_retry_after(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession(
        [
            _FakeResponseCtx(status=429, headers={"Retry-After": "3"}),
            _FakeResponseCtx(status=200, body=b"ok"),
        ]
    )
    sleeps: list[float] = []
    client, log = _client(monkeypatch, session, sleeps)

    response = asyncio.run(client.execute(_request()))

    assert response.status == 200
    assert len(session.calls) == 2
    assert sleeps == [3]
    assert log.retries == [("NAB", 1, 3, 3, "rate limited")]


def test_execute_returns_last_retryable_response_unraised(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(status=503, body=b"down")])
    sleeps: list[float] = []
    client, _log = _client(monkeypatch, session, sleeps)

    response = asyncio.run(client.execute(_request()))

    assert response.status == 503
    assert len(session.calls) == 3
    assert sleeps == [2, 4]


def test_execute_does_not_retry_http_400(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(status=400, body=b"bad")])
    client, _log = _client(monkeypatch, session, [])

    response = asyncio.run(client.execute(_request()))

    assert response.status == 400
    assert len(session.calls) == 1


def test_execute_reraises_timeouts_after_last_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([asyncio.TimeoutError()])
    sleeps: list[float] = []
    client, log = _client(monkeypatch, session, sleeps)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(client.execute(_request()))
    assert len(session.calls) == 3
    assert sleeps == [2, 4]
    assert log.failures == [("NAB", 3)]


def test_get_bytes_raises_for_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(status=404)])
    client, _log = _client(monkeypatch, session, [])

    with pytest.raises(indexer_client.aiohttp.ClientResponseError) as exc_info:
        asyncio.run(client.get_bytes("https://nab.example/getnzb/1.nzb"))
    assert exc_info.value.status == 404


def test_get_bytes_returns_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(body=b"d8:announce")])
    client, _log = _client(monkeypatch, session, [])

    assert asyncio.run(client.get_bytes("https://nab.example/getnzb/1.nzb")) == b"d8:announce"


class _FakeWaitLogger:
    def __init__(self) -> None:
        self.debug_waits: list[tuple[str, float]] = []
        self.info_waits: list[tuple[str, float]] = []

    def api_wait_debug(self, indexer: str, seconds: float) -> None:
        self.debug_waits.append((indexer, seconds))

    def api_wait(self, indexer: str, seconds: float) -> None:
        self.info_waits.append((indexer, seconds))


@pytest.mark.parametrize(("wait", "expect_info"), [(0.5, False), (2.0, True)])
def test_enforce_interval_logs_long_waits_only(monkeypatch: pytest.MonkeyPatch, wait: float, expect_info: bool) -> None:
    client = indexer_client.IndexerHttpClient(IndexerConfig(name="nab", url="https://nab.example"))
    log = _FakeWaitLogger()

    async def _fake_min_interval(*_args, **_kwargs) -> float:
        return wait

    monkeypatch.setattr(indexer_client, "enforce_min_interval", _fake_min_interval)
    monkeypatch.setattr(indexer_client.logger, "get_logger", lambda: log)

    asyncio.run(client._enforce_interval())

    assert log.debug_waits == [("NAB", wait)]
    assert log.info_waits == ([("NAB", wait)] if expect_info else [])


def test_get_bytes_passes_redirect_policy_to_session(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(body=b"d8:announce")])
    client, _log = _client(monkeypatch, session, [])

    async def _run() -> None:
        await client.get_bytes("https://nab.example/getnzb/1.nzb", allow_redirects=False)
        await client.execute(_request())

    asyncio.run(_run())

    assert [call["allow_redirects"] for call in session.calls] == [False, True]


def test_get_bytes_rejects_unfollowed_redirect(monkeypatch: pytest.MonkeyPatch) -> None:
    session = _SequencedSession([_FakeResponseCtx(status=302, headers={"Location": "https://cdn.example/1.nzb"})])
    client, _log = _client(monkeypatch, session, [])

    with pytest.raises(indexer_client.aiohttp.ClientResponseError) as exc_info:
        asyncio.run(client.get_bytes("https://nab.example/getnzb/1.nzb", allow_redirects=False))
    assert exc_info.value.status == 302
