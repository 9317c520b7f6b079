"""Indexer facade: one configured indexer behind a single search/download API."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import aiohttp

from fescue import logger
from fescue.config import IndexerConfig, SearchConfig
from fescue.indexer_auth import build_indexer_auth_header
from fescue.indexer_definitions import IndexerDefinition, resolve_indexer_definition
from fescue.indexer_status import IndexerStatusTracker
from fescue.search.capabilities import IndexerCapabilities
from fescue.search.criteria import SearchCriteria
from fescue.search.errors import IndexerError
from fescue.search.indexer_client import IndexerHttpClient
from fescue.search.parsers import ResponseParser, build_response_parser, parse_capabilities_response
from fescue.search.request_chain import RequestChain
from fescue.search.request_generators import NewznabRequestGenerator, RequestGenerator, build_request_generator
from fescue.search.search_coordinator import search_with_tiers
from fescue.search.types import IndexerRequest, IndexerResponse, ReleaseInfo

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class Indexer:
    def __init__(
        self,
        settings: IndexerConfig,
        *,
        search: Optional[SearchConfig] = None,
        client: Optional[IndexerHttpClient] = None,
        status_tracker: Optional[IndexerStatusTracker] = None,
        capabilities: Optional[IndexerCapabilities] = None,
    ) -> None:
        self.settings = settings
        self.definition: IndexerDefinition = resolve_indexer_definition(settings.definition)
        self.search_config = search or SearchConfig()
        self.status = status_tracker or IndexerStatusTracker()
        self._capabilities = capabilities or self.definition.capabilities
        self.client = client or IndexerHttpClient(
            settings,
            timeout=self.search_config.timeout,
            max_concurrency=self.search_config.max_concurrency,
            max_attempts=self.search_config.max_attempts,
            min_interval_seconds=self.definition.min_interval_seconds,
            request_limit=self.definition.request_limit,
        )
        self._auth_header: Optional[str] = None
        if self.definition.wire_format == "gazelle":
            if not settings.api_key:
                raise ValueError(f"{self.definition.display_name} indexer '{settings.name}' requires an API key.")
            self._auth_header = build_indexer_auth_header(self.definition.key, settings.api_key)

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def capabilities(self) -> IndexerCapabilities:
        """Known capabilities; generic definitions fall back to q-only search until discovered."""
        return self._capabilities or IndexerCapabilities()

    def _generator(self) -> RequestGenerator:
        return build_request_generator(
            self.definition.wire_format, self.settings, self.capabilities, self._auth_header
        )

    def _parser(self) -> ResponseParser:
        return build_response_parser(self.definition.wire_format, self.settings, self.capabilities.categories)

    async def fetch_capabilities(self) -> IndexerCapabilities:
        """Discover and cache capabilities from ``t=caps`` for newznab/torznab definitions."""
        if self._capabilities is not None:
            return self._capabilities
        api_url = NewznabRequestGenerator(self.settings, IndexerCapabilities()).api_url
        query = [("t", "caps")]
        if self.settings.api_key:
            query.append(("apikey", self.settings.api_key))
        request = IndexerRequest(api_url.with_query(query))
        try:
            response = await self.client.execute(request)
            capabilities = parse_capabilities_response(response, self.name)
        except (IndexerError, *TRANSPORT_ERRORS) as exc:
            self.status.record_failure(self.name, str(exc))
            raise
        self._capabilities = capabilities
        return capabilities

    def get_search_requests(self, criteria: SearchCriteria) -> RequestChain:
        return self._generator().get_search_requests(criteria)

    def parse_response(self, response: IndexerResponse) -> List[ReleaseInfo]:
        return self._parser().parse_response(response)

    async def search(self, criteria: SearchCriteria, *, all_tiers: Optional[bool] = None) -> List[ReleaseInfo]:
        log = logger.get_logger()
        if self.status.is_disabled(self.name):
            wait = self.status.disabled_for(self.name)
            log.warning(f"{self.name.upper()} is disabled after repeated failures; retry in {wait:.0f}s")
            return []

        await self.fetch_capabilities()
        chain = self.get_search_requests(criteria)
        if chain.is_empty():
            log.info(f"{self.name.upper()} does not support {criteria.search_type} searches with these parameters")
            return []

        log.debug(f"{self.name.upper()} searching {criteria.describe()} over {chain.tiers} tier(s)")
        try:
            releases = await search_with_tiers(
                self.client,
                chain,
                self._parser(),
                all_tiers=self.search_config.all_tiers if all_tiers is None else all_tiers,
                max_results=self.search_config.max_results,
                max_attempts=self.search_config.max_attempts,
                indexer_name=self.name,
            )
        except (IndexerError, *TRANSPORT_ERRORS) as exc:
            self.status.record_failure(self.name, str(exc))
            raise
        self.status.record_success(self.name)
        return releases

    async def download(self, url: str) -> bytes:
        """
        Fetch a release payload; failures are recorded and yield ``b""``.

        Redirects are followed only for trackers whose capabilities declare
        ``supports_redirect``; elsewhere a 3xx answer counts as a failure.
        """
        headers = {"Authorization": self._auth_header} if self._auth_header else None
        try:
            content = await self.client.get_bytes(
                url, headers=headers, allow_redirects=self.capabilities.supports_redirect
            )
        except TRANSPORT_ERRORS as exc:
            self.status.record_failure(self.name, str(exc))
            logger.get_logger().error(f"Download failed from {self.name.upper()}: {exc}")
            return b""
        self.status.record_success(self.name)
        return content

    async def close(self) -> None:
        await self.client.close()
