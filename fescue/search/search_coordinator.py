"""Tiered search coordinator: consumes a request chain and aggregates releases."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from fescue import logger
from fescue.search.parsers import sort_releases
from fescue.search.request_chain import RequestChain
from fescue.search.resilience import run_with_retries
from fescue.search.types import IndexerRequest, IndexerResponse, ReleaseInfo


class RequestExecutor(Protocol):
    async def execute(self, request: IndexerRequest) -> IndexerResponse:
        ...


class ResponseParserLike(Protocol):
    def parse_response(self, response: IndexerResponse) -> List[ReleaseInfo]:
        ...


async def _fetch_page(client: RequestExecutor, parser: ResponseParserLike, request: IndexerRequest) -> List[ReleaseInfo]:
    response = await client.execute(request)
    return parser.parse_response(response)


async def search_with_tiers(
    client: RequestExecutor,
    chain: RequestChain,
    parser: ResponseParserLike,
    *,
    all_tiers: bool = False,
    max_results: Optional[int] = None,
    max_attempts: int = 3,
    indexer_name: str = "indexer",
) -> List[ReleaseInfo]:
    """
    Consume tiers in ascending order and return releases newest first.

    Pages of a sequence are pulled one at a time; a short page ends the
    sequence. The first tier that yields releases ends the search unless
    ``all_tiers`` is set. Releases are deduplicated by guid.
    """
    collected: Dict[str, ReleaseInfo] = {}
    label = indexer_name.upper()

    def _on_retry(attempt: int, attempts: int, delay: float, exc: Exception) -> None:
        logger.get_logger().api_retry(label, attempt, attempts, int(delay), reason=type(exc).__name__)

    for tier_index, tier in enumerate(chain.get_all_tiers()):
        tier_found = 0
        for sequence in tier:
            for request in sequence:
                releases = await run_with_retries(
                    lambda request=request: _fetch_page(client, parser, request),
                    max_attempts=max_attempts,
                    on_retry=_on_retry,
                )
                logger.get_logger().debug(
                    f"{label} tier {tier_index} page {request.page}: {len(releases)} releases"
                )
                for release in releases:
                    if release.guid not in collected:
                        collected[release.guid] = release
                        tier_found += 1
                if max_results is not None and len(collected) >= max_results:
                    sequence.close()
                    return sort_releases(collected.values())[:max_results]
                if len(releases) < sequence.page_size:
                    sequence.close()
                    break
        if tier_found and not all_tiers:
            break

    return sort_releases(collected.values())
