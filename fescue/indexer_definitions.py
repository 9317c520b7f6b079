"""Central indexer capability and policy definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fescue.rate_limits import GAZELLE_MIN_INTERVAL_SECONDS, NEWZNAB_MIN_INTERVAL_SECONDS
from fescue.search.capabilities import IndexerCapabilities, SearchLimits, SearchParam
from fescue.search.categories import CategoryMapping, StandardCategory

WireFormat = Literal["gazelle", "torznab", "newznab"]
Protocol = Literal["torrent", "usenet"]


@dataclass(frozen=True)
class IndexerDefinition:
    key: str
    display_name: str
    wire_format: WireFormat
    protocol: Protocol
    capabilities: IndexerCapabilities | None
    request_limit: int | None
    min_interval_seconds: float
    token_auth: bool = False
    default_url: str | None = None


_GAZELLE_MUSIC_CATEGORIES = CategoryMapping.from_table(
    [
        (1, StandardCategory.AUDIO, "Music"),
        (2, StandardCategory.PC, "Applications"),
        (3, StandardCategory.get(7020), "E-Books"),
        (4, StandardCategory.get(3030), "Audiobooks"),
        (5, StandardCategory.OTHER, "E-Learning Videos"),
        (6, StandardCategory.OTHER, "Comedy"),
        (7, StandardCategory.get(7030), "Comics"),
    ],
    default_tracker_id=1,
)


def _gazelle_capabilities() -> IndexerCapabilities:
    return IndexerCapabilities(
        search_params=(SearchParam.Q,),
        music_search_params=(
            SearchParam.Q,
            SearchParam.ALBUM,
            SearchParam.ARTIST,
            SearchParam.LABEL,
            SearchParam.YEAR,
        ),
        book_search_params=(SearchParam.Q,),
        categories=_GAZELLE_MUSIC_CATEGORIES,
        limits=SearchLimits(page_size=50, max_page_size=50, max_pages=3),
        supports_aggregate_id_search=False,
        supports_redirect=True,
    )


_INDEXER_DEFINITIONS: dict[str, IndexerDefinition] = {
    "red": IndexerDefinition(
        key="red",
        display_name="Redacted",
        wire_format="gazelle",
        protocol="torrent",
        capabilities=_gazelle_capabilities(),
        request_limit=10,
        min_interval_seconds=GAZELLE_MIN_INTERVAL_SECONDS,
        token_auth=False,
        default_url="https://redacted.sh",
    ),
    "ops": IndexerDefinition(
        key="ops",
        display_name="Orpheus",
        wire_format="gazelle",
        protocol="torrent",
        capabilities=_gazelle_capabilities(),
        request_limit=5,
        min_interval_seconds=GAZELLE_MIN_INTERVAL_SECONDS,
        token_auth=True,
        default_url="https://orpheus.network",
    ),
    "torznab": IndexerDefinition(
        key="torznab",
        display_name="Generic Torznab",
        wire_format="torznab",
        protocol="torrent",
        capabilities=None,
        request_limit=None,
        min_interval_seconds=NEWZNAB_MIN_INTERVAL_SECONDS,
    ),
    "newznab": IndexerDefinition(
        key="newznab",
        display_name="Generic Newznab",
        wire_format="newznab",
        protocol="usenet",
        capabilities=None,
        request_limit=None,
        min_interval_seconds=NEWZNAB_MIN_INTERVAL_SECONDS,
    ),
}


def _normalize_definition_key(key: str | None) -> str:
    return (key or "").strip().lower()


def resolve_indexer_definition(key: str | None) -> IndexerDefinition:
    normalized = _normalize_definition_key(key)
    definition = _INDEXER_DEFINITIONS.get(normalized)
    if definition is not None:
        return definition
    supported = ", ".join(name for name in sorted(_INDEXER_DEFINITIONS))
    raise ValueError(
        f"Unsupported indexer definition '{key}'. Supported definitions: {supported}."
    )
