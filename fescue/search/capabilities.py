"""Static per-indexer capability descriptors."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum

from fescue.search.categories import CategoryMapping, CategoryMappingEntry, IndexerCategory, StandardCategory

# Upper bound for any page sequence, whatever the indexer advertises.
HARD_MAX_PAGES = 100


class SearchParam(str, Enum):
    """Search parameters, valued with their newznab wire names."""

    Q = "q"
    IMDB_ID = "imdbid"
    TMDB_ID = "tmdbid"
    TVDB_ID = "tvdbid"
    TVMAZE_ID = "tvmazeid"
    RID = "rid"
    SEASON = "season"
    EP = "ep"
    ARTIST = "artist"
    ALBUM = "album"
    LABEL = "label"
    YEAR = "year"
    GENRE = "genre"
    TRACK = "track"
    TITLE = "title"
    AUTHOR = "author"
    PUBLISHER = "publisher"


ID_PARAMS = frozenset(
    {SearchParam.IMDB_ID, SearchParam.TMDB_ID, SearchParam.TVDB_ID, SearchParam.TVMAZE_ID, SearchParam.RID}
)

DEFAULT_ID_PREFERENCE: tuple[SearchParam, ...] = (
    SearchParam.TMDB_ID,
    SearchParam.TVDB_ID,
    SearchParam.TVMAZE_ID,
    SearchParam.RID,
    SearchParam.IMDB_ID,
)


@dataclass(frozen=True)
class SearchLimits:
    page_size: int = 100
    max_page_size: int = 100
    max_pages: int = 30
    max_offset: int | None = None

    def effective_page_size(self, requested: int | None = None) -> int:
        size = requested if requested and requested > 0 else self.page_size
        return max(1, min(size, self.max_page_size))

    def effective_max_pages(self) -> int:
        return max(1, min(self.max_pages, HARD_MAX_PAGES))


@dataclass(frozen=True)
class IndexerCapabilities:
    search_params: tuple[SearchParam, ...] = (SearchParam.Q,)
    tv_search_params: tuple[SearchParam, ...] = ()
    movie_search_params: tuple[SearchParam, ...] = ()
    music_search_params: tuple[SearchParam, ...] = ()
    book_search_params: tuple[SearchParam, ...] = ()
    categories: CategoryMapping = field(default_factory=CategoryMapping, compare=False)
    limits: SearchLimits = field(default_factory=SearchLimits)
    supports_aggregate_id_search: bool = True
    id_search_preference: tuple[SearchParam, ...] = DEFAULT_ID_PREFERENCE
    supports_redirect: bool = False

    def params_for(self, search_type: str) -> tuple[SearchParam, ...]:
        return {
            "search": self.search_params,
            "tvsearch": self.tv_search_params,
            "movie": self.movie_search_params,
            "music": self.music_search_params,
            "book": self.book_search_params,
        }.get(search_type, ())


_SEARCH_ELEMENTS = {
    "search": "search_params",
    "tv-search": "tv_search_params",
    "movie-search": "movie_search_params",
    "music-search": "music_search_params",
    "audio-search": "music_search_params",
    "book-search": "book_search_params",
}


def _parse_supported_params(element: ET.Element) -> tuple[SearchParam, ...]:
    if (element.get("available") or "").strip().lower() != "yes":
        return ()
    raw = element.get("supportedParams") or element.get("supportedparams") or "q"
    params: list[SearchParam] = []
    for name in raw.split(","):
        try:
            param = SearchParam(name.strip().lower())
        except ValueError:
            continue
        if param not in params:
            params.append(param)
    return tuple(params)


def _int_attr(element: ET.Element | None, name: str, default: int) -> int:
    if element is None:
        return default
    try:
        return int(element.get(name, default))
    except (TypeError, ValueError):
        return default


def parse_capabilities(document: str | bytes) -> IndexerCapabilities:
    """Build capabilities from a newznab/torznab ``t=caps`` document."""
    root = ET.fromstring(document)

    limits_element = root.find("limits")
    max_page_size = _int_attr(limits_element, "max", 100)
    page_size = min(_int_attr(limits_element, "default", max_page_size), max_page_size)

    params: dict[str, tuple[SearchParam, ...]] = {}
    searching = root.find("searching")
    if searching is not None:
        for element in searching:
            target = _SEARCH_ELEMENTS.get(element.tag)
            if target and not params.get(target):
                params[target] = _parse_supported_params(element)

    entries: list[CategoryMappingEntry] = []
    categories = root.find("categories")
    if categories is not None:
        for category in categories.findall("category"):
            entries.extend(_category_entries(category))

    id_params = {p for values in params.values() for p in values} & ID_PARAMS
    return IndexerCapabilities(
        search_params=params.get("search_params", (SearchParam.Q,)),
        tv_search_params=params.get("tv_search_params", ()),
        movie_search_params=params.get("movie_search_params", ()),
        music_search_params=params.get("music_search_params", ()),
        book_search_params=params.get("book_search_params", ()),
        categories=CategoryMapping(entries),
        limits=SearchLimits(page_size=page_size, max_page_size=max_page_size),
        supports_aggregate_id_search=len(id_params) > 1,
    )


def _category_entries(element: ET.Element) -> list[CategoryMappingEntry]:
    entries: list[CategoryMappingEntry] = []
    for node in (element, *element.findall("subcat")):
        raw_id = node.get("id", "")
        if not raw_id.isdigit():
            continue
        name = node.get("name") or raw_id
        standard = StandardCategory.find(int(raw_id)) or IndexerCategory(int(raw_id), name)
        entries.append(CategoryMappingEntry(raw_id, standard, name))
    return entries
