"""Capability-driven request chain builders for newznab/torznab and Gazelle."""

from __future__ import annotations

import re
from html import unescape
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl

from yarl import URL

from fescue.config import IndexerConfig
from fescue.search.capabilities import IndexerCapabilities, SearchParam
from fescue.search.criteria import (
    BookSearchCriteria,
    MovieSearchCriteria,
    MusicSearchCriteria,
    SearchCriteria,
    TvSearchCriteria,
)
from fescue.search.request_chain import PageSequence, RequestChain
from fescue.search.types import IndexerRequest

QueryParams = List[Tuple[str, str]]

STOPWORDS = {"the", "a", "an"}


def _normalize_text(text: str) -> str:
    text = unescape(text).lower()
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _remove_stopwords(text: str) -> str:
    words = text.split()
    return " ".join(w for w in words if w not in STOPWORDS)


def _positive(value: Optional[int]) -> Optional[str]:
    if value is None or value <= 0:
        return None
    return str(value)


def _present(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RequestGenerator:
    """
    Base request generator.

    Subclasses implement one builder per search type; the base class routes
    criteria by ``search_type`` and returns an empty chain for media types the
    capabilities declare no parameters for.
    """

    accept = "application/rss+xml"

    def __init__(
        self,
        settings: IndexerConfig,
        capabilities: IndexerCapabilities,
        auth_header: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.capabilities = capabilities
        self.auth_header = auth_header

    def get_search_requests(self, criteria: SearchCriteria) -> RequestChain:
        chain = RequestChain()
        supported = self.capabilities.params_for(criteria.search_type)
        if not supported:
            return chain

        builders: Dict[str, Tuple[type, Callable[..., None]]] = {
            "search": (SearchCriteria, self._build_basic),
            "movie": (MovieSearchCriteria, self._build_movie),
            "tvsearch": (TvSearchCriteria, self._build_tv),
            "music": (MusicSearchCriteria, self._build_music),
            "book": (BookSearchCriteria, self._build_book),
        }
        route = builders.get(criteria.search_type)
        if route is None:
            return chain
        criteria_type, builder = route
        if not isinstance(criteria, criteria_type):
            raise TypeError(
                f"{type(criteria).__name__} cannot be routed as a '{criteria.search_type}' search; "
                f"expected {criteria_type.__name__}"
            )
        builder(chain, criteria, supported)
        return chain

    def _headers(self) -> Dict[str, str]:
        if self.auth_header:
            return {"Authorization": self.auth_header}
        return {}

    def _tracker_categories(self, criteria: SearchCriteria) -> List[str]:
        if not criteria.categories:
            return []
        mapping = self.capabilities.categories
        if len(mapping) == 0:
            return [str(category) for category in criteria.categories]
        return mapping.map_standard_to_tracker(criteria.categories)

    def _build_basic(self, chain: RequestChain, criteria: SearchCriteria, supported) -> None:
        raise NotImplementedError

    def _build_movie(self, chain: RequestChain, criteria: SearchCriteria, supported) -> None:
        raise NotImplementedError

    def _build_tv(self, chain: RequestChain, criteria: SearchCriteria, supported) -> None:
        raise NotImplementedError

    def _build_music(self, chain: RequestChain, criteria: SearchCriteria, supported) -> None:
        raise NotImplementedError

    def _build_book(self, chain: RequestChain, criteria: SearchCriteria, supported) -> None:
        raise NotImplementedError


class NewznabRequestGenerator(RequestGenerator):
    """Builds ``t=<type>`` API requests for newznab and torznab indexers."""

    @property
    def api_url(self) -> URL:
        path = self.settings.api_path or "/api"
        if not path.startswith("/"):
            path = f"/{path}"
        return URL(f"{self.settings.base_url}{path}")

    def _build_basic(self, chain, criteria, supported) -> None:
        chain.add(self._sequence(criteria, self._free_text(criteria, supported)))

    def _build_movie(self, chain, criteria: MovieSearchCriteria, supported) -> None:
        ids = [
            (SearchParam.IMDB_ID, criteria.known_imdb_id),
            (SearchParam.TMDB_ID, _positive(criteria.known_tmdb_id)),
        ]
        self._build_id_tiers(chain, criteria, supported, ids, [])

    def _build_tv(self, chain, criteria: TvSearchCriteria, supported) -> None:
        ids = [
            (SearchParam.IMDB_ID, criteria.known_imdb_id),
            (SearchParam.TVDB_ID, _positive(criteria.tvdb_id)),
            (SearchParam.TMDB_ID, _positive(criteria.tmdb_id)),
            (SearchParam.TVMAZE_ID, _positive(criteria.tvmaze_id)),
            (SearchParam.RID, _positive(criteria.rid)),
        ]
        episode_params: QueryParams = []
        if criteria.season is not None and SearchParam.SEASON in supported:
            episode_params.append((SearchParam.SEASON.value, f"{criteria.season:02d}"))
        if criteria.episode is not None and SearchParam.EP in supported:
            episode_params.append((SearchParam.EP.value, str(criteria.episode)))
        self._build_id_tiers(chain, criteria, supported, ids, episode_params)

    def _build_music(self, chain, criteria: MusicSearchCriteria, supported) -> None:
        fields = [
            (SearchParam.ARTIST, criteria.artist),
            (SearchParam.ALBUM, criteria.album),
            (SearchParam.LABEL, criteria.label),
            (SearchParam.YEAR, criteria.year),
            (SearchParam.GENRE, criteria.genre),
            (SearchParam.TRACK, criteria.track),
        ]
        params = self._free_text(criteria, supported) + self._supported_fields(fields, supported)
        chain.add(self._sequence(criteria, params))

    def _build_book(self, chain, criteria: BookSearchCriteria, supported) -> None:
        fields = [
            (SearchParam.AUTHOR, criteria.author),
            (SearchParam.TITLE, criteria.title),
            (SearchParam.PUBLISHER, criteria.publisher),
            (SearchParam.YEAR, criteria.year),
        ]
        params = self._free_text(criteria, supported) + self._supported_fields(fields, supported)
        chain.add(self._sequence(criteria, params))

    def _build_id_tiers(
        self,
        chain: RequestChain,
        criteria: SearchCriteria,
        supported: Sequence[SearchParam],
        ids: Sequence[Tuple[SearchParam, Optional[str]]],
        extra: QueryParams,
    ) -> None:
        known = [(param, value) for param, value in ids if value and param in supported]
        if known:
            if self.capabilities.supports_aggregate_id_search and len(known) > 1:
                id_params = known
            else:
                id_params = [self._most_preferred(known)]
            chain.add(self._sequence(criteria, [(p.value, v) for p, v in id_params] + extra))

        if SearchParam.Q in supported and (criteria.sanitized_search_term or not known):
            chain.add_tier(self._sequence(criteria, self._free_text(criteria, supported) + extra))

    def _most_preferred(self, known: Sequence[Tuple[SearchParam, str]]) -> Tuple[SearchParam, str]:
        preference = list(self.capabilities.id_search_preference)

        def rank(item: Tuple[SearchParam, str]) -> int:
            param = item[0]
            return preference.index(param) if param in preference else len(preference)

        return min(known, key=rank)

    @staticmethod
    def _free_text(criteria: SearchCriteria, supported: Sequence[SearchParam]) -> QueryParams:
        term = criteria.sanitized_search_term
        if term and SearchParam.Q in supported:
            return [(SearchParam.Q.value, term)]
        return []

    @staticmethod
    def _supported_fields(
        fields: Sequence[Tuple[SearchParam, object]],
        supported: Sequence[SearchParam],
    ) -> QueryParams:
        params: QueryParams = []
        for param, value in fields:
            text = _present(value)
            if text and param in supported:
                params.append((param.value, text))
        return params

    def _sequence(self, criteria: SearchCriteria, search_params: QueryParams) -> PageSequence:
        limits = self.capabilities.limits
        page_size = limits.effective_page_size(criteria.limit)
        query: QueryParams = [("t", criteria.search_type), *search_params]

        categories = self._tracker_categories(criteria)
        if categories:
            query.append(("cat", ",".join(categories)))
        query.append(("extended", "1"))
        if self.settings.api_key:
            query.append(("apikey", self.settings.api_key))
        if self.settings.additional_parameters:
            query.extend(parse_qsl(self.settings.additional_parameters.lstrip("&?")))

        api_url = self.api_url
        headers = self._headers()

        def build_page(page: int) -> Optional[IndexerRequest]:
            offset = criteria.offset + page * page_size
            if limits.max_offset is not None and offset > limits.max_offset:
                return None
            url = api_url.with_query(query + [("limit", str(page_size)), ("offset", str(offset))])
            return IndexerRequest(url, headers=headers, accept=self.accept, offset=offset)

        return PageSequence(build_page, limits.effective_max_pages(), page_size)


class GazelleRequestGenerator(RequestGenerator):
    """Builds ``ajax.php?action=browse`` requests for Gazelle trackers."""

    accept = "application/json"

    @property
    def browse_url(self) -> URL:
        return URL(f"{self.settings.base_url}/ajax.php")

    def _build_basic(self, chain, criteria, supported) -> None:
        chain.add(self._sequence(criteria, self._searchstr(criteria.sanitized_search_term)))

    def _build_book(self, chain, criteria: BookSearchCriteria, supported) -> None:
        chain.add(self._sequence(criteria, self._searchstr(criteria.sanitized_search_term)))

    def _build_movie(self, chain, criteria: MovieSearchCriteria, supported) -> None:
        return None

    def _build_tv(self, chain, criteria: TvSearchCriteria, supported) -> None:
        return None

    def _build_music(self, chain, criteria: MusicSearchCriteria, supported) -> None:
        structured: QueryParams = []
        for param, wire_name, value in (
            (SearchParam.ARTIST, "artistname", criteria.artist),
            (SearchParam.ALBUM, "groupname", criteria.album),
            (SearchParam.LABEL, "recordlabel", criteria.label),
            (SearchParam.YEAR, "year", criteria.year),
        ):
            text = _present(value)
            if text and param in supported:
                structured.append((wire_name, text))

        term = criteria.sanitized_search_term
        if not structured:
            chain.add(self._sequence(criteria, self._searchstr(term)))
            return

        chain.add(self._sequence(criteria, self._searchstr(term) + structured))
        if SearchParam.Q in supported:
            parts = [term, criteria.artist or "", criteria.album or ""]
            fallback = _remove_stopwords(_normalize_text(" ".join(p for p in parts if p)))
            if fallback:
                chain.add_tier(self._sequence(criteria, self._searchstr(fallback)))

    @staticmethod
    def _searchstr(term: Optional[str]) -> QueryParams:
        if not term:
            return []
        return [("searchstr", term)]

    def _sequence(self, criteria: SearchCriteria, search_params: QueryParams) -> PageSequence:
        limits = self.capabilities.limits
        page_size = limits.effective_page_size(criteria.limit)
        first_page = criteria.offset // page_size + 1
        query: QueryParams = [("action", "browse"), *search_params]
        for category in self._tracker_categories(criteria):
            query.append((f"filter_cat[{category}]", "1"))

        browse_url = self.browse_url
        headers = self._headers()

        def build_page(page: int) -> Optional[IndexerRequest]:
            offset = criteria.offset + page * page_size
            if limits.max_offset is not None and offset > limits.max_offset:
                return None
            url = browse_url.with_query(query + [("page", str(first_page + page))])
            return IndexerRequest(url, headers=headers, accept=self.accept, offset=offset)

        return PageSequence(build_page, limits.effective_max_pages(), page_size)


def build_request_generator(
    wire_format: str,
    settings: IndexerConfig,
    capabilities: IndexerCapabilities,
    auth_header: Optional[str] = None,
) -> RequestGenerator:
    if wire_format == "gazelle":
        return GazelleRequestGenerator(settings, capabilities, auth_header)
    if wire_format in {"torznab", "newznab"}:
        return NewznabRequestGenerator(settings, capabilities, auth_header)
    raise ValueError(f"Unsupported wire format '{wire_format}'")
