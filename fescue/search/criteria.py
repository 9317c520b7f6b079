"""Immutable search criteria, one variant per media type."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar

from .parse_util import normalize_imdb_id

_UNSAFE_TERM_CHARS = re.compile(r"[^\w\s\-.'&+]", flags=re.UNICODE)


def _known_int(value: int | None) -> int | None:
    return value if value is not None and value > 0 else None


@dataclass(frozen=True)
class SearchCriteria:
    search_type: ClassVar[str] = "search"

    search_term: str | None = None
    categories: tuple[int, ...] = ()
    offset: int = 0
    limit: int | None = None

    @property
    def sanitized_search_term(self) -> str:
        term = _UNSAFE_TERM_CHARS.sub(" ", self.search_term or "")
        return re.sub(r"\s+", " ", term).strip()

    def describe(self) -> str:
        items: list[str] = [f"type={self.search_type}"]
        if self.search_term:
            items.append(f"q='{self.search_term}'")
        for name, value in self._described_fields():
            if value is not None and value != "":
                items.append(f"{name}={value!r}" if isinstance(value, str) else f"{name}={value}")
        if self.categories:
            items.append(f"cat={','.join(str(c) for c in self.categories)}")
        if self.offset:
            items.append(f"offset={self.offset}")
        return ", ".join(items)

    def _described_fields(self) -> tuple[tuple[str, object], ...]:
        return ()


@dataclass(frozen=True)
class BasicSearchCriteria(SearchCriteria):
    search_type: ClassVar[str] = "search"


@dataclass(frozen=True)
class MovieSearchCriteria(SearchCriteria):
    search_type: ClassVar[str] = "movie"

    imdb_id: str | None = None
    tmdb_id: int | None = None

    @property
    def known_imdb_id(self) -> str | None:
        return normalize_imdb_id(self.imdb_id)

    @property
    def known_tmdb_id(self) -> int | None:
        return _known_int(self.tmdb_id)

    def _described_fields(self):
        return (("imdbid", self.known_imdb_id), ("tmdbid", self.known_tmdb_id))


@dataclass(frozen=True)
class TvSearchCriteria(SearchCriteria):
    search_type: ClassVar[str] = "tvsearch"

    imdb_id: str | None = None
    tvdb_id: int | None = None
    tmdb_id: int | None = None
    tvmaze_id: int | None = None
    rid: int | None = None
    season: int | None = None
    episode: int | None = None

    @property
    def known_imdb_id(self) -> str | None:
        return normalize_imdb_id(self.imdb_id)

    def _described_fields(self):
        return (
            ("imdbid", self.known_imdb_id),
            ("tvdbid", _known_int(self.tvdb_id)),
            ("tmdbid", _known_int(self.tmdb_id)),
            ("season", self.season),
            ("ep", self.episode),
        )


@dataclass(frozen=True)
class MusicSearchCriteria(SearchCriteria):
    search_type: ClassVar[str] = "music"

    artist: str | None = None
    album: str | None = None
    label: str | None = None
    year: int | None = None
    genre: str | None = None
    track: str | None = None

    def _described_fields(self):
        return (("artist", self.artist), ("album", self.album), ("label", self.label), ("year", self.year))


@dataclass(frozen=True)
class BookSearchCriteria(SearchCriteria):
    search_type: ClassVar[str] = "book"

    author: str | None = None
    title: str | None = None
    publisher: str | None = None
    year: int | None = None

    def _described_fields(self):
        return (("author", self.author), ("title", self.title), ("publisher", self.publisher))
