"""Shared data structures for requests, responses and normalized releases."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Tuple

from multidict import CIMultiDict
from yarl import URL

from fescue.search.categories import IndexerCategory

TORRENT_MIME_TYPE = "application/x-bittorrent"
USENET_MIME_TYPES = ("application/x-nzb", "application/x-nzb-compressed")


class IndexerFlag(str, Enum):
    FREELEECH = "freeleech"
    HALF_LEECH = "halfleech"
    DOUBLE_UPLOAD = "doubleupload"
    SCENE = "scene"


@dataclass(frozen=True)
class IndexerRequest:
    """One outbound request plus the chain position it was produced at."""

    url: URL
    headers: Mapping[str, str] = field(default_factory=dict, compare=False)
    accept: str = "application/rss+xml"
    tier: int = 0
    page: int = 0
    offset: int = 0

    @property
    def query(self):
        return self.url.query


@dataclass
class IndexerResponse:
    """Raw HTTP exchange handed to a parser."""

    request: IndexerRequest
    status: int
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    content: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def volume_factor_flags(download_factor: float, upload_factor: float) -> frozenset[IndexerFlag]:
    flags: set[IndexerFlag] = set()
    if upload_factor > 1:
        flags.add(IndexerFlag.DOUBLE_UPLOAD)
    if 0 < download_factor < 1:
        flags.add(IndexerFlag.HALF_LEECH)
    if download_factor == 0:
        flags.add(IndexerFlag.FREELEECH)
    return frozenset(flags)


@dataclass(frozen=True)
class ReleaseInfo:
    """Normalized release produced by every parser."""

    guid: str
    title: str
    publish_date: datetime
    indexer: str
    download_url: Optional[str] = None
    info_url: Optional[str] = None
    comments_url: Optional[str] = None
    size: Optional[int] = None
    seeders: Optional[int] = None
    peers: Optional[int] = None
    grabs: Optional[int] = None
    files: Optional[int] = None
    categories: Tuple[IndexerCategory, ...] = ()
    download_volume_factor: float = 1.0
    upload_volume_factor: float = 1.0
    indexer_flags: frozenset[IndexerFlag] = frozenset()
    info_hash: Optional[str] = None
    magnet_url: Optional[str] = None
    imdb_id: Optional[int] = None
    poster_url: Optional[str] = None
    protocol: str = "torrent"
    codec: Optional[str] = None
    container: Optional[str] = None

    @property
    def freeleech(self) -> bool:
        return IndexerFlag.FREELEECH in self.indexer_flags

    @property
    def leechers(self) -> Optional[int]:
        if self.peers is None or self.seeders is None:
            return None
        return max(self.peers - self.seeders, 0)
