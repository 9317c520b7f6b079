"""Response normalizers for torznab/newznab XML feeds and Gazelle JSON."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from html import unescape
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from yarl import URL

from fescue import logger
from fescue.config import IndexerConfig
from fescue.search.capabilities import IndexerCapabilities, parse_capabilities
from fescue.search.categories import CategoryMapping, IndexerCategory
from fescue.search.errors import (
    AuthenticationError,
    MalformedItemError,
    ProtocolError,
    RateLimitedError,
    UnexpectedContentTypeError,
    UnexpectedStatusError,
)
from fescue.search.parse_util import (
    get_bytes,
    parse_imdb_id,
    parse_publish_date,
    try_coerce_float,
    try_coerce_int,
)
from fescue.search.types import (
    TORRENT_MIME_TYPE,
    USENET_MIME_TYPES,
    IndexerFlag,
    IndexerRequest,
    IndexerResponse,
    ReleaseInfo,
    volume_factor_flags,
)

TORZNAB_NS = "{http://torznab.com/schemas/2015/feed}"
NEWZNAB_NS = "{http://www.newznab.com/DTD/2010/feeds/attributes/}"
JSON_CONTENT_TYPE = "application/json"

_RATE_LIMIT_HINTS = ("request limit reached", "rate limit", "too many requests")
_AUTH_HINTS = ("api key", "apikey", "credentials", "unauthorized", "not logged in", "authentication")


def sort_releases(releases: Iterable[ReleaseInfo]) -> List[ReleaseInfo]:
    """Order releases newest first; ties keep their feed order."""
    return sorted(releases, key=lambda release: release.publish_date, reverse=True)


def classify_api_error(
    description: str,
    request: IndexerRequest,
    *,
    code: Optional[int] = None,
    indexer: Optional[str] = None,
) -> None:
    """Raise the IndexerError subclass matching a tracker-declared error."""
    message = (description or "").strip()
    if code is not None and 100 <= code <= 199:
        raise AuthenticationError("Invalid API key", indexer=indexer)
    if message == "Missing parameter" and "apikey" not in request.query:
        raise AuthenticationError("Indexer requires an API key", indexer=indexer)
    lowered = message.lower()
    if any(hint in lowered for hint in _RATE_LIMIT_HINTS):
        raise RateLimitedError("API limit reached", indexer=indexer)
    if code is None and any(hint in lowered for hint in _AUTH_HINTS):
        raise AuthenticationError(message, indexer=indexer)
    raise ProtocolError(message, indexer=indexer)


class ResponseParser:
    """
    Base normalizer.

    Subclasses supply the content-type check, the item iterator and the
    per-item conversion. A record that fails to convert is logged and
    skipped; any other failure aborts the whole response.
    """

    protocol = "torrent"

    def __init__(self, settings: IndexerConfig, categories: Optional[CategoryMapping] = None) -> None:
        self.settings = settings
        self.categories = categories if categories is not None else CategoryMapping()

    @property
    def indexer_name(self) -> str:
        return self.settings.name

    def parse_response(self, response: IndexerResponse) -> List[ReleaseInfo]:
        self._check_status(response)
        self._check_content_type(response)

        items = self._items(response)
        releases: List[ReleaseInfo] = []
        for index, item in enumerate(items):
            try:
                releases.append(self._guarded_item(item))
            except MalformedItemError as exc:
                logger.get_logger().warning(
                    f"Skipping malformed item #{index + 1} from {self.indexer_name}: {exc.message}"
                )
        self._post_process(response, items, releases)
        return sort_releases(releases)

    def _guarded_item(self, item: Any) -> ReleaseInfo:
        try:
            return self._parse_item(item)
        except MalformedItemError:
            raise
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise MalformedItemError(str(exc) or type(exc).__name__, indexer=self.indexer_name) from exc

    def _check_status(self, response: IndexerResponse) -> None:
        if not 200 <= response.status < 300:
            raise UnexpectedStatusError(response.status, indexer=self.indexer_name)

    def _check_content_type(self, response: IndexerResponse) -> None:
        raise NotImplementedError

    def _items(self, response: IndexerResponse) -> Sequence[Any]:
        raise NotImplementedError

    def _parse_item(self, item: Any) -> ReleaseInfo:
        raise NotImplementedError

    def _post_process(self, response: IndexerResponse, items: Sequence[Any], releases: List[ReleaseInfo]) -> None:
        return None


def load_xml_document(response: IndexerResponse, indexer: Optional[str] = None) -> ET.Element:
    try:
        return ET.fromstring(response.content)
    except ET.ParseError as exc:
        raise ProtocolError(f"Malformed XML from API request: {exc}", indexer=indexer) from exc


def check_xml_content_type(response: IndexerResponse, indexer: Optional[str] = None) -> None:
    content_type = response.content_type
    if content_type and "xml" not in content_type.lower():
        raise UnexpectedContentTypeError(content_type, "application/rss+xml", indexer=indexer)


def raise_for_xml_error(root: ET.Element, request: IndexerRequest, indexer: Optional[str] = None) -> None:
    error = root if root.tag == "error" else root.find(".//error")
    if error is None:
        return
    raw_code = error.get("code")
    code = int(raw_code) if raw_code and raw_code.strip().isdigit() else None
    classify_api_error(error.get("description", ""), request, code=code, indexer=indexer)


class RssFeedParser(ResponseParser):
    """Shared RSS item handling for torznab and newznab feeds."""

    expected_mime_types: Tuple[str, ...] = ()
    other_mime_types: Tuple[str, ...] = ()
    other_indexer_kind = ""

    def _check_content_type(self, response: IndexerResponse) -> None:
        check_xml_content_type(response, self.indexer_name)

    def _items(self, response: IndexerResponse) -> Sequence[ET.Element]:
        root = load_xml_document(response, self.indexer_name)
        raise_for_xml_error(root, response.request, self.indexer_name)
        return root.findall("./channel/item") or root.findall(".//item")

    def _parse_item(self, item: ET.Element) -> ReleaseInfo:
        attrs = _item_attributes(item)

        title = (item.findtext("title") or "").strip()
        if not title:
            raise MalformedItemError("item has no title", indexer=self.indexer_name)

        download_url = self._download_url(item)
        guid = (item.findtext("guid") or "").strip() or download_url
        if not guid:
            raise MalformedItemError(f"item '{title}' has no guid", indexer=self.indexer_name)

        pub_date = item.findtext("pubDate") or _first(attrs, "usenetdate")
        if not pub_date:
            raise MalformedItemError(f"item '{title}' has no publish date", indexer=self.indexer_name)

        comments = (item.findtext("comments") or "").strip() or None
        info_url = comments[: -len("#comments")] if comments and comments.endswith("#comments") else comments

        download_factor = try_coerce_float(_first(attrs, "downloadvolumefactor"))
        upload_factor = try_coerce_float(_first(attrs, "uploadvolumefactor"))
        download_factor = 1.0 if download_factor is None else download_factor
        upload_factor = 1.0 if upload_factor is None else upload_factor

        seeders = try_coerce_int(_first(attrs, "seeders"))
        return ReleaseInfo(
            guid=guid,
            title=unescape(title),
            publish_date=parse_publish_date(pub_date),
            indexer=self.indexer_name,
            download_url=download_url,
            info_url=info_url or None,
            comments_url=comments,
            size=self._size(item, attrs),
            seeders=seeders,
            peers=self._peers(attrs, seeders),
            grabs=try_coerce_int(_first(attrs, "grabs")),
            files=try_coerce_int(_first(attrs, "files")),
            categories=self._categories(item, attrs),
            download_volume_factor=download_factor,
            upload_volume_factor=upload_factor,
            indexer_flags=self._flags(attrs, download_factor, upload_factor),
            info_hash=_first(attrs, "infohash"),
            magnet_url=_first(attrs, "magneturl"),
            imdb_id=parse_imdb_id(_first(attrs, "imdbid") or _first(attrs, "imdb")),
            poster_url=_first(attrs, "coverurl"),
            protocol=self.protocol,
        )

    def _download_url(self, item: ET.Element) -> Optional[str]:
        enclosure = item.find("enclosure")
        if enclosure is not None and enclosure.get("url"):
            return enclosure.get("url").strip()
        link = (item.findtext("link") or "").strip()
        return link or None

    @staticmethod
    def _size(item: ET.Element, attrs: Dict[str, List[str]]) -> Optional[int]:
        for raw in (_first(attrs, "size"), item.findtext("size")):
            if not raw:
                continue
            text = raw.strip()
            if text.isdigit():
                return int(text)
            return get_bytes(text)
        enclosure = item.find("enclosure")
        if enclosure is not None:
            return try_coerce_int(enclosure.get("length"))
        return None

    @staticmethod
    def _peers(attrs: Dict[str, List[str]], seeders: Optional[int]) -> Optional[int]:
        peers = try_coerce_int(_first(attrs, "peers"))
        if peers is not None:
            return peers
        leechers = try_coerce_int(_first(attrs, "leechers"))
        if seeders is not None and leechers is not None:
            return seeders + leechers
        return None

    def _categories(self, item: ET.Element, attrs: Dict[str, List[str]]) -> Tuple[IndexerCategory, ...]:
        found: List[IndexerCategory] = []
        for raw in attrs.get("category", []):
            for category in self.categories.map_tracker_id(raw):
                if category not in found:
                    found.append(category)
        if not found:
            text = (item.findtext("category") or "").strip()
            if text:
                found.extend(self.categories.resolve(text))
        if not found:
            found.extend(self.categories.map_default())
        return tuple(found)

    @staticmethod
    def _flags(attrs: Dict[str, List[str]], download_factor: float, upload_factor: float) -> frozenset:
        flags = set(volume_factor_flags(download_factor, upload_factor))
        tags = {tag.strip().lower() for tag in attrs.get("tag", [])}
        if "scene" in tags:
            flags.add(IndexerFlag.SCENE)
        if "freeleech" in tags:
            flags.add(IndexerFlag.FREELEECH)
        return frozenset(flags)

    def _post_process(self, response: IndexerResponse, items: Sequence[ET.Element], releases: List[ReleaseInfo]) -> None:
        enclosure_types: List[str] = []
        for item in items:
            for enclosure in item.findall("enclosure"):
                mime = (enclosure.get("type") or "").strip()
                if mime and mime not in enclosure_types:
                    enclosure_types.append(mime)
        if not enclosure_types or set(enclosure_types) & set(self.expected_mime_types):
            return

        expected = self.expected_mime_types[0]
        if set(enclosure_types) & set(self.other_mime_types):
            logger.get_logger().warning(
                f"Feed does not contain {expected}, found {enclosure_types[0]}, "
                f"did you intend to add a {self.other_indexer_kind} indexer?"
            )
        else:
            logger.get_logger().warning(f"Feed does not contain {expected}, found {enclosure_types[0]}.")


class TorznabRssParser(RssFeedParser):
    protocol = "torrent"
    expected_mime_types = (TORRENT_MIME_TYPE,)
    other_mime_types = USENET_MIME_TYPES
    other_indexer_kind = "Newznab"


class NewznabRssParser(RssFeedParser):
    protocol = "usenet"
    expected_mime_types = USENET_MIME_TYPES
    other_mime_types = (TORRENT_MIME_TYPE,)
    other_indexer_kind = "Torznab"

    def _download_url(self, item: ET.Element) -> Optional[str]:
        link = (item.findtext("link") or "").strip()
        return link or super()._download_url(item)


def _item_attributes(item: ET.Element) -> Dict[str, List[str]]:
    attrs: Dict[str, List[str]] = {}
    for element in item:
        if element.tag not in (f"{TORZNAB_NS}attr", f"{NEWZNAB_NS}attr"):
            continue
        name = (element.get("name") or "").strip().lower()
        value = element.get("value")
        if name and value is not None:
            attrs.setdefault(name, []).append(value)
    return attrs


def _first(attrs: Dict[str, List[str]], name: str) -> Optional[str]:
    values = attrs.get(name)
    if not values:
        return None
    value = values[0].strip()
    return value or None


class GazelleParser(ResponseParser):
    """Flattens ``ajax.php?action=browse`` groups into one release per torrent."""

    protocol = "torrent"

    def _check_content_type(self, response: IndexerResponse) -> None:
        if JSON_CONTENT_TYPE not in response.content_type.lower():
            raise UnexpectedContentTypeError(response.content_type, JSON_CONTENT_TYPE, indexer=self.indexer_name)

    def _items(self, response: IndexerResponse) -> Sequence[Tuple[dict, Optional[dict]]]:
        try:
            payload = json.loads(response.content)
        except ValueError as exc:
            raise ProtocolError(f"Malformed JSON from API request: {exc}", indexer=self.indexer_name) from exc
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"API payload has unexpected type '{type(payload).__name__}'", indexer=self.indexer_name
            )

        error = payload.get("error")
        if isinstance(error, str) and error.strip():
            classify_api_error(error, response.request, indexer=self.indexer_name)

        status = payload.get("status")
        body = payload.get("response")
        if not isinstance(status, str) or status.strip().lower() != "success" or not isinstance(body, dict):
            return []

        results = body.get("results") or []
        if not isinstance(results, list):
            raise ProtocolError(
                f"response.results has unexpected type '{type(results).__name__}'", indexer=self.indexer_name
            )

        records: List[Tuple[dict, Optional[dict]]] = []
        for group in results:
            torrents = group.get("torrents") if isinstance(group, dict) else None
            if isinstance(group, dict) and torrents is not None:
                records.extend((group, torrent) for torrent in torrents)
            else:
                records.append((group, None))
        return records

    def _parse_item(self, item: Tuple[dict, Optional[dict]]) -> ReleaseInfo:
        group, torrent = item
        if not isinstance(group, dict) or (torrent is not None and not isinstance(torrent, dict)):
            raise MalformedItemError("result is not an object", indexer=self.indexer_name)

        group_id = group["groupId"]
        if torrent is not None:
            record = torrent
            title = (
                f"{group.get('artist', '')} - {group.get('groupName', '')} ({group.get('groupYear', '')}) "
                f"[{torrent.get('format', '')} {torrent.get('encoding', '')}] [{torrent.get('media', '')}]"
            )
            if torrent.get("hasCue"):
                title += " [Cue]"
            publish_date = parse_publish_date(torrent["time"])
        else:
            record = group
            title = str(group.get("groupName") or "")
            publish_date = parse_publish_date(group["groupTime"])

        torrent_id = record["torrentId"]
        info_url = self._info_url(group_id, torrent_id)
        seeders = int(record["seeders"])
        leechers = int(record["leechers"])

        neutral = bool(record.get("isNeutralLeech"))
        free = bool(record.get("isFreeleech") or record.get("isPersonalFreeleech"))
        download_factor = 0.0 if free or neutral else 1.0
        upload_factor = 0.0 if neutral else 1.0
        flags = set(volume_factor_flags(download_factor, upload_factor))
        if record.get("scene"):
            flags.add(IndexerFlag.SCENE)

        return ReleaseInfo(
            guid=info_url,
            title=unescape(title),
            publish_date=publish_date,
            indexer=self.indexer_name,
            download_url=self._download_url(torrent_id, bool(record.get("canUseToken"))),
            info_url=info_url,
            size=int(record["size"]),
            seeders=seeders,
            peers=seeders + leechers,
            grabs=try_coerce_int(record.get("snatches")),
            files=try_coerce_int(record.get("fileCount")),
            categories=self.categories.resolve(record.get("category")),
            download_volume_factor=download_factor,
            upload_volume_factor=upload_factor,
            indexer_flags=frozenset(flags),
            protocol=self.protocol,
            codec=record.get("format") if torrent is not None else None,
            container=record.get("encoding") if torrent is not None else None,
        )

    def _download_url(self, torrent_id: Any, can_use_token: bool) -> str:
        use_token = 1 if self.settings.use_freeleech_token and can_use_token else 0
        url = URL(f"{self.settings.base_url}/ajax.php").with_query(
            [("action", "download"), ("id", str(torrent_id)), ("usetoken", str(use_token))]
        )
        return str(url)

    def _info_url(self, group_id: Any, torrent_id: Any) -> str:
        url = URL(f"{self.settings.base_url}/torrents.php").with_query(
            [("id", str(group_id)), ("torrentid", str(torrent_id))]
        )
        return str(url)


def parse_capabilities_response(response: IndexerResponse, indexer: Optional[str] = None) -> IndexerCapabilities:
    """Validate a ``t=caps`` response and build capabilities from it."""
    if not 200 <= response.status < 300:
        raise UnexpectedStatusError(response.status, indexer=indexer)
    check_xml_content_type(response, indexer)
    root = load_xml_document(response, indexer)
    raise_for_xml_error(root, response.request, indexer)
    return parse_capabilities(response.content)


def build_response_parser(
    wire_format: str,
    settings: IndexerConfig,
    categories: Optional[CategoryMapping] = None,
) -> ResponseParser:
    parsers = {
        "gazelle": GazelleParser,
        "torznab": TorznabRssParser,
        "newznab": NewznabRssParser,
    }
    parser_cls = parsers.get(wire_format)
    if parser_cls is None:
        raise ValueError(f"Unsupported wire format '{wire_format}'")
    return parser_cls(settings, categories)
