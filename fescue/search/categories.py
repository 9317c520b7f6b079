"""Standard (Newznab) category taxonomy and per-tracker category mapping."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html import unescape
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

# Native category values that mean "nothing selected" on the tracker side.
PLACEHOLDER_CATEGORIES = ("select category",)


@dataclass(frozen=True)
class IndexerCategory:
    id: int
    name: str
    subcategories: tuple["IndexerCategory", ...] = field(default=(), compare=False, repr=False)


def _category(category_id: int, name: str, *subcategories: tuple[int, str]) -> IndexerCategory:
    subs = tuple(IndexerCategory(sub_id, f"{name}/{sub_name}") for sub_id, sub_name in subcategories)
    return IndexerCategory(category_id, name, subs)


class StandardCategory:
    """The Newznab standard category tree shared by every indexer definition."""

    CONSOLE = _category(
        1000, "Console",
        (1010, "NDS"), (1020, "PSP"), (1030, "Wii"), (1040, "XBox"), (1050, "XBox 360"),
        (1060, "Wiiware"), (1070, "XBox 360 DLC"), (1080, "PS3"), (1090, "Other"),
        (1110, "3DS"), (1120, "PS Vita"), (1130, "WiiU"), (1140, "XBox One"), (1180, "PS4"),
    )
    MOVIES = _category(
        2000, "Movies",
        (2010, "Foreign"), (2020, "Other"), (2030, "SD"), (2040, "HD"), (2045, "UHD"),
        (2050, "BluRay"), (2060, "3D"), (2070, "DVD"), (2080, "WEB-DL"), (2090, "x265"),
    )
    AUDIO = _category(
        3000, "Audio",
        (3010, "MP3"), (3020, "Video"), (3030, "Audiobook"), (3040, "Lossless"),
        (3050, "Other"), (3060, "Foreign"),
    )
    PC = _category(
        4000, "PC",
        (4010, "0day"), (4020, "ISO"), (4030, "Mac"), (4040, "Mobile-Other"), (4050, "Games"),
        (4060, "Mobile-iOS"), (4070, "Mobile-Android"),
    )
    TV = _category(
        5000, "TV",
        (5010, "WEB-DL"), (5020, "Foreign"), (5030, "SD"), (5040, "HD"), (5045, "UHD"),
        (5050, "Other"), (5060, "Sport"), (5070, "Anime"), (5080, "Documentary"), (5090, "x265"),
    )
    XXX = _category(
        6000, "XXX",
        (6010, "DVD"), (6020, "WMV"), (6030, "XviD"), (6040, "x264"), (6045, "UHD"),
        (6050, "Pack"), (6060, "ImageSet"), (6070, "Other"), (6080, "SD"), (6090, "WEB-DL"),
    )
    BOOKS = _category(
        7000, "Books",
        (7010, "Mags"), (7020, "EBook"), (7030, "Comics"), (7040, "Technical"),
        (7050, "Other"), (7060, "Foreign"),
    )
    OTHER = _category(8000, "Other", (8010, "Misc"), (8020, "Hashed"))

    ROOTS: tuple[IndexerCategory, ...] = (CONSOLE, MOVIES, AUDIO, PC, TV, XXX, BOOKS, OTHER)

    _BY_ID: Mapping[int, IndexerCategory] = MappingProxyType(
        {cat.id: cat for root in ROOTS for cat in (root, *root.subcategories)}
    )

    @classmethod
    def find(cls, category_id: int) -> IndexerCategory | None:
        return cls._BY_ID.get(category_id)

    @classmethod
    def get(cls, category_id: int) -> IndexerCategory:
        category = cls.find(category_id)
        if category is None:
            raise KeyError(f"Unknown standard category {category_id}")
        return category


def normalize_description(value: str) -> str:
    return re.sub(r"\s+", " ", unescape(value)).strip().lower()


@dataclass(frozen=True)
class CategoryMappingEntry:
    """One row of a tracker's category table."""

    tracker_id: str
    category: IndexerCategory
    description: str | None = None


class CategoryMapping:
    """
    Immutable, bidirectional tracker <-> standard category table.

    Lookups are dictionary hits prepared once in the constructor; the mapping is
    safe to share between concurrently running parsers.
    """

    def __init__(
        self,
        entries: Iterable[CategoryMappingEntry] = (),
        default_tracker_id: str | None = None,
    ) -> None:
        rows = tuple(entries)
        by_tracker_id: dict[str, list[IndexerCategory]] = {}
        by_description: dict[str, list[IndexerCategory]] = {}
        by_standard_id: dict[int, list[str]] = {}
        for row in rows:
            _append_unique(by_tracker_id.setdefault(row.tracker_id, []), row.category)
            if row.description:
                _append_unique(by_description.setdefault(normalize_description(row.description), []), row.category)
            _append_unique(by_standard_id.setdefault(row.category.id, []), row.tracker_id)

        self._entries = rows
        self._by_tracker_id = MappingProxyType({k: tuple(v) for k, v in by_tracker_id.items()})
        self._by_description = MappingProxyType({k: tuple(v) for k, v in by_description.items()})
        self._by_standard_id = MappingProxyType({k: tuple(v) for k, v in by_standard_id.items()})
        self.default_tracker_id = default_tracker_id

    @classmethod
    def from_table(
        cls,
        table: Sequence[tuple[int | str, IndexerCategory, str | None]],
        default_tracker_id: int | str | None = None,
    ) -> "CategoryMapping":
        """Build a mapping from ``(tracker_id, standard_category, description)`` rows."""
        entries = [CategoryMappingEntry(str(tracker_id), category, description) for tracker_id, category, description in table]
        default = str(default_tracker_id) if default_tracker_id is not None else None
        return cls(entries, default)

    @property
    def entries(self) -> tuple[CategoryMappingEntry, ...]:
        return self._entries

    @property
    def categories(self) -> tuple[IndexerCategory, ...]:
        seen: dict[int, IndexerCategory] = {}
        for entry in self._entries:
            seen.setdefault(entry.category.id, entry.category)
        return tuple(seen.values())

    def __len__(self) -> int:
        return len(self._entries)

    def map_tracker_id(self, tracker_id: int | str) -> tuple[IndexerCategory, ...]:
        """Exact lookup by native id; ids that are standard ids resolve to themselves."""
        key = str(tracker_id).strip()
        mapped = self._by_tracker_id.get(key)
        if mapped:
            return mapped
        if key.isdigit():
            standard = StandardCategory.find(int(key))
            if standard is not None:
                return (standard,)
        return ()

    def map_tracker_description(self, description: str) -> tuple[IndexerCategory, ...]:
        return self._by_description.get(normalize_description(description), ())

    def map_default(self) -> tuple[IndexerCategory, ...]:
        if self.default_tracker_id is None:
            return ()
        return self._by_tracker_id.get(self.default_tracker_id, ())

    def resolve(self, native: int | str | None) -> tuple[IndexerCategory, ...]:
        """Resolve a native category id or description, falling back to the default."""
        if native is None:
            return self.map_default()
        if isinstance(native, int):
            return self.map_tracker_id(native) or self.map_default()
        text = native.strip()
        if not text or is_placeholder_category(text):
            return self.map_default()
        if text.isdigit():
            return self.map_tracker_id(text) or self.map_default()
        return self.map_tracker_description(text) or self.map_default()

    def map_standard_to_tracker(self, standard_ids: Iterable[int]) -> list[str]:
        """Tracker ids for the requested standard ids, sub-categories included."""
        result: list[str] = []
        for standard_id in standard_ids:
            wanted = {standard_id}
            root = StandardCategory.find(standard_id)
            if root is not None and standard_id % 1000 == 0:
                wanted.update(sub.id for sub in root.subcategories)
            for candidate in sorted(wanted):
                for tracker_id in self._by_standard_id.get(candidate, ()):
                    if tracker_id not in result:
                        result.append(tracker_id)
        return result


def is_placeholder_category(value: str) -> bool:
    lowered = value.lower()
    return any(placeholder in lowered for placeholder in PLACEHOLDER_CATEGORIES)


def _append_unique(values: list, value) -> None:
    if value not in values:
        values.append(value)
