"""Tiered, lazily paged request chains."""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterator, List, Optional

from fescue.search.capabilities import HARD_MAX_PAGES
from fescue.search.types import IndexerRequest

PageBuilder = Callable[[int], Optional[IndexerRequest]]


class PageSequence(Iterator[IndexerRequest]):
    """
    Finite, single-pass iterator yielding one request per page.

    ``build_page`` receives the zero-based page index and may return None to
    end the sequence early (e.g. past the indexer's maximum offset). The
    sequence never yields more than ``max_pages`` requests, and never more
    than ``HARD_MAX_PAGES`` whatever the caller asks for.
    """

    def __init__(self, build_page: PageBuilder, max_pages: int, page_size: int) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self._build_page = build_page
        self.max_pages = min(max_pages, HARD_MAX_PAGES)
        self.page_size = page_size
        self.tier = 0
        self._next_page = 0

    def __iter__(self) -> "PageSequence":
        return self

    def __next__(self) -> IndexerRequest:
        if self._next_page >= self.max_pages:
            raise StopIteration
        page = self._next_page
        request = self._build_page(page)
        if request is None:
            self._next_page = self.max_pages
            raise StopIteration
        self._next_page += 1
        return replace(request, tier=self.tier, page=page)

    @property
    def exhausted(self) -> bool:
        return self._next_page >= self.max_pages

    def close(self) -> None:
        """Stop the sequence; later ``next`` calls raise StopIteration."""
        self._next_page = self.max_pages


class RequestChain:
    """Ordered tiers of independent page sequences; tier 0 is the most selective."""

    def __init__(self) -> None:
        self._tiers: List[List[PageSequence]] = [[]]

    def add(self, sequence: Optional[PageSequence]) -> None:
        if sequence is None:
            return
        sequence.tier = len(self._tiers) - 1
        self._tiers[-1].append(sequence)

    def add_tier(self, sequence: Optional[PageSequence] = None) -> None:
        """Open a new fallback tier; a no-op while the current tier is empty."""
        if self._tiers[-1]:
            self._tiers.append([])
        self.add(sequence)

    @property
    def tiers(self) -> int:
        return sum(1 for tier in self._tiers if tier)

    def get_tier(self, index: int) -> List[PageSequence]:
        populated = self.get_all_tiers()
        if index < 0 or index >= len(populated):
            return []
        return populated[index]

    def get_all_tiers(self) -> List[List[PageSequence]]:
        return [list(tier) for tier in self._tiers if tier]

    def is_empty(self) -> bool:
        return self.tiers == 0

    def __len__(self) -> int:
        return self.tiers

    def __bool__(self) -> bool:
        return not self.is_empty()
