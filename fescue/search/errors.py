"""Indexer error taxonomy shared by parsers, the transport and the coordinator."""

from __future__ import annotations

from typing import Optional


class IndexerError(Exception):
    """Base class for failures reported by, or about, an indexer response."""

    def __init__(self, message: str, *, indexer: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.indexer = indexer


class AuthenticationError(IndexerError):
    """Credentials are missing or rejected; fatal until the user fixes them."""


class RateLimitedError(IndexerError):
    """The indexer asked us to slow down; retry after backing off."""

    def __init__(self, message: str, *, retry_after: Optional[float] = None, indexer: Optional[str] = None) -> None:
        super().__init__(message, indexer=indexer)
        self.retry_after = retry_after


class UnexpectedStatusError(IndexerError):
    def __init__(self, status: int, *, indexer: Optional[str] = None) -> None:
        super().__init__(f"Unexpected response status {status} code from API request", indexer=indexer)
        self.status = status


class UnexpectedContentTypeError(IndexerError):
    def __init__(self, content_type: str, expected: str, *, indexer: Optional[str] = None) -> None:
        super().__init__(
            f"Unexpected response header {content_type or '(none)'} from API request, expected {expected}",
            indexer=indexer,
        )
        self.content_type = content_type
        self.expected = expected


class ProtocolError(IndexerError):
    """Tracker-declared error not otherwise classified; message kept verbatim."""


class MalformedItemError(IndexerError):
    """A single result record could not be parsed; the record is skipped."""
