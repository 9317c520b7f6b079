"""Number, size and date coercion for loosely formatted indexer fields."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import numpy as np

_NUMERIC_NOISE = re.compile(r"[^0-9.,]")
_SIZE_PATTERN = re.compile(r"(?P<value>\d[\d.,\s]*)\s*(?P<unit>[KMGT]i?B|B)?", re.IGNORECASE)
_IMDB_PATTERN = re.compile(r"^(?:tt)?(\d{1,8})$", re.IGNORECASE)

_UNIT_MULTIPLIERS = {
    "B": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
}


def _split_decimal(value: str) -> tuple[str, str, bool]:
    """
    Return (integer digits, fraction digits, mixed separators).

    With both ``.`` and ``,`` present the last separator is the decimal point
    unless exactly three digits follow it. With a single separator kind the
    last one is decimal only when fewer than three digits follow; otherwise
    every separator groups thousands.
    """
    cleaned = _NUMERIC_NOISE.sub("", value or "")
    if not any(ch.isdigit() for ch in cleaned):
        raise ValueError(f"No digits in numeric value '{value}'")

    mixed = "." in cleaned and "," in cleaned
    last = max(cleaned.rfind("."), cleaned.rfind(","))
    if last < 0:
        return cleaned, "", False

    trailing = cleaned[last + 1:]
    if mixed:
        decimal = len(trailing) != 3
    else:
        decimal = len(trailing) < 3

    if not decimal:
        return _digits(cleaned), "", mixed
    return _digits(cleaned[:last]) or "0", _digits(trailing), mixed


def _digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


def coerce_float(value: str | float | int) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    whole, fraction, _ = _split_decimal(value)
    return float(f"{whole}.{fraction}" if fraction else whole)


def coerce_int(value: str | float | int) -> int:
    """
    Parse an integer from text such as ``"1000 grabs"`` or ``"2,222"``.

    A single separator kind is always treated as grouping (``"2,22"`` gives
    222); mixed separators are resolved as a decimal and truncated.
    """
    if isinstance(value, (int, float)):
        return int(value)
    whole, fraction, mixed = _split_decimal(value)
    if mixed:
        return int(whole)
    return int(whole + fraction)


def try_coerce_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return coerce_int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def try_coerce_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return coerce_float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def get_bytes_from_unit(unit: str, value: float) -> int:
    """Scale a single-precision value by the 1024-based multiplier of ``unit``."""
    key = (unit or "B").strip().upper()[:1]
    multiplier = _UNIT_MULTIPLIERS.get(key)
    if multiplier is None:
        raise ValueError(f"Unknown size unit '{unit}'")
    return int(float(np.float32(value)) * multiplier)


def get_bytes(value: str) -> int:
    """Convert strings like ``"1,023.4 MB"`` or ``"700 KiB"`` to a byte count."""
    match = _SIZE_PATTERN.search(value or "")
    if match is None:
        raise ValueError(f"Unrecognized size '{value}'")
    number = coerce_float(match.group("value"))
    return get_bytes_from_unit(match.group("unit") or "B", number)


def normalize_imdb_id(value: object) -> Optional[str]:
    """Return the bare, zero-padded (7+ digits) IMDB id or None when unknown."""
    if value is None:
        return None
    match = _IMDB_PATTERN.match(str(value).strip())
    if not match or int(match.group(1)) == 0:
        return None
    return match.group(1).zfill(7)


def parse_imdb_id(value: object) -> Optional[int]:
    normalized = normalize_imdb_id(value)
    return int(normalized) if normalized is not None else None


def parse_publish_date(value: str | int | float) -> datetime:
    """
    Parse an RFC-822 feed date, an ISO-8601 date or UNIX epoch seconds.

    Naive values are taken as UTC; the result is always timezone-aware UTC.
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = (value or "").strip()
    if not text:
        raise ValueError("Empty publish date")
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)

    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"Unrecognized publish date '{value}'") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
