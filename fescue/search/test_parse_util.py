from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fescue.search import parse_util


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1023.4 KB", 1047961),
        ("1023.4 MB", 1073112704),
        ("1,023.4 MB", 1073112704),
        ("1.023,4 MB", 1073112704),
        ("1 023,4 MB", 1073112704),
        ("1.023.4 MB", 1073112704),
        ("1023.4 GB", 1098867408896),
        ("1023.4 TB", 1125240226709504),
        ("700 KiB", 716800),
        ("512", 512),
    ],
)
def test_get_bytes_uses_1024_multipliers(value: str, expected: int) -> None:
    assert parse_util.get_bytes(value) == expected


def test_get_bytes_rejects_text_without_digits() -> None:
    with pytest.raises(ValueError):
        parse_util.get_bytes("unknown")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1000 grabs", 1000),
        ("2.222", 2222),
        ("2,222", 2222),
        ("2 222", 2222),
        ("2,22", 222),
        ("2.222,22", 2222),
    ],
)
def test_coerce_int(value: str, expected: int) -> None:
    assert parse_util.coerce_int(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2.222,22", 2222.22),
        ("2,222.22", 2222.22),
        ("2 222", 2222.0),
        ("2,22", 2.22),
        ("0.5", 0.5),
    ],
)
def test_coerce_float(value: str, expected: float) -> None:
    assert parse_util.coerce_float(value) == pytest.approx(expected)


def test_try_coerce_returns_none_for_missing_or_garbage() -> None:
    assert parse_util.try_coerce_int(None) is None
    assert parse_util.try_coerce_int("n/a") is None
    assert parse_util.try_coerce_float("") is None
    assert parse_util.try_coerce_int("12 seeders") == 12


@pytest.mark.parametrize(
    ("value", "expected"),
    [("tt0133093", 133093), ("133093", 133093), ("tt0000000", None), ("abc", None), (None, None)],
)
def test_parse_imdb_id(value, expected) -> None:
    assert parse_util.parse_imdb_id(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("tt0133093", "0133093"), ("TT76759", "0076759"), (76759, "0076759"), ("12345678", "12345678"), ("0", None), ("tt", None)],
)
def test_normalize_imdb_id_zero_pads_to_seven_digits(value, expected) -> None:
    assert parse_util.normalize_imdb_id(value) == expected


def test_parse_publish_date_formats_are_utc() -> None:
    expected = datetime(2021, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    assert parse_util.parse_publish_date("Thu, 04 Mar 2021 05:06:07 +0000") == expected
    assert parse_util.parse_publish_date("Thu, 04 Mar 2021 07:06:07 +0200") == expected
    assert parse_util.parse_publish_date("2021-03-04T05:06:07Z") == expected
    assert parse_util.parse_publish_date("2021-03-04 05:06:07") == expected
    assert parse_util.parse_publish_date(str(int(expected.timestamp()))) == expected
    assert parse_util.parse_publish_date(int(expected.timestamp())) == expected


def test_parse_publish_date_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_util.parse_publish_date("yesterday-ish")
