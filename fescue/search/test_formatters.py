from __future__ import annotations

import io
from datetime import datetime, timezone

from rich.console import Console

from fescue.search import formatters
from fescue.search.categories import StandardCategory
from fescue.search.types import IndexerFlag, ReleaseInfo


def _release(**overrides) -> ReleaseInfo:
    values = dict(
        guid="g1",
        title="Artist - Album [FLAC]",
        publish_date=datetime(2021, 3, 4, 5, 6, tzinfo=timezone.utc),
        indexer="red",
        size=734_003_200,
        seeders=12,
        peers=15,
        categories=(StandardCategory.get(3040),),
        indexer_flags=frozenset({IndexerFlag.FREELEECH}),
    )
    values.update(overrides)
    return ReleaseInfo(**values)


def _render(table) -> str:
    buffer = io.StringIO()
    Console(file=buffer, width=200, color_system=None).print(table)
    return buffer.getvalue()


def test_format_size_uses_binary_units() -> None:
    assert formatters.format_size(None) == "unknown"
    assert formatters.format_size(512) == "512 B"
    assert formatters.format_size(1536) == "1.50 KB"
    assert formatters.format_size(734_003_200) == "700.00 MB"


def test_format_peers_is_dash_for_usenet() -> None:
    assert formatters.format_peers(_release()) == "12/15"
    assert formatters.format_peers(_release(seeders=None)) == "?/15"
    assert formatters.format_peers(_release(protocol="usenet")) == "-"


def test_format_release_line_includes_flags() -> None:
    line = formatters.format_release_line(1, 2, _release())

    assert line == "[1 of 2] RED; Artist - Album [FLAC]; 700.00 MB; 2021-03-04 [FL]"


def test_release_table_renders_rows_and_escapes_titles() -> None:
    output = _render(formatters.build_release_table([_release()]))

    assert "Artist - Album [FLAC]" in output
    assert "Audio/Lossless" in output
    assert "2021-03-04 05:06" in output


def test_release_table_marks_empty_results() -> None:
    assert "No releases found" in _render(formatters.build_release_table([]))
