from __future__ import annotations

from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from fescue import logger
from fescue.search.types import IndexerFlag, ReleaseInfo

console = Console()

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_FLAG_LABELS = {
    IndexerFlag.FREELEECH: "FL",
    IndexerFlag.HALF_LEECH: "50%",
    IndexerFlag.DOUBLE_UPLOAD: "2xUL",
    IndexerFlag.SCENE: "Scene",
}


def emit(message: str, indent: int = 0) -> None:
    """Emit message to screen and log file via logger."""
    padding = " " * max(indent, 0)
    plain = Text.from_markup(message).plain
    logger.log(f"{padding}{plain}")


def format_size(size: int | None) -> str:
    if size is None:
        return "unknown"
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{size:,} B"
    return f"{value:.2f} {unit}"


def format_flags(release: ReleaseInfo) -> str:
    labels = [label for flag, label in _FLAG_LABELS.items() if flag in release.indexer_flags]
    return " ".join(labels)


def format_categories(release: ReleaseInfo) -> str:
    return ", ".join(category.name for category in release.categories)


def format_peers(release: ReleaseInfo) -> str:
    if release.protocol != "torrent":
        return "-"
    seeders = "?" if release.seeders is None else str(release.seeders)
    peers = "?" if release.peers is None else str(release.peers)
    return f"{seeders}/{peers}"


def format_release_line(idx: int, total: int, release: ReleaseInfo) -> str:
    """One plain line per release, used for log files and --abbrev output."""
    flags = format_flags(release)
    suffix = f" [{flags}]" if flags else ""
    return (
        f"[{idx} of {total}] {release.indexer.upper()}; {release.title}; "
        f"{format_size(release.size)}; {release.publish_date:%Y-%m-%d}{suffix}"
    )


def build_release_table(releases: Sequence[ReleaseInfo], title: str = "Search Results") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim", no_wrap=True)
    table.add_column("Indexer", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Size", justify="right", no_wrap=True)
    table.add_column("S/P", justify="right", no_wrap=True)
    table.add_column("Published", no_wrap=True)
    table.add_column("Categories", style="yellow")
    table.add_column("Flags", style="green", no_wrap=True)

    for idx, release in enumerate(releases, start=1):
        table.add_row(
            str(idx),
            release.indexer.upper(),
            escape(release.title),
            format_size(release.size),
            format_peers(release),
            f"{release.publish_date:%Y-%m-%d %H:%M}",
            escape(format_categories(release)),
            format_flags(release),
        )

    if not releases:
        table.add_row("", "", "[yellow]No releases found[/yellow]", "", "", "", "", "")
    return table


def display_releases(releases: Sequence[ReleaseInfo], *, abbrev: bool = False) -> None:
    """Print releases to screen; every line also goes to the log file."""
    total = len(releases)
    for idx, release in enumerate(releases, start=1):
        line = format_release_line(idx, total, release)
        if abbrev:
            emit(escape(line))
        else:
            logger.get_logger().debug(line)
    if not abbrev:
        console.print(build_release_table(releases))
