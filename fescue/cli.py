#!/usr/bin/env python3
"""
cli.py - Entry point for FESCUE - search newznab, torznab and Gazelle indexers
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import List, Optional

import aiohttp
from rich.console import Console
from rich.table import Table

from . import __version__
from . import logger
from .config import FescueConfig, load_config
from .search.criteria import (
    BasicSearchCriteria,
    BookSearchCriteria,
    MovieSearchCriteria,
    MusicSearchCriteria,
    SearchCriteria,
    TvSearchCriteria,
)
from .search.errors import IndexerError
from .search.formatters import display_releases
from .search.indexer import Indexer
from .search.parsers import sort_releases
from .search.types import ReleaseInfo
from .verification import verify_indexers

console = Console()
_CLI_SESSION_START_MONOTONIC = time.monotonic()
SEARCH_TYPES = ("search", "movie", "tvsearch", "music", "book")


def _ui_info(message: str) -> None:
    console.print(f"[cyan][INFO][/cyan] {message}")


def _ui_warn(message: str) -> None:
    console.print(f"[yellow][WARNING][/yellow] {message}")


def _ui_error(message: str) -> None:
    console.print(f"[red][ERROR][/red] {message}")


def _reset_cli_session_timer() -> None:
    global _CLI_SESSION_START_MONOTONIC
    _CLI_SESSION_START_MONOTONIC = time.monotonic()


def _format_elapsed_runtime(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3_600:
        return f"{seconds / 60:.1f}m"
    if seconds < 86_400:
        return f"{seconds / 3_600:.1f}h"
    return f"{seconds / 86_400:.1f}d"


def _ui_goodbye_with_elapsed() -> None:
    elapsed = max(0.0, time.monotonic() - _CLI_SESSION_START_MONOTONIC)
    _ui_info(f"Goodbye! Elapsed {_format_elapsed_runtime(elapsed)}")


def redact_api_key(key: str) -> str:
    """Redact API key showing first 2 and last 2 characters"""
    if not key:
        return ""
    if len(key) <= 4:
        return "****"
    return f"{key[:2]}....{key[-2:]}"


def display_config_table(config: FescueConfig):
    """Display configured indexers"""
    _ui_info(f"✓ Read configuration file \"{config.config_path}\"... ok!")
    _ui_info("To edit configuration, modify config.toml directly.")

    table = Table(title="Indexer configuration")
    table.add_column("Indexer", style="cyan")
    table.add_column("Definition")
    table.add_column("URL")
    table.add_column("API Key", style="green")
    for key, indexer in config.indexers.items():
        if indexer.api_key:
            status = f"✓ Configured = {redact_api_key(indexer.api_key)}"
        else:
            status = "✗ Not set"
        table.add_row(key.upper(), indexer.definition, indexer.base_url, status)
    if not config.indexers:
        table.add_row("None", "", "", "[yellow]⚠ No indexers configured[/yellow]")
    console.print(table)
    console.print()


def _parse_categories(values: Optional[List[str]]) -> tuple[int, ...]:
    categories: list[int] = []
    for value in values or []:
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                categories.append(int(part))
            except ValueError:
                raise ValueError(f"Invalid category '{part}': expected a numeric category id") from None
    return tuple(categories)


def build_criteria(args: argparse.Namespace) -> SearchCriteria:
    """Translate parsed arguments into the criteria variant for ``--type``."""
    common = dict(
        search_term=args.query,
        categories=_parse_categories(args.cat),
        offset=args.offset,
        limit=args.limit,
    )
    if args.type == "movie":
        return MovieSearchCriteria(imdb_id=args.imdbid, tmdb_id=args.tmdbid, **common)
    if args.type == "tvsearch":
        return TvSearchCriteria(
            imdb_id=args.imdbid,
            tvdb_id=args.tvdbid,
            tmdb_id=args.tmdbid,
            tvmaze_id=args.tvmazeid,
            rid=args.rid,
            season=args.season,
            episode=args.episode,
            **common,
        )
    if args.type == "music":
        return MusicSearchCriteria(
            artist=args.artist,
            album=args.album,
            label=args.label,
            year=args.year,
            genre=args.genre,
            track=args.track,
            **common,
        )
    if args.type == "book":
        return BookSearchCriteria(
            author=args.author,
            title=args.title,
            publisher=args.publisher,
            year=args.year,
            **common,
        )
    return BasicSearchCriteria(**common)


def select_indexers(config: FescueConfig, keys: Optional[List[str]]) -> List[str]:
    if not keys:
        return list(config.indexers)
    selected = []
    for key in keys:
        normalized = key.strip().lower()
        if normalized not in config.indexers:
            configured = ", ".join(sorted(config.indexers)) or "(none)"
            raise ValueError(f"Indexer '{key}' is not configured. Configured indexers: {configured}")
        selected.append(normalized)
    return selected


async def _search_indexer(indexer: Indexer, criteria: SearchCriteria, all_tiers: Optional[bool]) -> List[ReleaseInfo]:
    try:
        return await indexer.search(criteria, all_tiers=all_tiers)
    except IndexerError as e:
        _ui_error(f"{indexer.name.upper()}: {e.message}")
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        _ui_error(f"{indexer.name.upper()}: request failed ({type(e).__name__}: {e})")
    return []


async def run_search(
    config: FescueConfig,
    criteria: SearchCriteria,
    *,
    indexer_keys: Optional[List[str]] = None,
    all_tiers: Optional[bool] = None,
    abbrev: bool = False,
) -> List[ReleaseInfo]:
    """Search the selected indexers concurrently and print the merged releases."""
    indexers: list[Indexer] = []
    for key in select_indexers(config, indexer_keys):
        try:
            indexers.append(Indexer(config.indexers[key], search=config.search))
        except ValueError as e:
            _ui_error(str(e))

    if not indexers:
        _ui_warn("No usable indexers configured.")
        return []

    logger.get_logger().info(f"Searching {len(indexers)} indexer(s): {criteria.describe()}")
    try:
        results = await asyncio.gather(*(_search_indexer(i, criteria, all_tiers) for i in indexers))
    finally:
        for indexer in indexers:
            await indexer.close()

    releases = sort_releases(release for batch in results for release in batch)
    display_releases(releases, abbrev=abbrev)
    return releases


def _resolve_config_path(args_config: Optional[str]) -> Path:
    if args_config:
        p = Path(args_config).expanduser()
        if p.is_dir():
            p = p / "config.toml"
        return p

    cwd_candidate = Path.cwd() / "config.toml"
    if cwd_candidate.exists():
        return cwd_candidate

    repo_root = Path(__file__).resolve().parent.parent
    root_candidate = repo_root / "config.toml"
    if root_candidate.exists() and (
        (repo_root / ".git").exists() or (repo_root / "pyproject.toml").exists()
    ):
        return root_candidate
    return cwd_candidate


def _setup_logger(config: FescueConfig, args: argparse.Namespace) -> None:
    log_file = Path(args.log).expanduser() if args.log else config.logging.log_file
    logger.set_logger(logger.FescueLogger(log_file, debug=args.debug or config.logging.debug))


def _has_search_input(args: argparse.Namespace) -> bool:
    fields = (
        "query", "imdbid", "tmdbid", "tvdbid", "tvmazeid", "rid", "season", "episode",
        "artist", "album", "label", "year", "genre", "track", "author", "title", "publisher", "cat",
    )
    return args.type != "search" or any(getattr(args, name) is not None for name in fields)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fescue", add_help=False)
    for args, kwargs in (
        (("-h", "--help"), {"action": "store_true", "help": "Show help"}),
        (("--verify",), {"action": "store_true", "help": "Run a basic search on every indexer and exit"}),
        (("-c", "--config"), {"metavar": "PATH", "help": "Path to config.toml (file or directory)"}),
        (("-i", "--indexer"), {"action": "append", "metavar": "KEY", "help": "Indexer key to search (repeatable, default: all)"}),
        (("-t", "--type"), {"choices": SEARCH_TYPES, "default": "search", "help": "Search type (default: search)"}),
        (("-q", "--query"), {"metavar": "TERM", "help": "Free-text search term"}),
        (("--imdbid",), {"metavar": "ID", "help": "IMDB id (tt0076759 or 0076759)"}),
        (("--tmdbid",), {"type": int, "metavar": "ID", "help": "TMDB id"}),
        (("--tvdbid",), {"type": int, "metavar": "ID", "help": "TVDB id"}),
        (("--tvmazeid",), {"type": int, "metavar": "ID", "help": "TVMaze id"}),
        (("--rid",), {"type": int, "metavar": "ID", "help": "TVRage id"}),
        (("--season",), {"type": int, "help": "Season number"}),
        (("--episode",), {"type": int, "help": "Episode number"}),
        (("--artist",), {"help": "Artist name"}),
        (("--album",), {"help": "Album title"}),
        (("--label",), {"help": "Record label"}),
        (("--year",), {"type": int, "help": "Release year"}),
        (("--genre",), {"help": "Genre"}),
        (("--track",), {"help": "Track title"}),
        (("--author",), {"help": "Book author"}),
        (("--title",), {"help": "Book title"}),
        (("--publisher",), {"help": "Book publisher"}),
        (("--cat",), {"action": "append", "metavar": "IDS", "help": "Standard category ids, comma-separated (repeatable)"}),
        (("--offset",), {"type": int, "default": 0, "help": "Result offset of the first page"}),
        (("--limit",), {"type": int, "help": "Page size requested from the indexer"}),
        (("--all-tiers",), {"action": "store_true", "default": None, "help": "Consume every fallback tier"}),
        (("-a", "--abbrev"), {"action": "store_true", "help": "One line per release instead of a table"}),
        (("-d", "--debug"), {"action": "store_true", "help": "Debug mode with API calls, responses, timestamps"}),
        (("--log",), {"metavar": "FILE", "help": "Also write output to this log file"}),
    ):
        parser.add_argument(*args, **kwargs)
    return parser


def show_help(parser: argparse.ArgumentParser) -> None:
    print(f"FESCUE v{__version__} - Search indexers and normalize their releases")
    print()
    parser.print_help()


def main(argv: Optional[List[str]] = None):
    """Entry point"""
    _reset_cli_session_timer()
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
        if args.help:
            show_help(parser)
            sys.exit(0)

        config = load_config(_resolve_config_path(args.config))
        _setup_logger(config, args)

        if args.verify:
            _ui_info("Verifying indexers...")
            result = asyncio.run(verify_indexers(config))
            sys.exit(0 if result else 1)

        if not _has_search_input(args):
            display_config_table(config)
            show_help(parser)
            sys.exit(0)

        criteria = build_criteria(args)
        asyncio.run(
            run_search(
                config,
                criteria,
                indexer_keys=args.indexer,
                all_tiers=args.all_tiers,
                abbrev=args.abbrev,
            )
        )
        sys.exit(0)
    except KeyboardInterrupt:
        _ui_goodbye_with_elapsed()
        sys.exit(0)
    except ValueError as e:
        _ui_error(str(e))
        sys.exit(2)
    except Exception as e:
        _ui_error(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        logger.get_logger().close()


if __name__ == "__main__":
    main()
