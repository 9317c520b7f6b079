"""
verification.py - Indexer connectivity and credential verification for fescue
"""

import asyncio

import aiohttp
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import FescueConfig
from .search.criteria import BasicSearchCriteria
from .search.errors import IndexerError, RateLimitedError, UnexpectedStatusError
from .search.indexer import Indexer

console = Console()


def _invalid_key_msg(detail: str) -> str:
    """Generate standardized invalid API key message"""
    return f"Invalid API key - {detail}"


async def verify_indexer(indexer: Indexer):
    """Run one unfiltered search page against an indexer and summarize the outcome"""
    name = indexer.name.upper()
    try:
        capabilities = await indexer.fetch_capabilities()
        chain = indexer.get_search_requests(BasicSearchCriteria())
        if chain.is_empty():
            return name, False, "Indexer does not support basic search"
        request = next(iter(chain.get_tier(0)[0]))
        response = await indexer.client.execute(request)
        releases = indexer.parse_response(response)
    except RateLimitedError:
        raise
    except UnexpectedStatusError as e:
        if e.status in (401, 403):
            return name, False, _invalid_key_msg(f"{e.status} from API request")
        return name, False, e.message
    except IndexerError as e:
        return name, False, e.message

    categories = len(capabilities.categories)
    return name, True, f"{len(releases)} releases on first page, {categories} categories"


async def verify_with_retry(verify_func, service_name, *args, max_retries=2):
    """Wrapper to add retry logic with exponential backoff"""
    for attempt in range(max_retries + 1):
        try:
            return await verify_func(*args)
        except (aiohttp.ClientError, asyncio.TimeoutError, RateLimitedError):
            if attempt == max_retries:
                return service_name, False, f"Connection failed after {max_retries + 1} attempts"

            delay = 1 * (2 ** attempt)
            console.print(f"[yellow]Retrying {service_name} in {delay}s...[/yellow]")
            await asyncio.sleep(delay)
        except Exception as e:
            return service_name, False, f"Unexpected error: {type(e).__name__}: {e}"


def _build_indexers(config: FescueConfig):
    indexers = []
    failures = []
    for key, settings in config.indexers.items():
        try:
            indexers.append(Indexer(settings, search=config.search))
        except ValueError as e:
            failures.append((key.upper(), False, str(e)))
    return indexers, failures


async def verify_indexers(config: FescueConfig):
    """Verify all configured indexers"""
    console.print("[cyan][INFO][/cyan] Verifying indexers...")

    indexers, results = _build_indexers(config)
    try:
        results.extend(
            await asyncio.gather(
                *(verify_with_retry(verify_indexer, indexer.name.upper(), indexer) for indexer in indexers)
            )
        )
    finally:
        for indexer in indexers:
            await indexer.close()

    table = Table(title="Indexer Verification Results")
    table.add_column("Indexer", style="cyan", no_wrap=True)
    table.add_column("Status", style="bold", no_wrap=True)
    table.add_column("Details", style="yellow")

    for service, status, details in results:
        status_str = "[green]✓ Valid[/green]" if status else "[red]✗ Invalid[/red]"
        if details:
            details = escape(str(details).strip()[:100])
        table.add_row(service, status_str, details or "")

    if not results:
        table.add_row("No Indexers", "[yellow]⚠ Warning[/yellow]", "No indexers configured")

    console.print(table)

    if results:
        return all(status for _, status, _ in results)
    return False
