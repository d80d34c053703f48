"""Main CLI entry point for tiercache.

Inspects and clears the file-backed persistent tier of a cache session.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click
import orjson
from rich.console import Console
from rich.table import Table

from tiercache.config import CacheConfig
from tiercache.staleness import is_older_than_threshold, plan_refresh
from tiercache.stores import JSONFileKeyValueStore, StoreError
from tiercache.tiered import DEFAULT_STORAGE_PREFIX, TieredDocumentCache

# Global console for Rich output
console = Console()


def find_store_path(ctx_store: Optional[str] = None) -> Path:
    """Find the session store file.

    Priority:
    1. Explicit --store/-s flag
    2. TIERCACHE_STORE_PATH environment variable

    Raises:
        click.ClickException: If no store path is given
    """
    if ctx_store:
        return Path(ctx_store)

    env_store = os.environ.get("TIERCACHE_STORE_PATH")
    if env_store:
        return Path(env_store).expanduser()

    raise click.ClickException(
        "No store given (use --store or set TIERCACHE_STORE_PATH)"
    )


def open_cache(ctx) -> TieredDocumentCache:
    store = JSONFileKeyValueStore(find_store_path(ctx.obj.get("store")))
    return TieredDocumentCache(store, prefix=ctx.obj["prefix"])


@click.group()
@click.option(
    "--store",
    "-s",
    type=click.Path(dir_okay=False),
    help="Session store file (default: TIERCACHE_STORE_PATH env var)",
)
@click.option(
    "--prefix",
    default=DEFAULT_STORAGE_PREFIX,
    show_default=True,
    help="Key namespace of cached documents",
)
@click.pass_context
def cli(ctx, store, prefix):
    """tiercache CLI - Inspect the persistent tier of a document cache."""
    ctx.ensure_object(dict)
    ctx.obj["store"] = store
    ctx.obj["prefix"] = prefix


@cli.command("list")
@click.pass_context
def list_documents(ctx):
    """List cached document ids.

    Example:
        tiercache -s session.json list
    """
    try:
        cache = open_cache(ctx)
        ids = sorted(cache.persisted_ids())

        if not ids:
            console.print("[yellow]No cached documents[/yellow]")
            return

        table = Table(title=f"Cached documents ({len(ids)})")
        table.add_column("Id", style="cyan", no_wrap=True)
        table.add_column("Size", justify="right", style="green")

        for doc_id in ids:
            raw = cache.store.get_item(cache.storage_key(doc_id)) or ""
            table.add_row(doc_id, f"{len(raw.encode('utf-8'))} B")

        console.print(table)

    except StoreError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("show")
@click.argument("doc_id")
@click.pass_context
def show(ctx, doc_id):
    """Print a cached document as JSON.

    Example:
        tiercache -s session.json show m1
    """
    cache = open_cache(ctx)
    document = cache.get(doc_id)
    if document is None:
        raise click.ClickException(f"Document '{doc_id}' is not cached")
    console.print_json(orjson.dumps(document).decode("utf-8"))


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def clear(ctx, yes):
    """Remove every cached document from the store.

    Example:
        tiercache -s session.json clear -y
    """
    cache = open_cache(ctx)
    count = len(cache.persisted_keys())
    if count == 0:
        console.print("[yellow]Nothing to clear[/yellow]")
        return

    if not yes and not click.confirm(f"Remove {count} cached documents?"):
        console.print("[yellow]Cancelled[/yellow]")
        return

    cache.clear(persistent=True)
    console.print(f"[green]✓[/green] Removed {count} cached documents")


@cli.command("plan")
@click.argument("docs_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--stale-days",
    type=float,
    help="Age in days after which a document is archived "
    "(default: TIERCACHE_STALE_DAYS env var or 7)",
)
@click.pass_context
def plan(ctx, docs_file, stale_days):
    """Show which documents a refresh would fetch.

    DOCS_FILE is a JSON array of objects with "id" and "date" fields.

    Example:
        tiercache -s session.json plan matches.json --stale-days 14
    """
    try:
        with open(docs_file, "rb") as f:
            docs = orjson.loads(f.read())
    except orjson.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {docs_file}: {e}") from e

    if not isinstance(docs, list):
        raise click.ClickException("DOCS_FILE must contain a JSON array")

    if stale_days is None:
        stale_days = CacheConfig.from_env().stale_threshold_days

    cache = open_cache(ctx)
    cached_ids = set(cache.persisted_ids())
    result = plan_refresh(
        [d for d in docs if isinstance(d, dict)], lambda doc_id: doc_id in cached_ids
    )

    table = Table(title="Refresh plan")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Date", style="blue")
    table.add_column("Action", style="magenta")
    table.add_column("Age", style="green")

    archived = 0
    for action, group in (
        ("refresh", result.refresh),
        ("fetch once", result.fetch_once),
        ("from cache", result.from_cache),
    ):
        for doc in group:
            old = is_older_than_threshold(doc.get("date"), stale_days)
            if old:
                archived += 1
            table.add_row(
                str(doc.get("id")),
                str(doc.get("date")),
                action,
                "archived" if old else "recent",
            )

    console.print(table)
    console.print(
        f"Network reads: {len(result.refresh) + len(result.fetch_once)}, "
        f"served from cache: {len(result.from_cache)}"
    )
    console.print(f"Older than {stale_days:g} days: {archived}")


if __name__ == "__main__":
    cli()
