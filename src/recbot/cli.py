"""CLI entry point for recbot."""

import asyncio
import json
import logging
from datetime import date

import click
from rich.console import Console
from rich.table import Table

from recbot.config import load_settings
from recbot.errors import RecbotError
from recbot.parser.filename import parse_file_metadata
from recbot.search.filters import DURATION_MODES, SORT_COLUMNS, TIME_MODES, RecordingFilters
from recbot.search.query import query_files
from recbot.services import Services
from recbot.storage.database import Database
from recbot.storage.repository import Repository
from recbot.sync.engine import run_sync

console = Console(force_terminal=True)


def _fail(ctx, message):
    console.print(f"[red]Error:[/red] {message}")
    ctx.exit(1)


def _print_sync_result(result, repo: Repository):
    console.print()
    console.print(
        f"[green]Done![/green] Indexed [bold]{result.indexed_count}[/bold] files "
        f"in {result.duration_seconds:.2f}s."
    )
    if result.pruned_count:
        console.print(f"Pruned [bold]{result.pruned_count}[/bold] stale rows.")
    for error in result.errors:
        console.print(f"[yellow]Skipped[/yellow] {error}")
    console.print(f"Total files in index: [bold]{repo.get_total_count()}[/bold]")


@click.group()
@click.option("--db", default=None, type=click.Path(), help="Database path (overrides RECBOT_DB_PATH)")
@click.option(
    "--storage",
    type=click.Choice(["s3", "local"]),
    default=None,
    help="Object store backend (overrides STORAGE_TYPE)",
)
@click.option("--bucket", default=None, help="S3 bucket (overrides AWS_BUCKET)")
@click.option("--store-root", default=None, type=click.Path(), help="Root directory for local storage")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db, storage, bucket, store_root, verbose):
    """recbot - Index, search and play call recordings."""
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings(
        db_path=db, storage_type=storage, bucket=bucket, local_store_root=store_root
    )
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind")
@click.option("--port", default=3001, help="Port to bind")
@click.option("--no-auto-sync", is_flag=True, help="Disable the periodic current-day sync")
@click.pass_context
def serve(ctx, host, port, no_auto_sync):
    """Start the HTTP API server."""
    import uvicorn

    from recbot.web.app import create_app

    settings = ctx.obj["settings"]
    if no_auto_sync:
        settings.sync_interval = 0
    try:
        app = create_app(Services(settings))
    except (ValueError, RecbotError) as e:
        _fail(ctx, e)
        return
    console.print(f"Starting server at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


@cli.command()
@click.option("--start", help="First day to sync (M_D_YYYY or YYYY-MM-DD)")
@click.option("--end", help="Last day to sync (M_D_YYYY or YYYY-MM-DD)")
@click.option("--today", is_flag=True, help="Sync only the current day")
@click.pass_context
def sync(ctx, start, end, today):
    """Index recordings from the object store (full sync by default)."""
    if today:
        start = end = date.today().isoformat()
    elif not start and not end:
        console.print("Running [bold]full sync[/bold] - this may take a while...")

    try:
        with Services(ctx.obj["settings"]) as services:
            result = asyncio.run(run_sync(services.sync_engine, start, end))
            _print_sync_result(result, services.repo)
    except (ValueError, RecbotError) as e:
        _fail(ctx, e)


@cli.command()
@click.option("--start", required=True, help="First day to prune")
@click.option("--end", required=True, help="Last day to prune")
@click.pass_context
def prune(ctx, start, end):
    """Remove index rows for recordings deleted from the object store."""
    try:
        with Services(ctx.obj["settings"]) as services:
            result = asyncio.run(services.sync_engine.prune_date_range(start, end))
            _print_sync_result(result, services.repo)
    except (ValueError, RecbotError) as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show index statistics."""
    settings = ctx.obj["settings"]
    with Database(settings.db_path) as db:
        info = Repository(db).get_stats()

    table = Table(title="Index Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total files", str(info["totalFiles"]))
    table.add_row("Database", info["databasePath"])
    table.add_row("Size (bytes)", str(info["databaseSize"]))
    console.print(table)


@cli.command()
@click.argument("key")
@click.option("--size", type=int, default=0, help="File size in bytes")
def parse(key, size):
    """Show the metadata parsed from an object key."""
    record = parse_file_metadata(key, size)
    if record is None:
        console.print(f"[yellow]Could not parse:[/yellow] {key}")
        return
    table = Table(title="Parsed Metadata")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in record.to_api().items():
        table.add_row(name, str(value))
    console.print(table)


@cli.command()
@click.option("--date-start", help="From date (M_D_YYYY or YYYY-MM-DD)")
@click.option("--date-end", help="To date (M_D_YYYY or YYYY-MM-DD)")
@click.option("--phone", help="Phone number contains")
@click.option("--email", help="Agent email contains")
@click.option("--duration-min", type=float, help="Duration threshold in seconds")
@click.option("--duration-mode", type=click.Choice(DURATION_MODES), default="min")
@click.option("--time-start", help="From time of day (HH:MM or h:mm AM)")
@click.option("--time-end", help="To time of day")
@click.option("--time-mode", type=click.Choice(TIME_MODES), default="range")
@click.option("--sort", "sort_column", type=click.Choice(sorted(SORT_COLUMNS)), default="date")
@click.option("--direction", type=click.Choice(["asc", "desc"]), default="desc")
@click.option("--limit", type=int, default=25, help="Max results")
@click.option("--offset", type=int, default=0)
@click.option(
    "--output-format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def query(ctx, date_start, date_end, phone, email, duration_min, duration_mode,
          time_start, time_end, time_mode, sort_column, direction, limit, offset,
          output_format):
    """Query the recording index."""
    filters = RecordingFilters.from_params(
        date_start=date_start,
        date_end=date_end,
        phone=phone,
        email=email,
        duration_min=duration_min,
        duration_mode=duration_mode,
        time_start=time_start,
        time_end=time_end,
        time_mode=time_mode,
        sort_column=sort_column,
        sort_direction=direction,
        limit=limit,
        offset=offset,
    )
    with Database(ctx.obj["settings"].db_path) as db:
        result = query_files(db, filters)

    if output_format == "json":
        console.print(json.dumps({
            "files": [r.to_api() for r in result.rows],
            "totalCount": result.total_count,
            "hasMore": result.has_more,
        }, indent=2))
        return

    if not result.rows:
        console.print("[yellow]No recordings found.[/yellow]")
        return

    table = Table(title="Recordings")
    table.add_column("Date", style="dim", width=10)
    table.add_column("Time", width=8)
    table.add_column("Phone", style="cyan")
    table.add_column("Email")
    table.add_column("Duration", justify="right")
    for r in result.rows:
        table.add_row(
            r.call_date, r.call_time, r.phone, r.email, f"{r.duration_ms / 1000:.1f}s"
        )
    console.print(table)
    console.print(
        f"\n[dim]Showing {len(result.rows)} of {result.total_count} recordings.[/dim]"
    )


if __name__ == "__main__":
    cli()
