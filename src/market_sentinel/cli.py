"""Click-based CLI for market-sentinel.

Thin wrapper around library modules. Every command delegates to the
aggregator, the freshness controller or the API app factory.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from market_sentinel.core import load_config

        config = load_config(config_path=ctx.obj.get("config_path"))
        ctx.obj["config"] = config
        if not ctx.obj.get("verbose"):
            logging.getLogger().setLevel(config.log_level)
    return ctx.obj["config"]


async def _build_pipeline(config):
    """Store, sources and aggregator wired from config."""
    from market_sentinel.ingestion import Aggregator, create_store
    from market_sentinel.sources import build_sources

    store = await create_store(config.storage)
    aggregator = Aggregator(build_sources(config.sources), store, config.sources)
    return store, aggregator


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="MARKET_SENTINEL_CONFIG",
    default=None,
    help="Path to market-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="market-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Market Sentinel: Nigerian market price acquisition and caching."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging("DEBUG" if verbose else "INFO")


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--source",
    "-s",
    type=str,
    default=None,
    help="Scrape a single source by name. Default: all enabled sources.",
)
@click.pass_context
def scrape(ctx: click.Context, source: str | None) -> None:
    """Run one aggregation pass and store the results."""
    from market_sentinel.core.exceptions import UnknownSourceError

    async def _run():
        config = _load_config(ctx)
        store, aggregator = await _build_pipeline(config)
        try:
            if source:
                return await aggregator.run_one(source)
            return await aggregator.run_all()
        finally:
            await store.close()

    try:
        result = _run_async(_run())
    except UnknownSourceError as e:
        raise click.BadParameter(str(e), param_hint="--source") from e

    _output_scrape_table(result)

    if not result.success:
        console.print(f"[red]Could not store scraped data: {result.persistence_error}[/red]")
        raise SystemExit(1)
    if result.total == 0:
        console.print("[yellow]No data was scraped.[/yellow]")
        raise SystemExit(1)
    console.print(f"[green]Stored {result.total} observations.[/green]")


def _output_scrape_table(result) -> None:
    """Render per-source outcomes as a Rich table."""
    table = Table(title="Scrape Results")
    table.add_column("Source", style="bold")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    table.add_column("Error")

    for name, status in result.per_source_status.items():
        table.add_row(
            name,
            "[green]ok[/green]" if status.success else "[red]failed[/red]",
            str(status.count),
            status.error or "",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# prices
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--item", "-i", type=str, default=None, help="Item substring filter.")
@click.option("--location", "-l", type=str, default=None, help="Location substring filter.")
@click.option("--source", "-s", type=str, default=None, help="Exact source filter.")
@click.option(
    "--all",
    "include_all",
    is_flag=True,
    default=False,
    help="Include rows older than the retention window.",
)
@click.option("--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum rows.")
@click.option(
    "--max-age",
    "max_age_minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Minutes a row counts as fresh. Default: cache.hot_window_minutes.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def prices(
    ctx: click.Context,
    item: str | None,
    location: str | None,
    source: str | None,
    include_all: bool,
    limit: int | None,
    max_age_minutes: int | None,
    output_format: str,
) -> None:
    """Read prices, refreshing from the sources when stale."""
    async def _run():
        from market_sentinel.cache import FreshnessController
        from market_sentinel.core import PriceQuery

        config = _load_config(ctx)
        store, aggregator = await _build_pipeline(config)
        try:
            query = PriceQuery(
                item=item,
                location=location,
                source=source,
                include_all=include_all,
                limit=min(limit or config.api.default_limit, config.api.max_limit),
                max_age_minutes=max_age_minutes,
            )
            controller = FreshnessController(store, aggregator.run_all, config.cache)
            return await controller.get_prices(query)
        finally:
            await store.close()

    lookup = _run_async(_run())

    if output_format == "json":
        _output_prices_json(lookup)
    else:
        _output_prices_table(lookup)


def _output_prices_table(lookup) -> None:
    """Render a price lookup as a Rich table."""
    if not lookup.observations:
        console.print("[yellow]No market data found.[/yellow]")
        return

    caption = f"state={lookup.state.value} cached={str(lookup.cached).lower()}"
    table = Table(title="Market Prices", caption=caption)
    table.add_column("Item", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Currency")
    table.add_column("Location")
    table.add_column("Source")
    table.add_column("Updated")

    for obs in lookup.observations:
        table.add_row(
            obs.item,
            f"{obs.price:,.2f}",
            obs.currency,
            obs.location,
            obs.source,
            obs.observed_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def _output_prices_json(lookup) -> None:
    """Write a price lookup as JSON to stdout."""
    output = {
        "cached": lookup.cached,
        "state": lookup.state.value,
        "last_updated": lookup.last_updated.isoformat() if lookup.last_updated else None,
        "count": lookup.count,
        "data": [o.model_dump(mode="json") for o in lookup.observations],
    }
    click.echo(json.dumps(output, indent=2, default=str))


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def sources(ctx: click.Context) -> None:
    """List registered price sources and whether they are enabled."""
    from market_sentinel.sources import registry

    config = _load_config(ctx)
    enabled = config.sources.enabled

    table = Table(title="Price Sources")
    table.add_column("Name", style="bold")
    table.add_column("Attribution")
    table.add_column("URL")
    table.add_column("Enabled")

    for name in registry.list_names():
        factory = registry.get(name)
        on = enabled is None or name in enabled
        table.add_row(
            name,
            getattr(factory, "source", ""),
            getattr(factory, "url", ""),
            "[green]yes[/green]" if on else "[dim]no[/dim]",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address. Default: api.host.")
@click.option("--port", "-p", type=int, default=None, help="Port number. Default: api.port.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the REST API server with the periodic scraper."""
    import uvicorn

    from market_sentinel.api.app import create_app

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting market-sentinel API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
