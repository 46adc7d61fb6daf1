"""Click-based CLI for folio-watch.

Thin wrapper around library modules. Every command delegates to the
market orchestrator, the refresh scheduler or the store.
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


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from folio_watch.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            raise click.ClickException(str(e)) from e
    return ctx.obj["config"]


def _fmt(value: float | None, spec: str = ".2f") -> str:
    return "—" if value is None else format(value, spec)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FOLIO_WATCH_CONFIG",
    default=None,
    help="Path to folio-watch.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="folio-watch")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """folio-watch: cached market quotes and portfolio revaluation."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.option("--exchange", "-e", default=None, help="Exchange hint (e.g. NSE, NASDAQ).")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format.",
)
@click.pass_context
def quote(
    ctx: click.Context, symbols: tuple[str, ...], exchange: str | None, output_format: str
) -> None:
    """Fetch live quotes for one or more SYMBOLS."""
    from folio_watch.core import SymbolError
    from folio_watch.market import build_service

    async def _run():
        config = _load_config(ctx)
        async with build_service(config) as service:
            return await service.get_batch(list(symbols), exchange)

    try:
        quotes = _run_async(_run())
    except SymbolError as e:
        raise click.BadParameter(str(e), param_hint="SYMBOLS") from e

    if output_format == "json":
        output = {
            s: (q.model_dump(mode="json") if q is not None else None)
            for s, q in quotes.items()
        }
        click.echo(json.dumps(output, indent=2))
        return

    table = Table(title="Quotes")
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Change %", justify="right")
    table.add_column("P/E", justify="right")
    table.add_column("Source")

    for symbol, q in quotes.items():
        if q is None:
            table.add_row(symbol, "[red]not available[/red]", "", "", "", "")
            continue
        table.add_row(
            symbol,
            f"{q.price:.2f}",
            _fmt(q.change),
            _fmt(q.change_percent),
            _fmt(q.pe_ratio),
            q.source,
        )
    console.print(table)

    if any(q is None for q in quotes.values()):
        ctx.exit(1)


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Revalue every stored holding once and record a snapshot."""
    from folio_watch.market import PriceRefreshScheduler, build_service
    from folio_watch.storage import create_store

    async def _run():
        config = _load_config(ctx)
        store = await create_store(config.storage)
        try:
            async with build_service(config) as service:
                scheduler = PriceRefreshScheduler(service, store, config.scheduler)
                return await scheduler.run_once()
        finally:
            await store.close()

    with console.status("Refreshing holdings..."):
        run = _run_async(_run())

    if run is None:
        raise click.ClickException("Refresh pass failed; see log output")

    table = Table(title=f"Refresh {run.run_id[:8]}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Holdings", str(run.symbols_requested))
    table.add_row("Updated", str(run.symbols_updated))
    table.add_row("Degraded", ", ".join(run.symbols_degraded) or "none")
    table.add_section()
    table.add_row("Total investment", f"{run.total_investment:,.2f}")
    table.add_row("Present value", f"{run.total_present_value:,.2f}")
    table.add_row("Gain / loss", f"{run.total_gain_loss:+,.2f}")
    console.print(table)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--probe/--no-probe",
    default=False,
    help="Also probe each quote provider over the network.",
)
@click.pass_context
def status(ctx: click.Context, probe: bool) -> None:
    """Show portfolio totals, storage and provider status."""
    from folio_watch.market import build_service
    from folio_watch.storage import create_store

    async def _run():
        config = _load_config(ctx)
        store = await create_store(config.storage)
        try:
            stats = await store.get_statistics()
        finally:
            await store.close()
        report = None
        if probe:
            async with build_service(config) as service:
                report = await service.check_health()
        return config, stats, report

    config, stats, report = _run_async(_run())

    table = Table(title="folio-watch Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Storage backend", config.storage.backend.value)
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_section()
    table.add_row("Holdings", str(stats["total_holdings"]))
    table.add_row("Unique symbols", str(stats["unique_symbols"]))
    table.add_row("Total investment", f"{stats['total_investment']:,.2f}")
    table.add_row("Present value", f"{stats['total_present_value']:,.2f}")
    table.add_row("Snapshots", str(stats["total_snapshots"]))
    table.add_row("Latest snapshot", stats["latest_snapshot"] or "N/A")
    table.add_section()
    table.add_row("Provider order", " → ".join(config.providers.order))
    if report is not None:
        for name, ok in report.providers.items():
            table.add_row(
                f"Provider {name}", "[green]up[/green]" if ok else "[red]down[/red]"
            )

    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address.")
@click.option("--port", "-p", type=int, default=None, help="Port number.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import os

    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port
    # The app factory runs in uvicorn and reloads config from the environment.
    if ctx.obj.get("config_path"):
        os.environ["FOLIO_WATCH_CONFIG"] = ctx.obj["config_path"]

    console.print(f"Starting folio-watch API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "folio_watch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
