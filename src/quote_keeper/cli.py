"""Click-based CLI for quote-keeper.

Thin wrapper around library modules: config and logging setup, then a call
into sources, history, or the API app.
"""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call, and set up logging."""
    if "config" not in ctx.obj:
        from quote_keeper.core import ConfigError, load_config
        from quote_keeper.core.log import configure_logging

        try:
            config = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            console.print(f"[red]Configuration error: {escape(str(exc))}[/red]")
            raise SystemExit(1)

        log_config = config.logging
        if ctx.obj["verbose"]:
            log_config = log_config.model_copy(update={"level": "DEBUG"})
        configure_logging(log_config)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _quotes_table(title: str, quotes) -> Table:
    table = Table(title=title)
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Time")
    for q in quotes:
        table.add_row(q.symbol, f"{q.price:,.2f}", q.timestamp.isoformat())
    return table


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="QUOTE_KEEPER_CONFIG",
    default=None,
    help="Path to quote-keeper.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="quote-keeper")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """quote-keeper: track stock quotes, questionable or otherwise."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the poller and the REST API server."""
    import uvicorn

    from quote_keeper.api.app import create_app

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(
        f"Polling [bold]{', '.join(config.poll.symbols) or '(nothing)'}[/bold] "
        f"every {config.poll.interval:g}s into {config.storage.backend.value} storage"
    )
    console.print(f"Serving quotes on [bold]{host}:{port}[/bold]")

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--symbols",
    "-s",
    type=str,
    default=None,
    help="Comma-separated symbols (default: poll.symbols).",
)
@click.pass_context
def fetch(ctx: click.Context, symbols: str | None) -> None:
    """Fetch current quotes once from the quote source and print them."""
    from quote_keeper.core import SourceUnavailableError, normalize_symbols
    from quote_keeper.sources import create_source

    config = _load_config(ctx)
    wanted = normalize_symbols(symbols.split(",")) if symbols else list(config.poll.symbols)
    if not wanted:
        raise click.UsageError("no symbols given and poll.symbols is empty")

    async def _run():
        async with create_source(config.source) as source:
            return await source.fetch(wanted)

    try:
        quotes = _run_async(_run())
    except SourceUnavailableError as exc:
        console.print(f"[red]Fetch failed: {escape(str(exc))}[/red]")
        raise SystemExit(1)

    console.print(_quotes_table("Current quotes", sorted(quotes, key=lambda q: q.symbol)))


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1)
@click.option("--last", "-n", type=int, default=10, show_default=True, help="Quotes per symbol.")
@click.option(
    "--db",
    "db_path",
    type=click.Path(exists=True, dir_okay=False),
    default="./stonks.sqlite",
    show_default=True,
    help="SQLite database written by a previous `serve`.",
)
def history(symbols: tuple[str, ...], last: int, db_path: str) -> None:
    """Show archived quotes from a SQLite database without resetting it."""
    from quote_keeper.core import DEFAULT_SYMBOLS, NotFoundError, QuoteKeeperError
    from quote_keeper.history import DurableStore

    async def _run():
        store = DurableStore(db_path, symbols=symbols or DEFAULT_SYMBOLS, fresh_start=False)
        await store.initialize()
        try:
            return await store.query_batch(list(symbols), last)
        finally:
            await store.close()

    try:
        batch = _run_async(_run())
    except NotFoundError as exc:
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        raise SystemExit(1)
    except QuoteKeeperError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise SystemExit(1)

    for symbol, quotes in sorted(batch.items()):
        console.print(_quotes_table(symbol, quotes))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
