"""
TraderPro Market Data Service - CLI Application
"""
import asyncio
from datetime import date, datetime, timezone
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from traderpro.config import settings
from traderpro.logger import logger
from traderpro.managers.data_manager.session_window import (
    SessionWindowComputer,
    normalize_range,
    normalize_range_res_pair,
    normalize_res,
    normalize_session,
    RANGES,
    INTRADAY_RESOLUTIONS,
    DURABLE_RESOLUTIONS,
)
from traderpro.managers.data_manager.trading_calendar import TradingCalendar

# Create Typer app
app = typer.Typer(
    name="traderpro",
    help="TraderPro market data CLI",
    add_completion=False,
)

# Rich console for beautiful output
console = Console()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
):
    """
    TraderPro market data service CLI
    """
    if version:
        console.print(f"[cyan]{settings.APP_NAME}[/cyan] v{settings.APP_VERSION}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(Panel.fit(
            f"[bold cyan]{settings.APP_NAME}[/bold cyan]\n"
            f"[dim]Version {settings.APP_VERSION}[/dim]\n\n"
            f"[yellow]Use --help to see available commands[/yellow]",
            box=box.ROUNDED,
            border_style="cyan",
        ))


@app.command()
def server(
    host: str = typer.Option(settings.API.host, "--host", "-h", help="Server host"),
    port: int = typer.Option(settings.API.port, "--port", "-p", help="Server port"),
    reload: bool = typer.Option(settings.DEBUG, "--reload", "-r", help="Enable auto-reload"),
):
    """
    Start the FastAPI server
    """
    import uvicorn

    console.print(f"[green]Starting server at http://{host}:{port}[/green]")
    console.print(f"[dim]API docs: http://{host}:{port}/docs[/dim]\n")

    logger.info(f"Starting server via CLI at {host}:{port}")

    uvicorn.run(
        "traderpro.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.LOGGER.default_level.lower(),
    )


@app.command()
def init_db():
    """
    Create the service tables in the row store
    """
    from traderpro.models.database import create_store_engine, init_db as initialize_database

    engine = create_store_engine(settings.DATABASE.url)
    try:
        initialize_database(engine)
        console.print(f"[green]✓ Tables initialized at {settings.DATABASE.url}[/green]")
    finally:
        engine.dispose()


@app.command()
def holidays(
    year: int = typer.Option(date.today().year, "--year", "-y", help="Calendar year"),
):
    """
    Show the computed NYSE holidays for a year
    """
    if year < 1900 or year > 2100:
        console.print("[red]✗ Invalid year. Please use a year between 1900 and 2100[/red]")
        raise typer.Exit(code=1)

    calendar = TradingCalendar(settings.CANDLES.exchange_timezone)
    table = Table(title=f"NYSE Holidays {year}", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="cyan")
    table.add_column("Day", style="dim")
    table.add_column("Holiday", style="yellow")

    for day, name in sorted(calendar.holidays(year).items()):
        table.add_row(day.isoformat(), day.strftime("%A"), name)

    console.print(table)
    console.print(f"\n[dim]Total: {len(calendar.holidays(year))} holidays[/dim]\n")


@app.command()
def window(
    range_: str = typer.Option("1D", "--range", help=f"Range ({', '.join(RANGES)})"),
    res: str = typer.Option("1m", "--res", help=f"Resolution ({', '.join(INTRADAY_RESOLUTIONS + DURABLE_RESOLUTIONS)})"),
    session: str = typer.Option("regular", "--session", help="regular, extended or auto"),
    at: Optional[str] = typer.Option(None, "--at", help="Evaluate at this ISO instant instead of now"),
):
    """
    Show the normalized range/resolution pair and its canonical window
    """
    norm_range, norm_res = normalize_range(range_), normalize_res(res)
    if norm_range not in RANGES or norm_res not in INTRADAY_RESOLUTIONS + DURABLE_RESOLUTIONS:
        console.print(f"[red]✗ Unsupported range/res: {range_}/{res}[/red]")
        raise typer.Exit(code=1)

    now = None
    if at:
        try:
            now = datetime.fromisoformat(at.replace("Z", "+00:00"))
        except ValueError:
            console.print(f"[red]✗ Invalid --at value: {at}[/red]")
            raise typer.Exit(code=1)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    pair = normalize_range_res_pair(norm_range, norm_res)
    candle_session = normalize_session(session)
    computer = SessionWindowComputer(TradingCalendar(settings.CANDLES.exchange_timezone))
    result = computer.compute_window(pair.range, pair.res, candle_session, now=now)

    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Range", pair.range)
    table.add_row("Resolution", pair.res)
    table.add_row("Session", candle_session.value)
    if pair.normalized_from:
        table.add_row("Normalized from", f"{pair.normalized_from['range']}/{pair.normalized_from['res']}")
    table.add_row("Start", result.start_iso)
    table.add_row("End", result.end_iso)
    table.add_row("Expected bars", str(result.expected_bars))
    console.print(table)


@app.command()
def candles(
    symbol: str = typer.Argument(..., help="Symbol"),
    range_: str = typer.Option("1D", "--range", help="Range"),
    res: str = typer.Option("5m", "--res", help="Resolution"),
    session: str = typer.Option("regular", "--session", help="regular, extended or auto"),
    limit: int = typer.Option(10, "--limit", "-n", help="Rows to show (most recent)"),
):
    """
    Fetch a candle window through the full source chain
    """
    from traderpro.core.exceptions import BadRequestError
    from traderpro.managers.system_manager.api import SystemManager
    from traderpro.models.candles import ErrorResult, iso_from_ms

    async def _run():
        system_mgr = SystemManager(settings)
        await system_mgr.start()
        try:
            return await system_mgr.get_data_manager().get_candles_window(
                target="SYMBOL", symbol=symbol, range_=range_, res=res, session=session
            )
        finally:
            await system_mgr.stop()

    try:
        result = asyncio.run(_run())
    except BadRequestError as e:
        console.print(f"[red]✗ {e.code}: {e.message}[/red]")
        raise typer.Exit(code=1)
    if isinstance(result, ErrorResult):
        console.print(f"[red]✗ {result.code}: {result.message}[/red]")
        raise typer.Exit(code=1)

    meta = result.meta
    console.print(
        f"\n[cyan]{symbol.upper()}[/cyan] source=[yellow]{meta.source.value}[/yellow] "
        f"bars={meta.received_bars}/{meta.expected_bars} "
        f"fallback={meta.fallback_reason.value if meta.fallback_reason else '-'}"
    )
    table = Table(show_header=True, header_style="bold cyan")
    for col in ("Time", "Open", "High", "Low", "Close", "Volume"):
        table.add_column(col, justify="right" if col != "Time" else "left")
    for c in result.candles[-limit:]:
        table.add_row(
            iso_from_ms(c.time),
            f"{c.open:.2f}", f"{c.high:.2f}", f"{c.low:.2f}", f"{c.close:.2f}",
            f"{c.volume:,.0f}" if c.volume is not None else "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
