"""
ExactPilot CLI — command-line interface.

Usage:
    exactpilot auth-url --open
    exactpilot login "https://example.com/callback?code=..."
    exactpilot divisions
    exactpilot transactions 123456 --filter "FinancialYear gt 2023" -o lines.xlsx
    exactpilot transactions 123456 654321 --where "Description contains rent"
"""

from __future__ import annotations

import asyncio
import logging
import signal
import webbrowser
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from exactpilot import __version__
from exactpilot.errors import Cancelled, ConfigError, ExactPilotError
from exactpilot.fetcher import ProgressEvent
from exactpilot.pilot import ExactPilot

T = TypeVar("T")

app = typer.Typer(
    name="exactpilot",
    help="ExactPilot — export divisions and transaction lines from Exact Online",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]ExactPilot[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: str = typer.Option(
        "exactpilot.yaml",
        "--config",
        "-c",
        help="Path to config file (env vars EXACTPILOT_* also work)",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """ExactPilot — your Exact Online data, on your machine."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    ctx.obj = {"config": config if Path(config).exists() else None}


def _load_pilot(ctx: typer.Context) -> ExactPilot:
    try:
        return ExactPilot.from_config(ctx.obj["config"])
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2) from e


def _run(pilot: ExactPilot, command: Callable[[ExactPilot], Awaitable[T]]) -> T:
    """Run one command to completion, mapping failures to exit codes."""

    async def runner() -> T:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, pilot.registry.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            handler_installed = False
        try:
            return await command(pilot)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
            await pilot.close()

    try:
        return asyncio.run(runner())
    except Cancelled as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(130) from e
    except ExactPilotError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _progress_bar() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def _progress_updater(progress: Progress, task_id: Any) -> Callable[[ProgressEvent], None]:
    def update(event: ProgressEvent) -> None:
        progress.update(
            task_id,
            completed=event.current,
            total=event.total if event.total_known else None,
            description=event.message,
        )

    return update


@app.command("auth-url")
def auth_url(
    ctx: typer.Context,
    open_browser: bool = typer.Option(False, "--open", help="Open the URL in a browser"),
) -> None:
    """Print the URL where you grant ExactPilot access."""
    pilot = _load_pilot(ctx)
    url = _run(pilot, lambda p: p.get_auth_url())
    console.print(url, soft_wrap=True)
    console.print("\n[dim]Log in, then run [bold]exactpilot login <redirect URL>[/bold][/dim]")
    if open_browser:
        webbrowser.open(url)


@app.command()
def login(
    ctx: typer.Context,
    code: str = typer.Argument(..., help="Authorization code, or the full redirect URL"),
) -> None:
    """Exchange an authorization code for tokens."""
    pilot = _load_pilot(ctx)
    _run(pilot, lambda p: p.authenticate_with_code(code))
    division = pilot.session.current_division
    console.print("[green]✓[/green] Authenticated")
    if division is None:
        console.print("[yellow]Current division could not be resolved; divisions will be unavailable.[/yellow]")
    else:
        console.print(f"Current division: [bold]{division}[/bold]")


@app.command()
def status(ctx: typer.Context) -> None:
    """Show whether a session is stored."""
    pilot = _load_pilot(ctx)
    authenticated = _run(pilot, lambda p: p.is_authenticated())

    table = Table(title="Session", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("API", pilot.config.api)
    table.add_row("Authenticated", "✅ yes" if authenticated else "❌ no")
    table.add_row("Current division", str(pilot.session.current_division or "—"))
    table.add_row("Token file", str(pilot.session.store.path))
    console.print(table)


@app.command()
def divisions(
    ctx: typer.Context,
    output: str = typer.Option(None, "--output", "-o", help="Also write to .csv, .json or .xlsx"),
) -> None:
    """List the divisions (administrations) you can access."""
    pilot = _load_pilot(ctx)

    with _progress_bar() as progress:
        task_id = progress.add_task("Fetching divisions...", total=None)
        result = _run(pilot, lambda p: p.get_divisions(_progress_updater(progress, task_id)))

    table = Table(title="Divisions")
    table.add_column("Code", justify="right", style="bold cyan")
    table.add_column("Customer")
    table.add_column("Description")
    for division in result:
        table.add_row(str(division.code), division.customer_name, division.description)
    console.print(table)

    if output:
        _export(result, output)


@app.command()
def transactions(
    ctx: typer.Context,
    divisions: list[int] = typer.Argument(..., help="One or more division codes"),
    filter: str = typer.Option(
        None,
        "--filter",
        "-f",
        help="OData $filter expression, e.g. 'FinancialYear gt 2023'",
    ),
    where: list[str] = typer.Option(
        None,
        "--where",
        "-w",
        help="Filter rule 'FIELD OP VALUE' (eq, ne, gt, ge, lt, le, contains, startswith, endswith). Repeatable.",
    ),
    output: str = typer.Option(None, "--output", "-o", help="Output file (.csv, .json, .xlsx)"),
) -> None:
    """Export all transaction lines of one or more divisions. Ctrl-C cancels."""
    from exactpilot.exporters import default_filename

    odata_filter = _combine_filters(filter, where or [])
    pilot = _load_pilot(ctx)
    console.print(Panel.fit(
        f"[bold blue]ExactPilot[/bold blue] — Transaction lines for division(s) "
        f"{', '.join(str(d) for d in divisions)}",
        subtitle=f"v{__version__}",
    ))
    if odata_filter:
        console.print(f"Applying filter: [cyan]{odata_filter}[/cyan]")

    with _progress_bar() as progress:
        task_id = progress.add_task("Counting transactions...", total=None)
        result = _run(
            pilot,
            lambda p: p.get_transactions_for_divisions(
                divisions, odata_filter or None, _progress_updater(progress, task_id)
            ),
        )

    console.print(
        f"Fetched [bold]{len(result)}[/bold] transaction lines from {len(divisions)} division(s)"
    )
    if result:
        _export(result, output or default_filename(divisions))


def _combine_filters(raw: str | None, rules: list[str]) -> str:
    """AND a raw ``$filter`` expression with the ``--where`` rules."""
    from exactpilot.models.filters import FilterRule, build_odata_filter

    try:
        built = build_odata_filter(FilterRule.parse(rule) for rule in rules)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--where") from e
    raw = raw.strip() if raw else ""
    if raw and built:
        return f"({raw}) and {built}"
    return raw or built


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the stored tokens."""
    pilot = _load_pilot(ctx)
    _run(pilot, lambda p: p.logout())
    console.print("[green]✓[/green] Logged out")


def _export(records: Any, output: str) -> None:
    from exactpilot.exporters import export_records

    try:
        path = export_records(records, output)
    except (ValueError, OSError) as e:
        console.print(f"[red]Export failed:[/red] {e}")
        raise typer.Exit(1) from e
    console.print(f"[green]✓[/green] Exported {len(records)} records to [bold]{path}[/bold]")


if __name__ == "__main__":
    app()
