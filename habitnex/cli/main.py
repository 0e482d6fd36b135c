"""
CLI interface for HabitNex.

Provides command-line access to the usage ledger, demo data and the API server.
"""

import sqlite3
import sys
from datetime import date, datetime, time, timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from habitnex.config.settings import get_settings
from habitnex.core.pricing import format_cost
from habitnex.demo.seed_demo_data import DEMO_USER_ID, seed_demo_data
from habitnex.storage.repository import fetch_usage_alerts, get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _db_path(db: Optional[str]) -> str:
    return db or get_settings().db_path


def _no_data_hint() -> None:
    console.print("\n[bold yellow]No usage data found[/]")
    console.print("\nTo get started with HabitNex:")
    console.print("1. Run `habitnex init` to initialize the database")
    console.print("2. Start the API with `habitnex serve`")
    console.print("3. Make some requests and run this command again\n")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """HabitNex CLI."""
    if ctx.invoked_subcommand is None:
        console.print("HabitNex - Use --help to see available commands")


@app.command()
def init(db: Optional[str] = typer.Option(None, "--db", help="SQLite database path")):
    """Initialize the HabitNex database."""
    try:
        initialize_schema(_db_path(db))
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show configuration and AI availability."""
    settings = get_settings()
    try:
        config = settings.load_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Environment: {settings.environment}")
    console.print(f"Database: {settings.db_path}")
    if settings.ai_enabled:
        console.print(f"[green]✓[/] AI enabled ({config.ai.model})")
    else:
        console.print("[yellow]![/] AI disabled: no API key configured")
    console.print(
        f"Budget: {format_cost(config.budget.daily)}/day, {format_cost(config.budget.monthly)}/month"
    )
    for endpoint, limit in config.limits.items():
        console.print(f"  {endpoint}: {limit} requests/day")


@app.command()
def usage(
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
    days: int = typer.Option(1, "--days", "-d", help="Number of days to include"),
):
    """Show AI usage by endpoint."""
    since = datetime.combine(date.today() - timedelta(days=max(days, 1) - 1), time.min)
    try:
        breakdown = get_repository(_db_path(db)).get_endpoint_breakdown(since)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            _no_data_hint()
            sys.exit(EXIT_CODE_PASS)
        raise

    if not breakdown:
        _no_data_hint()
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"AI usage since {since.date().isoformat()}")
    table.add_column("Endpoint")
    table.add_column("Requests", justify="right")
    table.add_column("Cached", justify="right")
    table.add_column("Avg latency", justify="right")
    table.add_column("Cost", justify="right")
    for row in breakdown:
        table.add_row(
            row["endpoint"],
            str(row["requests"]),
            str(row["cached_requests"]),
            f"{row['avg_latency_ms']:.0f} ms",
            format_cost(row["cost"]),
        )
    console.print(table)


@app.command()
def alerts(
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of alerts"),
):
    """List recent budget alerts."""
    try:
        recent = fetch_usage_alerts(limit=limit, db_path=_db_path(db))
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            _no_data_hint()
            sys.exit(EXIT_CODE_PASS)
        raise

    if not recent:
        console.print("[green]✓[/] No budget alerts")
        return

    for alert in recent:
        color = "red" if alert.severity in ("critical", "emergency") else "yellow"
        state = " [dim](acknowledged)[/]" if alert.acknowledged else ""
        console.print(
            f"[{color}]{alert.severity.upper()}[/] #{alert.id} {alert.created_at:%Y-%m-%d %H:%M} {alert.message}{state}"
        )


@app.command("seed-demo")
def seed_demo(
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
    user_id: str = typer.Option(DEMO_USER_ID, "--user", "-u", help="User to seed data for"),
    days: int = typer.Option(30, "--days", "-d", help="Days of history to generate"),
):
    """Insert demo habits, completions and mood entries."""
    try:
        counts = seed_demo_data(_db_path(db), user_id=user_id, days=days)
    except Exception as e:
        console.print(f"[red]Error seeding demo data:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(
        f"[green]✓[/] Seeded {counts['habits']} habits, {counts['completions']} completions "
        f"and {counts['moods']} mood entries for {user_id}"
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HabitNex API server."""
    import uvicorn

    uvicorn.run("habitnex.api.main:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
