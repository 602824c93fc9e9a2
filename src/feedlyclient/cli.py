"""CLI entry point using Typer."""

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from feedlyclient.budget.manager import RateBudget
from feedlyclient.budget.table import load_budget_table
from feedlyclient.cache import ResponseCache
from feedlyclient.config import settings
from feedlyclient.errors import BudgetConfigError, BudgetStateError

app = typer.Typer(
    name="feedly-budget",
    help="Feedly API rate budget - quota status and admission checks.",
)
console = Console()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

STATE_OPTION = typer.Option(None, "--state", help="Path to the rate state file (defaults to settings)")
TABLE_OPTION = typer.Option(None, "--budgets", help="Path to a budget table YAML file")
CACHE_OPTION = typer.Option(None, "--cache-dir", help="Response cache directory (defaults to settings)")


def _budget(state_path: str | None, table_path: str | None) -> RateBudget:
    return RateBudget.from_settings(state_path=state_path, table_path=table_path)


@app.command()
def status(
    state_path: str | None = STATE_OPTION,
    table_path: str | None = TABLE_OPTION,
) -> None:
    """Show today's usage, upstream telemetry and breaker state."""
    try:
        budget = _budget(state_path, table_path)
        console.print(budget.format_status(), markup=False, highlight=False)
    except (BudgetStateError, BudgetConfigError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def check(
    consumer: str = typer.Argument(..., help="Consumer name, e.g. cyber-ops"),
    state_path: str | None = STATE_OPTION,
    table_path: str | None = TABLE_OPTION,
) -> None:
    """Check whether a consumer may issue a request now (exit 1 when denied)."""
    try:
        result = _budget(state_path, table_path).check_budget(consumer)
    except (BudgetStateError, BudgetConfigError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title=f"Budget Check: {consumer}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Allowed", "yes" if result.allowed else "no")
    table.add_row("Cache only", "yes" if result.cache_only else "no")
    table.add_row("Remaining daily", str(result.remaining_daily))
    table.add_row("Remaining hourly", str(result.remaining_hourly))
    if result.wait_ms is not None:
        table.add_row("Wait (ms)", str(result.wait_ms))
    if result.reason:
        table.add_row("Reason", result.reason)
    console.print(table)

    if not result.allowed:
        raise typer.Exit(1)


@app.command()
def budgets(table_path: str | None = TABLE_OPTION) -> None:
    """List configured consumer allocations."""
    try:
        budget_table = load_budget_table(table_path or settings.budget_table_path)
    except BudgetConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title=f"Budget Allocations (global daily limit {budget_table.global_daily_limit})")
    table.add_column("Consumer", style="cyan")
    table.add_column("Daily", style="green")
    table.add_column("Hourly", style="green")
    table.add_column("Priority", style="magenta")
    table.add_column("Can borrow", style="white")
    for name, allocation in sorted(budget_table.consumers.items(), key=lambda item: (item[1].priority, item[0])):
        table.add_row(
            name,
            str(allocation.daily_limit),
            str(allocation.hourly_limit),
            str(allocation.priority),
            "yes" if allocation.can_borrow else "no",
        )
    console.print(table)


@app.command("cache-stats")
def cache_stats(cache_dir: str | None = CACHE_OPTION) -> None:
    """Show response cache entry counts without deleting anything."""
    stats = ResponseCache(cache_dir or settings.cache_dir).stats()

    console.print(f"Cache: {stats.total_entries} entries, {stats.live} live, {stats.expired} expired")
    table = Table(title="Entries by Category")
    table.add_column("Category", style="cyan")
    table.add_column("Entries", style="green")
    for category, count in sorted(stats.by_category.items()):
        table.add_row(category, str(count))
    console.print(table)


@app.command()
def purge(cache_dir: str | None = CACHE_OPTION) -> None:
    """Delete expired and unreadable cache entries."""
    result = ResponseCache(cache_dir or settings.cache_dir).purge_expired()
    console.print(f"[green]Purged {result.purged} expired entries, {result.remaining} live entries remain[/green]")


if __name__ == "__main__":
    app()
