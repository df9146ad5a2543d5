"""
CLI interface for AI Quota Guard.

Provides command-line access to admission checks, usage accounting
and account administration.
"""

import sqlite3
import sys
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from ai_quota_guard.config.settings import Settings
from ai_quota_guard.core.errors import AccountNotFound
from ai_quota_guard.core.identity import CallerIdentity
from ai_quota_guard.core.service import MeteringService
from ai_quota_guard.core.state import evaluate_state
from ai_quota_guard.logging import setup_logging
from ai_quota_guard.storage.models import AccountFilter, AuditKind, BlockEvent

app = typer.Typer()
console = Console()
logger = structlog.get_logger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1  # denial, rejected action or error

_state = {"db_path": None, "config_path": None}


def get_service() -> MeteringService:
    """Build the metering service from the environment and CLI options."""
    settings = Settings.from_env()
    if _state["db_path"]:
        settings.db_path = _state["db_path"]
    if _state["config_path"]:
        settings.config_path = _state["config_path"]
    return MeteringService.from_settings(settings)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None, "--db", help="Path to the SQLite database"
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a YAML metering config"
    ),
    log_level: str = typer.Option(
        "warning", "--log-level", help="Logging level"
    ),
):
    """AI Quota Guard CLI."""
    _state["db_path"] = db
    _state["config_path"] = config
    setup_logging(log_level)
    if ctx.invoked_subcommand is None:
        console.print("AI Quota Guard - Use --help to see available commands")


@app.command()
def init():
    """Initialize the AI Quota Guard database."""
    try:
        get_service().initialize()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def check(account_id: str = typer.Argument(..., help="Account to check")):
    """Check whether an account may make a metered AI request."""
    try:
        result = get_service().check_admission(account_id)
    except sqlite3.Error as e:
        _internal_error(e)

    if result.allowed:
        console.print(f"[green]✓[/] Request allowed for {account_id}")
        sys.exit(EXIT_CODE_OK)
    console.print(f"[red]✗[/] Request denied: {result.reason}")
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def record(
    account_id: str = typer.Argument(..., help="Account that made the request"),
    tokens: int = typer.Option(..., "--tokens", "-t", min=0, help="Tokens used"),
    request_type: str = typer.Option(
        "general", "--type", help="Request type label"
    ),
):
    """Record a completed request's usage."""
    try:
        get_service().record_usage(account_id, tokens, request_type)
    except sqlite3.Error as e:
        _internal_error(e)
    console.print(f"[green]✓[/] Recorded {tokens} tokens for {account_id}")
    sys.exit(EXIT_CODE_OK)


@app.command()
def stats(account_id: str = typer.Argument(..., help="Account to summarize")):
    """Show daily usage, daily limit and lifetime totals for an account."""
    try:
        result = get_service().get_account_stats(account_id)
    except AccountNotFound as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except sqlite3.Error as e:
        _internal_error(e)

    console.print(f"\n[bold]Account:[/bold] {account_id}")
    console.print(f"Daily usage: {result.daily_usage} / {result.daily_limit} requests")
    console.print(f"Total tokens: {result.total_tokens:,}")
    console.print(f"Total cost: {_format_currency(result.total_cost)}")
    sys.exit(EXIT_CODE_OK)


@app.command()
def usage(
    account_id: str = typer.Argument(..., help="Account whose ledger to show"),
    limit: int = typer.Option(100, "--limit", "-l", min=1, help="Maximum entries"),
):
    """List an account's usage ledger, newest first."""
    try:
        entries = get_service().list_usage(account_id, limit)
    except sqlite3.Error as e:
        _internal_error(e)

    if not entries:
        console.print("\n[dim]No usage recorded for this account.[/]")
        sys.exit(EXIT_CODE_OK)

    table = Table(title=f"Usage for {account_id}")
    table.add_column("Timestamp")
    table.add_column("Type")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    for entry in entries:
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.request_type,
            f"{entry.tokens_used:,}",
            _format_currency(entry.cost),
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def accounts(
    state: AccountFilter = typer.Option(
        AccountFilter.ALL, "--state", "-s", help="Filter accounts by state"
    ),
):
    """List accounts with their tier, state and usage."""
    try:
        service = get_service()
        rows = service.list_accounts(state)
    except sqlite3.Error as e:
        _internal_error(e)

    if not rows:
        console.print("\n[dim]No accounts found.[/]")
        sys.exit(EXIT_CODE_OK)

    table = Table(title="Accounts")
    table.add_column("ID")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Tier")
    table.add_column("State")
    table.add_column("Today", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    for account in rows:
        table.add_row(
            account.id,
            account.email,
            account.role.value,
            account.tier.value,
            evaluate_state(account).value,
            str(account.daily_call_count),
            f"{account.total_tokens_used:,}",
            _format_currency(account.total_cost),
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def logs(
    kind: AuditKind = typer.Option(
        AuditKind.ALL, "--type", help="Which audit events to show"
    ),
    limit: int = typer.Option(100, "--limit", "-l", min=1, help="Maximum events"),
):
    """Show block and deactivation audit events, newest first."""
    try:
        records = get_service().list_audit_log(kind, limit)
    except sqlite3.Error as e:
        _internal_error(e)

    if not records:
        console.print("\n[dim]No audit events found.[/]")
        sys.exit(EXIT_CODE_OK)

    table = Table(title="Audit log")
    table.add_column("Timestamp")
    table.add_column("Account")
    table.add_column("Email")
    table.add_column("Event")
    table.add_column("Details")
    for record in records:
        event = record.event
        if isinstance(event, BlockEvent):
            name, details = "blocked", event.reason
        else:
            actor = record.actor_email or event.actor_id
            name, details = event.action.value, f"by {actor}"
        table.add_row(
            event.timestamp.isoformat(timespec="seconds"),
            event.account_id,
            record.account_email,
            name,
            details,
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def deactivate(
    account_id: str = typer.Argument(..., help="Account to deactivate"),
    actor: str = typer.Option(..., "--actor", "-a", help="Super admin account id"),
):
    """Deactivate an account."""
    try:
        service = get_service()
        result = service.deactivate_account(account_id, _resolve_actor(service, actor))
    except sqlite3.Error as e:
        _internal_error(e)
    _print_action(result)


@app.command()
def reactivate(
    account_id: str = typer.Argument(..., help="Account to reactivate"),
    actor: str = typer.Option(..., "--actor", "-a", help="Super admin account id"),
):
    """Reactivate a blocked or deactivated account."""
    try:
        service = get_service()
        result = service.reactivate_account(account_id, _resolve_actor(service, actor))
    except sqlite3.Error as e:
        _internal_error(e)
    _print_action(result)


@app.command()
def delete(
    account_id: str = typer.Argument(..., help="Account to delete"),
    actor: str = typer.Option(..., "--actor", "-a", help="Super admin account id"),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Skip the confirmation prompt"
    ),
):
    """Delete an account with its usage ledger and audit history."""
    if not yes:
        typer.confirm(f"Delete {account_id} and all associated data?", abort=True)
    try:
        service = get_service()
        result = service.delete_account(account_id, _resolve_actor(service, actor))
    except sqlite3.Error as e:
        _internal_error(e)
    _print_action(result)


@app.command()
def sweep():
    """Reset daily counters that were last reset before today (UTC)."""
    try:
        count = get_service().sweep_stale_counters()
    except sqlite3.Error as e:
        _internal_error(e)
    console.print(f"[green]✓[/] Reset daily counters for {count} account(s)")
    sys.exit(EXIT_CODE_OK)


def _resolve_actor(service: MeteringService, actor_id: str) -> CallerIdentity:
    """Identify the operator by their stored account."""
    try:
        return service.resolve_actor(actor_id)
    except AccountNotFound:
        console.print(f"[red]✗[/] Unknown actor: {actor_id}")
        sys.exit(EXIT_CODE_FAIL)


def _print_action(result) -> None:
    if result.success:
        console.print(f"[green]✓[/] {result.message}")
        sys.exit(EXIT_CODE_OK)
    console.print(f"[red]✗[/] {result.message}")
    sys.exit(EXIT_CODE_FAIL)


def _internal_error(error: Exception) -> None:
    # store details stay out of user-facing output
    logger.error("store_error", error=str(error))
    console.print("[red]Internal error[/] - see logs for details")
    sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.6f}".rstrip("0").rstrip(".")


if __name__ == "__main__":
    app()
