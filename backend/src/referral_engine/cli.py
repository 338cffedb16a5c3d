"""Command-line interface for the referral engine."""

from datetime import datetime, timedelta
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from referral_engine.auth.tokens import create_access_token
from referral_engine.logging_config import configure_logging, get_logger
from referral_engine.referral.exceptions import ReferralError
from referral_engine.referral.programs import DEFAULT_PROGRAM_SETTINGS, format_dollars
from referral_engine.referral.service import ReferralService
from referral_engine.storage.db import Database

logger = get_logger(__name__)

app = typer.Typer(
    name="referral-engine",
    help="Referral Engine - codes, programs, rewards and credits",
    no_args_is_help=True,
)

console = Console()

DatabaseOption = Annotated[
    str | None,
    typer.Option("--database", "-d", help="Database URL (defaults to REFERRAL_DATABASE_URL)"),
]


def _service(database_url: str | None) -> ReferralService:
    return ReferralService(Database(database_url))


@app.callback()
def main(
    log_level: Annotated[str | None, typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR")] = None,
    log_format: Annotated[str | None, typer.Option("--log-format", help="console or json")] = None,
) -> None:
    """Referral Engine - codes, programs, rewards and credits"""
    configure_logging(log_level, log_format)


@app.command("init")
def init_database(database: DatabaseOption = None) -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    Database(database).create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("seed-config")
def seed_config(
    enable: Annotated[bool, typer.Option("--enable", help="Enable every program")] = False,
    note: Annotated[str, typer.Option("--note", "-n", help="Change note")] = "Initial configuration",
    database: DatabaseOption = None,
) -> None:
    """Write the default program configuration as the active snapshot."""
    programs = {program: dict(values) for program, values in DEFAULT_PROGRAM_SETTINGS.items()}
    if enable:
        for values in programs.values():
            values["enabled"] = True

    result = _service(database).update_config(programs, change_note=note)
    console.print(
        f"[bold green]✓[/bold green] Configuration [bold]{result['config']['id']}[/bold] is now active"
    )


@app.command("programs")
def list_programs(database: DatabaseOption = None) -> None:
    """Show the programs that are currently enabled."""
    current = _service(database).current_programs()

    if not current["programs"]:
        console.print("[yellow]No referral programs are active[/yellow]")
        return

    table = Table(title="Active Referral Programs")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Description")

    for program in current["programs"]:
        table.add_row(program["type"], program["name"], program["description"])

    console.print(table)


@app.command("referrals")
def list_referrals(
    status: Annotated[str | None, typer.Option("--status", "-s", help="Filter by status")] = None,
    program_type: Annotated[str | None, typer.Option("--program", "-p", help="Filter by program type")] = None,
    since: Annotated[datetime | None, typer.Option("--since", help="Created on or after")] = None,
    until: Annotated[datetime | None, typer.Option("--until", help="Created on or before")] = None,
    database: DatabaseOption = None,
) -> None:
    """List referrals, newest first."""
    referrals = _service(database).list_referrals(
        status=status,
        program_type=program_type,
        start_date=since,
        end_date=until,
    )

    if not referrals:
        console.print("[yellow]No referrals found[/yellow]")
        return

    table = Table(title=f"Referrals ({len(referrals)})")
    table.add_column("ID", style="cyan")
    table.add_column("Referrer")
    table.add_column("Referred")
    table.add_column("Program")
    table.add_column("Status", style="green")
    table.add_column("Progress", justify="right")
    table.add_column("Reward", justify="right")
    table.add_column("Created At")

    for referral in referrals:
        table.add_row(
            str(referral.id),
            f"{referral.referrer.first_name or ''} (#{referral.referrer_id})",
            f"{referral.referred.first_name or ''} (#{referral.referred_id})",
            referral.program_type,
            referral.status,
            f"{referral.cleanings_completed}/{referral.cleanings_required}",
            format_dollars(referral.referrer_reward_amount),
            referral.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command("stats")
def show_stats(
    account_id: Annotated[int, typer.Argument(help="Account ID")],
    database: DatabaseOption = None,
) -> None:
    """Show an account's referral statistics."""
    stats = _service(database).stats(account_id)
    if stats is None:
        console.print(f"[bold red]✗[/bold red] Account {account_id} not found")
        raise typer.Exit(1)

    console.print(f"[bold]Referral stats for account {account_id}[/bold]")
    console.print(f"  Code: {stats.referral_code or '-'}")
    console.print(f"  Available credits: {format_dollars(stats.available_credits)}")
    console.print(f"  Total referrals: {stats.total_referrals}")
    console.print(f"  Pending: {stats.pending}")
    console.print(f"  Qualified: {stats.qualified}")
    console.print(f"  Rewarded: {stats.rewarded}")
    console.print(f"  Total earned: {format_dollars(stats.total_earned)}")


@app.command("complete")
def complete_appointment(
    appointment_id: Annotated[int, typer.Argument(help="Completed appointment ID")],
    account_id: Annotated[int, typer.Argument(help="Account that booked the appointment")],
    database: DatabaseOption = None,
) -> None:
    """Record a completed appointment against the account's pending referral."""
    referral = _service(database).process_completion(appointment_id, account_id)
    if referral is None:
        console.print(f"[yellow]Account {account_id} has no pending referral[/yellow]")
        return

    console.print(
        f"[bold green]✓[/bold green] Referral {referral.id}: "
        f"{referral.cleanings_completed}/{referral.cleanings_required} completed, "
        f"status [bold]{referral.status}[/bold]"
    )


@app.command("set-status")
def set_status(
    referral_id: Annotated[int, typer.Argument(help="Referral ID")],
    status: Annotated[str, typer.Argument(help="New status")],
    database: DatabaseOption = None,
) -> None:
    """Override a referral's status."""
    try:
        referral = _service(database).update_status(referral_id, status)
    except ReferralError as e:
        console.print(f"[bold red]✗[/bold red] {e.message} ({e.error_code})")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Referral {referral.id} is now [bold]{referral.status}[/bold]")


@app.command("credits")
def show_credits(
    account_id: Annotated[int, typer.Argument(help="Account ID")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Number of entries")] = 20,
    database: DatabaseOption = None,
) -> None:
    """Show an account's credit balance and recent ledger entries."""
    service = _service(database)
    if service.get_account(account_id) is None:
        console.print(f"[bold red]✗[/bold red] Account {account_id} not found")
        raise typer.Exit(1)

    console.print(f"Available credits: [bold]{format_dollars(service.available_credits(account_id))}[/bold]")

    entries = service.credit_history(account_id, limit)
    if not entries:
        console.print("[yellow]No credit activity yet[/yellow]")
        return

    table = Table(title=f"Credit ledger for account {account_id}")
    table.add_column("When")
    table.add_column("Operation", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Balance", justify="right")

    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            entry.operation,
            format_dollars(entry.amount),
            format_dollars(entry.balance_after),
        )

    console.print(table)


@app.command("token")
def issue_token(
    account_id: Annotated[int, typer.Argument(help="Account ID")],
    hours: Annotated[int, typer.Option("--hours", help="Token lifetime in hours")] = 2,
    database: DatabaseOption = None,
) -> None:
    """Print a bearer token for an account (local testing)."""
    if _service(database).get_account(account_id) is None:
        console.print(f"[bold red]✗[/bold red] Account {account_id} not found")
        raise typer.Exit(1)

    typer.echo(create_access_token(account_id, timedelta(hours=hours)))


if __name__ == "__main__":
    app()
