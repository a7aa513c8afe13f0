#!/usr/bin/env python3
"""Lifeline CLI - operator console for the coordination core.

Usage:
    # Check a donor's cooldown
    lifeline eligibility --last-donated 2024-01-10 --gender female

    # Blood bank stock
    lifeline --backend firestore stock <admin-uid>
    lifeline --backend firestore set-stock <admin-uid> B+ 4

    # Stock-supply path
    lifeline --backend firestore fulfill <request-id> B+ --admin <admin-uid>
    lifeline --backend firestore verify-pickup <request-id> 123456 --admin <admin-uid>
"""

import logging
import sys
from datetime import datetime
from typing import Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.panel import Panel
    from rich.table import Table
except ImportError:
    print("Missing dependencies. Run: pip install click rich")
    sys.exit(1)

from config import settings
from contracts import ALL_BLOOD_GROUPS, RequestStatus
from coordination import CoordinationEngine, CoordinationError
from rules import DeclarationChecklist, donation_eligibility, format_distance, haversine_distance_km
from store import StoreError, get_store, list_stores


console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _engine(ctx: click.Context) -> CoordinationEngine:
    obj = ctx.ensure_object(dict)
    if "engine" not in obj:
        if "store" not in obj:
            obj["store"] = get_store(obj.get("backend"))
        obj["engine"] = CoordinationEngine(obj["store"])
    return obj["engine"]


def _fail(error: Exception) -> None:
    reason = getattr(error, "reason", None) or str(error)
    console.print(f"[red]Error:[/red] {reason}")
    sys.exit(1)


@click.group()
@click.option(
    "--backend", "-b",
    type=click.Choice(["memory", "firestore"]),
    default=None,
    help=f"Document store backend (default: {settings.store_backend})"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose output"
)
@click.pass_context
def cli(ctx: click.Context, backend: Optional[str], verbose: bool):
    """Lifeline: blood donation coordination core."""
    _setup_logging(verbose)
    obj = ctx.ensure_object(dict)
    obj.setdefault("backend", backend)


@cli.command()
def backends():
    """List store backends and whether they are configured."""
    console.print("[bold]Store backends:[/bold]\n")
    for name, available in list_stores().items():
        status = "[green]✓ Ready[/green]" if available else "[red]✗ Not configured[/red]"
        console.print(f"  {name:12} {status}")
    console.print("\n[dim]Configure Firestore via LIFELINE_FIREBASE_CREDENTIALS_PATH / LIFELINE_FIREBASE_PROJECT_ID[/dim]")


@cli.command()
@click.option("--last-donated", "-d", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Date of the last donation (YYYY-MM-DD)")
@click.option("--gender", "-g", default=None, help="Donor gender (female gets a longer cooldown)")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Reference date (default: now)")
def eligibility(last_donated: Optional[datetime], gender: Optional[str], today: Optional[datetime]):
    """Show a donor's cooldown status."""
    result = donation_eligibility(last_donated, gender, now=today)
    if result.eligible:
        console.print("[green]Eligible to donate[/green]")
    else:
        console.print(f"[yellow]Not eligible:[/yellow] {result.message}")
    console.print(f"  [dim]Cooldown:[/dim] {result.cooldown_days} days")
    console.print(f"  [dim]Recovery:[/dim] {result.percentage:.0f}%")
    if result.next_eligible_date:
        console.print(f"  [dim]Next eligible:[/dim] {result.next_eligible_date:%Y-%m-%d}")


@cli.command()
@click.argument("lat1", type=float)
@click.argument("lng1", type=float)
@click.argument("lat2", type=float)
@click.argument("lng2", type=float)
def distance(lat1: float, lng1: float, lat2: float, lng2: float):
    """Great-circle distance between two points."""
    console.print(format_distance(haversine_distance_km(lat1, lng1, lat2, lng2)))


@cli.command()
@click.option("--gender", "-g", default=None, help="Donor gender")
def checklist(gender: Optional[str]):
    """Print the donor self-declaration checklist."""
    for section in DeclarationChecklist.for_gender(gender).sections:
        console.print(f"\n[bold]{section.title}[/bold]")
        for item in section.items:
            console.print(f"  [ ] {item.label} [dim]({item.id})[/dim]")


@cli.command()
@click.option(
    "--status", "-s", "statuses",
    type=click.Choice([s.value for s in RequestStatus]),
    multiple=True,
    help="Filter by status (repeatable, default: pending)"
)
@click.pass_context
def requests(ctx: click.Context, statuses):
    """List requests, newest first."""
    engine = _engine(ctx)
    wanted = [RequestStatus(s) for s in statuses] or [RequestStatus.PENDING]
    try:
        found = engine.requests.with_status(wanted)
    except StoreError as e:
        _fail(e)

    if not found:
        console.print("[dim]No requests.[/dim]")
        return

    table = Table(title="Requests")
    table.add_column("ID")
    table.add_column("Group")
    table.add_column("Urgency")
    table.add_column("Status")
    table.add_column("Requester")
    table.add_column("Donor")
    for request in found:
        table.add_row(
            request.id,
            request.blood_group.value,
            request.urgency.value,
            request.status.value,
            request.patient_name or request.patient_id,
            request.donor_name or "-",
        )
    console.print(table)


@cli.command()
@click.argument("admin_id")
@click.pass_context
def stock(ctx: click.Context, admin_id: str):
    """Show a blood bank's stock."""
    engine = _engine(ctx)
    try:
        levels = engine.users.stock(admin_id)
    except StoreError as e:
        _fail(e)

    table = Table(title=f"Stock of {admin_id}")
    table.add_column("Group")
    table.add_column("Units", justify="right")
    for group in ALL_BLOOD_GROUPS:
        units = levels.get(group, 0)
        style = "red" if units <= 0 else ""
        table.add_row(group, f"[{style}]{units}[/{style}]" if style else str(units))
    console.print(table)


@cli.command("set-stock")
@click.argument("admin_id")
@click.argument("blood_group", type=click.Choice(ALL_BLOOD_GROUPS))
@click.argument("units", type=int)
@click.pass_context
def set_stock(ctx: click.Context, admin_id: str, blood_group: str, units: int):
    """Set on-hand units for one blood group."""
    try:
        _engine(ctx).set_stock_level(admin_id, blood_group, units)
    except (CoordinationError, StoreError) as e:
        _fail(e)
    console.print(f"[green]{blood_group} set to {units}[/green]")


@cli.command()
@click.argument("request_id")
@click.argument("blood_group", type=click.Choice(ALL_BLOOD_GROUPS))
@click.option("--admin", "-a", "admin_id", required=True, help="Admin (blood bank) user id")
@click.pass_context
def fulfill(ctx: click.Context, request_id: str, blood_group: str, admin_id: str):
    """Reserve a unit from stock and issue a pickup code."""
    try:
        code = _engine(ctx).fulfill_request_by_admin(request_id, blood_group, admin_id)
    except (CoordinationError, StoreError) as e:
        _fail(e)

    console.print(Panel.fit(
        f"[bold green]Reserved {blood_group}[/bold green]\n"
        f"Pickup code: [bold]{code}[/bold]",
        border_style="green"
    ))


@cli.command("verify-pickup")
@click.argument("request_id")
@click.argument("code")
@click.option("--admin", "-a", "admin_id", required=True, help="Admin (blood bank) user id")
@click.pass_context
def verify_pickup(ctx: click.Context, request_id: str, code: str, admin_id: str):
    """Hand over a reserved unit after checking the patient's code."""
    try:
        _engine(ctx).verify_pickup_code(request_id, code, admin_id)
    except (CoordinationError, StoreError) as e:
        _fail(e)
    console.print("[green]Handover complete.[/green]")


if __name__ == "__main__":
    cli()
