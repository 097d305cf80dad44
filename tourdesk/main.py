"""
Operator CLI for the booking desk.

Every command acts as the user given by ``--user-id`` / ``--role`` (or the
TOURDESK_USER_ID / TOURDESK_ROLE environment variables), the identity an
upstream provider would otherwise supply.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .auth import ActingUser, ensure_role
from .cache.manager import close_global_cache_manager
from .database.config import initialize_database
from .errors import TourdeskError
from .models.enums import EMPLOYEE_ROLES, HoldUrgency, UserRole
from .models.requests import SEGMENT_FIELDS
from .services.desk import BookingDesk, create_booking_desk
from .utils.config import get_config

app = typer.Typer(help="Flight selection, hold and ticketing desk")
console = Console()

logger = logging.getLogger(__name__)

URGENCY_STYLES = {
    HoldUrgency.EXPIRED: "bold red",
    HoldUrgency.HIGH: "red",
    HoldUrgency.MEDIUM: "yellow",
    HoldUrgency.LOW: "green",
    HoldUrgency.NONE: "dim",
}


def _execute(ctx: typer.Context, action: Callable[[BookingDesk, ActingUser], Awaitable[Any]]) -> Any:
    """Run one desk operation, turning core errors into a clean exit."""
    state = ctx.obj

    async def run():
        desk = await create_booking_desk(use_cache=state["use_cache"])
        try:
            return await action(desk, state["user"])
        finally:
            await close_global_cache_manager()

    try:
        return asyncio.run(run())
    except TourdeskError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    user_id: Optional[UUID] = typer.Option(
        None, "--user-id", "-u", envvar="TOURDESK_USER_ID", help="Acting user id"
    ),
    role: UserRole = typer.Option(
        UserRole.AGENT, "--role", "-r", envvar="TOURDESK_ROLE", help="Acting user role"
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Read the queue straight from the database"
    ),
):
    """Configure logging and resolve the acting user."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {
        "user": ActingUser(id=user_id, role=role) if user_id is not None else None,
        "use_cache": config.queue_cache_enabled and not no_cache,
    }


@app.command("init-db")
def init_db():
    """Create the database tables."""
    config = get_config()
    db_config = initialize_database(database_url=config.database_url, echo=config.database_echo)
    console.print(f"[green]✓[/green] Tables ready ({db_config.get_connection_info()['database_type']})")


@app.command("derive-groups")
def derive_groups(ctx: typer.Context, leg_id: UUID = typer.Argument(..., help="Leg to derive units for")):
    """Rebuild a leg's booking units from its passenger assignments."""
    result = _execute(ctx, lambda desk, user: desk.grouping.derive_groups(user, leg_id))
    console.print(
        f"[green]✓[/green] {result.individuals_created} individual, "
        f"{result.group_created} group, {result.total_passengers} passengers"
    )


@app.command("select-option")
def select_option(
    ctx: typer.Context,
    booking_unit_id: UUID = typer.Argument(..., help="Choosing booking unit"),
    option_id: UUID = typer.Argument(..., help="Chosen flight option"),
):
    """Record a booking unit's choice of flight option."""
    selections = _execute(ctx, lambda desk, user: desk.selections.select_option(user, booking_unit_id, option_id))
    console.print(f"[green]✓[/green] {len(selections)} selection(s) recorded")


@app.command("place-hold")
def place_hold(
    ctx: typer.Context,
    option_id: UUID = typer.Argument(..., help="Held flight option"),
    passenger_id: UUID = typer.Argument(..., help="Passenger the option is held for"),
    hours: Optional[int] = typer.Option(None, "--hours", "-h", help="Hold duration in hours"),
    leg_id: Optional[UUID] = typer.Option(None, "--leg-id", help="Leg the option must belong to"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Agent notes"),
):
    """Place a time-boxed hold on an option for a passenger."""
    placement = _execute(
        ctx,
        lambda desk, user: desk.holds.place_hold(
            user, option_id, passenger_id, hours=hours, leg_id=leg_id, notes=notes
        ),
    )
    console.print(f"[green]✓[/green] Hold {placement.hold_id} expires at {placement.expires_at:%Y-%m-%d %H:%M}")


@app.command("assign-passengers")
def assign_passengers(
    ctx: typer.Context,
    leg_id: UUID = typer.Argument(..., help="Leg to assign to"),
    passenger_ids: List[UUID] = typer.Argument(..., help="Passengers of the leg's project"),
):
    """Assign passengers to a leg; re-assigned passengers rejoin the group."""
    assignments = _execute(ctx, lambda desk, user: desk.assignments.assign_passengers(user, leg_id, passenger_ids))
    console.print(f"[green]✓[/green] {len(assignments)} passenger(s) assigned to leg {leg_id}")


@app.command("remove-passenger")
def remove_passenger(
    ctx: typer.Context,
    leg_id: UUID = typer.Argument(..., help="Leg to remove from"),
    passenger_id: UUID = typer.Argument(..., help="Assigned passenger"),
):
    """Remove a passenger from a leg."""
    _execute(ctx, lambda desk, user: desk.assignments.remove_passenger(user, leg_id, passenger_id))
    console.print(f"[green]✓[/green] Passenger {passenger_id} removed from leg {leg_id}")


@app.command("set-individual")
def set_individual(
    ctx: typer.Context,
    leg_id: UUID = typer.Argument(..., help="Leg of the assignment"),
    passenger_id: UUID = typer.Argument(..., help="Assigned passenger"),
    individual: bool = typer.Option(
        True, "--individual/--group", help="Book on their own, or as part of the group"
    ),
):
    """Choose whether a passenger gets their own booking unit on the next derivation."""
    assignment = _execute(
        ctx,
        lambda desk, user: desk.assignments.set_treat_as_individual(user, leg_id, passenger_id, individual),
    )
    mode = "individually" if assignment.treat_as_individual else "with the group"
    console.print(f"[green]✓[/green] {assignment.full_name} books {mode}; re-run derive-groups to apply")


@app.command("assignments")
def assignments(ctx: typer.Context, leg_id: UUID = typer.Argument(..., help="Leg to list")):
    """List the passengers assigned to a leg."""
    rows = _execute(ctx, lambda desk, user: desk.assignments.list_assignments(user, leg_id))

    table = Table(title="Leg Passengers", box=box.ROUNDED)
    table.add_column("Passenger", style="cyan")
    table.add_column("Books")
    table.add_column("Passenger id", style="dim")
    for row in rows:
        table.add_row(row.full_name, "individual" if row.treat_as_individual else "group", str(row.passenger_id))
    console.print(table)


def _parse_segment(text: str) -> Dict[str, str]:
    """``"UA 123 AMS PHL 2026-03-10T08:00 2026-03-10T16:00"`` as segment fields."""
    parts = text.split()
    if len(parts) != len(SEGMENT_FIELDS):
        raise typer.BadParameter(
            "expected 'AIRLINE FLIGHT FROM TO DEPARTURE ARRIVAL', "
            f"e.g. 'UA 123 AMS PHL 2026-03-10T08:00 2026-03-10T16:00', got {text!r}"
        )
    return dict(zip(SEGMENT_FIELDS, parts))


@app.command("create-option")
def create_option(
    ctx: typer.Context,
    leg_id: UUID = typer.Argument(..., help="Leg the option is offered for"),
    name: str = typer.Argument(..., help="Display name"),
    segment: List[str] = typer.Option(
        ..., "--segment", "-s", help="'AIRLINE FLIGHT FROM TO DEPARTURE ARRIVAL', repeat in travel order"
    ),
    price: Optional[str] = typer.Option(None, "--price", "-p", help="Total price"),
    currency: Optional[str] = typer.Option(None, "--currency", "-c", help="Currency code"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Notes shown to the client"),
    recommended: bool = typer.Option(False, "--recommended", help="Flag as recommended"),
):
    """Create a flight option from manually entered segments."""
    segments = [_parse_segment(text) for text in segment]
    option = _execute(
        ctx,
        lambda desk, user: desk.options.create_option(
            user,
            leg_id,
            name,
            segments,
            description=description,
            total_price=price,
            currency=currency,
            is_recommended=recommended,
        ),
    )

    console.print(f"[green]✓[/green] Option {option.name} created ({option.id})")
    for component in option.components:
        console.print(f"  {component.component_order}. {component.source_text}")


@app.command("recommend")
def recommend(
    ctx: typer.Context,
    option_id: UUID = typer.Argument(..., help="Flight option"),
    recommended: bool = typer.Option(True, "--on/--off", help="Set or clear the recommendation"),
):
    """Flag or unflag a flight option as recommended."""
    option = _execute(ctx, lambda desk, user: desk.options.set_recommended(user, option_id, recommended))
    state = "recommended" if option.is_recommended else "not recommended"
    console.print(f"[green]✓[/green] Option {option.name} is {state}")


@app.command("delete-option")
def delete_option(
    ctx: typer.Context,
    option_id: UUID = typer.Argument(..., help="Flight option to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Delete a flight option with its segments, holds and selections."""
    if not yes:
        typer.confirm(f"Delete option {option_id} with its holds and selections?", abort=True)
    _execute(ctx, lambda desk, user: desk.options.delete_option(user, option_id))
    console.print(f"[green]✓[/green] Option {option_id} deleted")


@app.command("hold-party")
def hold_party(
    ctx: typer.Context,
    option_id: UUID = typer.Argument(..., help="Held flight option"),
    passenger_ids: List[UUID] = typer.Argument(..., help="Passengers the option is held for"),
    hours: Optional[int] = typer.Option(None, "--hours", "-h", help="Hold duration in hours"),
    leg_id: Optional[UUID] = typer.Option(None, "--leg-id", help="Leg the option must belong to"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Agent notes"),
):
    """Hold one option for several passengers in one step."""
    placements = _execute(
        ctx,
        lambda desk, user: desk.holds.place_holds(
            user, option_id, passenger_ids, hours=hours, leg_id=leg_id, notes=notes
        ),
    )
    console.print(
        f"[green]✓[/green] {len(placements)} hold(s) expire at {placements[0].expires_at:%Y-%m-%d %H:%M}"
    )


@app.command("mark-ticketed")
def mark_ticketed(
    ctx: typer.Context,
    option_id: UUID = typer.Argument(..., help="Ticketed flight option"),
    leg_id: UUID = typer.Argument(..., help="Leg of the option"),
    passenger_id: UUID = typer.Argument(..., help="Ticketed passenger"),
    pnr_code: str = typer.Argument(..., help="Six-character airline reservation code"),
    price_paid: str = typer.Argument(..., help="Price paid"),
    currency: Optional[str] = typer.Option(None, "--currency", "-c", help="Currency code"),
):
    """Record a PNR for a passenger."""
    result = _execute(
        ctx,
        lambda desk, user: desk.ticketing.mark_ticketed(
            user, option_id, leg_id, passenger_id, pnr_code, price_paid, currency=currency
        ),
    )
    console.print(f"[green]✓[/green] PNR {result.pnr_code} recorded ({result.pnr_id})")


def _report_transition(result) -> None:
    console.print(f"[green]✓[/green] Selection {result.selection_id} is now [bold]{result.status.value}[/bold]")


@app.command("mark-held")
def mark_held(ctx: typer.Context, selection_id: UUID = typer.Argument(..., help="Pending selection")):
    """Mark a pending selection as held."""
    _report_transition(_execute(ctx, lambda desk, user: desk.selections.mark_held(user, selection_id)))


@app.command("revert")
def revert(ctx: typer.Context, selection_id: UUID = typer.Argument(..., help="Held or ticketed selection")):
    """Return a held or ticketed selection to pending."""
    _report_transition(_execute(ctx, lambda desk, user: desk.selections.revert_to_pending(user, selection_id)))


@app.command("cancel")
def cancel(ctx: typer.Context, selection_id: UUID = typer.Argument(..., help="Selection to cancel")):
    """Cancel a selection that has not been ticketed."""
    _report_transition(_execute(ctx, lambda desk, user: desk.selections.cancel_selection(user, selection_id)))


@app.command("queue")
def queue(
    ctx: typer.Context,
    artist_id: Optional[UUID] = typer.Option(None, "--artist-id", "-a", help="Only this artist's selections"),
):
    """Show the ranked booking queue."""
    items = _execute(ctx, lambda desk, user: desk.queue.get_queue(user, artist_id=artist_id))

    if not items:
        console.print("[dim]Queue is empty[/dim]")
        return

    table = Table(title="Booking Queue", box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Urgency")
    table.add_column("Hold expires")
    table.add_column("Passenger", style="cyan")
    table.add_column("Route")
    table.add_column("Departs")
    table.add_column("Option")
    table.add_column("Status")
    table.add_column("Selection", style="dim")

    for position, item in enumerate(items, start=1):
        style = URGENCY_STYLES[item.urgency]
        table.add_row(
            str(position),
            f"[{style}]{item.urgency.value}[/{style}]",
            f"{item.hold.expires_at:%Y-%m-%d %H:%M}" if item.hold else "-",
            item.passenger_name + (" [magenta](PNR)[/magenta]" if item.is_ticketed else ""),
            item.leg_label or f"{item.origin_city or '?'} → {item.destination_city or '?'}",
            item.departure_date.isoformat() if item.departure_date else "-",
            item.option_name,
            item.status.value,
            str(item.selection_id),
        )

    console.print(table)


@app.command("stats")
def stats(ctx: typer.Context):
    """Show queue statistics."""
    result = _execute(ctx, lambda desk, user: desk.queue.get_queue_stats(user))

    table = Table(title="Queue Statistics", box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Active selections", str(result.total))
    table.add_row("Pending", str(result.pending))
    table.add_row("Held", str(result.held))
    table.add_row("Ticketed", str(result.ticketed))
    for urgency, count in result.by_urgency.items():
        table.add_row(f"Urgency {urgency.value}", str(count))

    console.print(table)


@app.command("cache-stats")
def cache_stats(ctx: typer.Context):
    """Show queue cache counters and circuit breaker state."""

    async def read_stats(desk: BookingDesk, user: ActingUser) -> Optional[Dict[str, Any]]:
        ensure_role(user, EMPLOYEE_ROLES)
        if desk.cache_manager is None:
            return None
        return await desk.cache_manager.get_stats()

    result = _execute(ctx, read_stats)
    if result is None:
        console.print("[dim]Queue cache is disabled[/dim]")
        return

    table = Table(title="Queue Cache", box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in result.items():
        if isinstance(value, dict):
            continue
        table.add_row(name.replace("_", " ").capitalize(), str(value))

    connection = result.get("connection_info")
    if connection:
        table.add_row("Server", str(connection.get("server", "-")))
    else:
        table.add_row("Server", "[yellow]in-process fallback[/yellow]")

    console.print(table)


if __name__ == "__main__":
    app()
