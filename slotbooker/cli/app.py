"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..adapters.json_store import JsonFileStore
from ..adapters.notifiers import ConsoleNotifier, WebhookNotifier
from ..config import AppConfig
from ..domain.exceptions import BookingError
from ..domain.models import (
    UNSET,
    Appointment,
    AppointmentBuckets,
    AppointmentPatch,
    AppointmentStatus,
    Identity,
    Role,
)
from ..services.appointment_queries import AppointmentQueryService
from ..services.booking_engine import BookingEngine

app = typer.Typer(
    name="slotbooker",
    help="Book, reschedule and cancel appointments without double-booking providers",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./slotbooker.yaml")]
UserOption = Annotated[str, typer.Option("--user", "-u", help="Id of the calling user")]
RoleOption = Annotated[Role, typer.Option("--role", "-r", help="Role of the calling user")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _build(config_file: Optional[Path]) -> Tuple[AppConfig, JsonFileStore, BookingEngine, AppointmentQueryService]:
    """Wire the JSON store, notifier, engine and query service from config."""
    config = AppConfig.load_or_default(config_file)
    store = JsonFileStore(config.data_file)

    if config.notifications.webhook_url:
        notifier = WebhookNotifier(
            config.notifications.webhook_url,
            timeout=config.notifications.timeout_seconds
        )
    else:
        notifier = ConsoleNotifier(console)

    engine = BookingEngine(
        providers=store,
        requesters=store,
        appointments=store,
        notifier=notifier,
        config=config.booking,
        timezone=config.timezone,
    )
    queries = AppointmentQueryService(
        providers=store,
        requesters=store,
        appointments=store,
        timezone=config.timezone,
        store_timeout_seconds=config.booking.store_timeout_seconds,
    )
    return config, store, engine, queries


def _parse_date(value: str, tz: str):
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Could not parse date {escape(repr(value))} (expected YYYY-MM-DD): {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    if isinstance(error, BookingError):
        console.print(f"[bold red]✗ {escape(f'[{error.code}]')}[/bold red] {escape(error.message)}")
    else:
        console.print(f"[bold red]✗ Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(1)


def _print_appointment(appointment: Appointment, heading: str) -> None:
    console.print(f"\n[bold green]✓ {heading}[/bold green]")
    console.print(f"   Id: [bold]{appointment.id}[/bold]")
    console.print(f"   Provider: {appointment.provider_id}   Requester: {appointment.requester_id}")
    console.print(
        f"   When: {appointment.date.isoformat()} {appointment.time}-{appointment.end_time}"
        f" ({appointment.duration_minutes} min)"
    )
    console.print(f"   Status: {appointment.status.value}")
    if appointment.reason:
        console.print(f"   Reason: {escape(appointment.reason)}")
    if appointment.notes:
        console.print(f"   Notes: {escape(appointment.notes)}")
    console.print()


def _print_buckets(buckets: AppointmentBuckets, title: str) -> None:
    if not len(buckets):
        console.print("[yellow]No appointments found.[/yellow]")
        return

    sections: List[Tuple[str, List[Appointment], str]] = [
        ("Upcoming", buckets.upcoming, "green"),
        ("Completed", buckets.completed, "cyan"),
        ("Cancelled", buckets.cancelled, "dim"),
    ]
    for label, appointments, style in sections:
        if not appointments:
            continue
        table = Table(title=f"{title} - {label}", show_header=True, header_style=f"bold {style}")
        table.add_column("Id", style="dim")
        table.add_column("Date")
        table.add_column("Time")
        table.add_column("Provider")
        table.add_column("Requester")
        table.add_column("Reason")
        for appointment in appointments:
            table.add_row(
                appointment.id,
                appointment.date.isoformat(),
                f"{appointment.time}-{appointment.end_time}",
                appointment.provider_id,
                appointment.requester_id,
                appointment.reason,
            )
        console.print()
        console.print(table)
    console.print()


@app.command()
def book(
    provider_id: Annotated[str, typer.Argument(help="Provider to book with")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help='Time, e.g. "2:30 PM" or "14:30"')],
    user: UserOption,
    reason: Annotated[str, typer.Option("--reason", help="Reason for the appointment")] = "Consultation",
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    config_file: ConfigOption = None,
):
    """
    Book an appointment as a requester.

    Examples:

        slotbooker book dr-lee 2024-11-25 "9:00 AM" --user pat-1 --reason "Checkup"
    """
    try:
        config, _, engine, _ = _build(config_file)
        appointment = asyncio.run(
            engine.create(
                provider_id=provider_id,
                requester_id=user,
                date=_parse_date(date, config.timezone),
                time=time,
                reason=reason,
                duration_minutes=duration,
                now=pendulum.now(config.timezone),
            )
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_appointment(appointment, "Appointment scheduled")


@app.command()
def update(
    appointment_id: Annotated[str, typer.Argument(help="Appointment to change")],
    user: UserOption,
    role: RoleOption = Role.REQUESTER,
    status: Annotated[Optional[AppointmentStatus], typer.Option("--status", help="New status")] = None,
    date: Annotated[Optional[str], typer.Option("--date", help="New date (YYYY-MM-DD)")] = None,
    time: Annotated[Optional[str], typer.Option("--time", help="New time")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Replace the notes")] = None,
    config_file: ConfigOption = None,
):
    """
    Change status, date, time or notes of an appointment.
    """
    try:
        config, _, engine, _ = _build(config_file)
        patch = AppointmentPatch(
            status=UNSET if status is None else status,
            date=UNSET if date is None else _parse_date(date, config.timezone),
            time=UNSET if time is None else time,
            notes=UNSET if notes is None else notes,
        )
        appointment = asyncio.run(
            engine.update(
                appointment_id,
                identity=Identity(user_id=user, role=role),
                patch=patch,
                now=pendulum.now(config.timezone),
            )
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_appointment(appointment, "Appointment updated")


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Appointment to cancel")],
    user: UserOption,
    role: RoleOption = Role.REQUESTER,
    config_file: ConfigOption = None,
):
    """Cancel an appointment and free its slot."""
    try:
        config, _, engine, _ = _build(config_file)
        appointment = asyncio.run(
            engine.cancel(
                appointment_id,
                identity=Identity(user_id=user, role=role),
                now=pendulum.now(config.timezone),
            )
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_appointment(appointment, "Appointment cancelled")


@app.command()
def complete(
    appointment_id: Annotated[str, typer.Argument(help="Appointment to mark as completed")],
    user: UserOption,
    config_file: ConfigOption = None,
):
    """Mark an appointment as completed (providers only)."""
    try:
        config, _, engine, _ = _build(config_file)
        appointment = asyncio.run(
            engine.complete(
                appointment_id,
                identity=Identity(user_id=user, role=Role.PROVIDER),
                now=pendulum.now(config.timezone),
            )
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_appointment(appointment, "Appointment completed")


@app.command("list")
def list_appointments(
    user: UserOption,
    role: RoleOption = Role.REQUESTER,
    config_file: ConfigOption = None,
):
    """List your appointments grouped by status."""
    try:
        _, _, _, queries = _build(config_file)
        buckets = asyncio.run(queries.list_own(Identity(user_id=user, role=role)))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_buckets(buckets, f"Appointments of {user}")


@app.command()
def history(
    requester_id: Annotated[str, typer.Argument(help="Requester whose history to show")],
    user: UserOption,
    all_providers: Annotated[bool, typer.Option("--all", help="Include appointments with other providers")] = False,
    config_file: ConfigOption = None,
):
    """Show a requester's appointments (providers only)."""
    identity = Identity(user_id=user, role=Role.PROVIDER)
    try:
        _, _, _, queries = _build(config_file)
        if all_providers:
            result = asyncio.run(queries.list_requester_appointments(identity, requester_id))
        else:
            result = asyncio.run(queries.list_requester_history(identity, requester_id))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    requester = result.requester
    console.print(f"\n[bold cyan]{requester.name}[/bold cyan] ({requester.email or requester.id})")
    _print_buckets(result.appointments, f"History of {requester.id}")


@app.command()
def availability(
    provider_id: Annotated[str, typer.Argument(help="Provider to inspect")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    min_duration: Annotated[Optional[int], typer.Option("--min-duration", "-d", help="Hide gaps shorter than this")] = None,
    config_file: ConfigOption = None,
):
    """Show free time of a provider on a given date."""
    try:
        config, _, engine, queries = _build(config_file)
        day = _parse_date(date, config.timezone)
        slots = asyncio.run(
            queries.open_slots(
                provider_id,
                day,
                now=pendulum.now(config.timezone),
                min_duration_minutes=min_duration if min_duration is not None else engine.default_duration_minutes,
            )
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print()
    if not slots:
        console.print(f"[yellow]⚠ {provider_id} has no free time on {day.isoformat()}.[/yellow]\n")
        return

    console.print(f"[bold green]✓ {len(slots)} free range(s) on {day.isoformat()}:[/bold green]\n")
    for slot in slots:
        console.print(f"  {slot.start_time} – {slot.end_time} ({slot.duration_minutes()} min)")
    console.print()


@app.command()
def providers(
    config_file: ConfigOption = None,
):
    """List providers with their weekly windows and booked intervals."""
    try:
        _, store, _, _ = _build(config_file)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not store.providers:
        console.print("[yellow]No providers in the data file.[/yellow]")
        return

    table = Table(title="Providers", show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="bold yellow")
    table.add_column("Day")
    table.add_column("Window")
    table.add_column("Booked", style="dim")

    for provider in store.providers.values():
        for window in provider.windows:
            booked = ", ".join(
                f"{interval.start_time}-{interval.end_time}" for interval in window.booked_intervals
            )
            table.add_row(
                f"{provider.name} ({provider.id})",
                window.day_of_week.value.title(),
                f"{window.start_time}-{window.end_time}",
                booked or "-",
            )

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
