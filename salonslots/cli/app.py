"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, NoReturn, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .. import __version__
from ..adapters.credentials import CredentialStore
from ..config import AppConfig, load_config
from ..domain.availability import split_by_period
from ..domain.exceptions import BookingError, NotFound, SlotConflict
from ..domain.models import Booking, TimeSlot
from ..services.calendar_export import export_ical
from ..services.reservation import BookingReservationService

app = typer.Typer(
    name="salonslots",
    help="Check appointment availability and reserve slots",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

_state = {"verbose": False}

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


def _setup_logging(config: AppConfig) -> None:
    level = logging.DEBUG if _state["verbose"] else config.log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _open(config_file: Optional[Path]) -> tuple[AppConfig, BookingReservationService]:
    """Load config, set up logging and wire the store into the service."""
    config = load_config(config_file)
    _setup_logging(config)
    service = BookingReservationService(
        config.build_store(),
        slot_granularity=config.booking.slot_granularity,
        timezone=config.timezone,
    )
    return config, service


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


def _slot_table(title: str, slots: List[TimeSlot]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Time", style="bold")
    table.add_column("Status")
    for slot in slots:
        status = "[green]free[/green]" if slot.available else "[dim]taken[/dim]"
        table.add_row(slot.label, status)
    return table


def _booking_table(title: str, bookings: List[Booking]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Provider")
    table.add_column("Service")
    table.add_column("Price", justify="right")
    table.add_column("Status", style="bold yellow")
    table.add_column("Payment")
    for booking in bookings:
        table.add_row(
            booking.id,
            booking.date.isoformat(),
            booking.time.strftime("%H:%M"),
            booking.provider_id,
            booking.service_id,
            str(booking.total_price),
            booking.status.value,
            booking.payment_status.value,
        )
    return table


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    _state["verbose"] = verbose


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider ID")],
    service: Annotated[str, typer.Argument(help="Service ID")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD). Defaults to today")] = None,
    free_only: Annotated[bool, typer.Option("--free-only", help="Only list bookable start times.")] = False,
    config_file: ConfigOption = None,
):
    """
    Show the candidate start times for a service on one day.

    Examples:

        salonslots slots salon-aurora aurora-cut --date 2026-10-26
        salonslots slots barber-nord nord-cut --free-only
    """
    try:
        config, booking_service = _open(config_file)
        day = day or pendulum.today(config.timezone).format("YYYY-MM-DD")
        result = booking_service.get_available_slots(provider, service, day)
    except BookingError as e:
        _fail(e)

    if free_only:
        result = [slot for slot in result if slot.available]

    if not result:
        console.print(f"[yellow]⚠ No slots on {day}. The provider may be closed that day.[/yellow]")
        return

    morning, afternoon = split_by_period(result)
    console.print()
    if morning:
        console.print(_slot_table(f"{day} · morning", morning))
    if afternoon:
        console.print(_slot_table(f"{day} · afternoon", afternoon))
    console.print()


@app.command()
def book(
    provider: Annotated[str, typer.Argument(help="Provider ID")],
    service: Annotated[str, typer.Argument(help="Service ID")],
    user: Annotated[str, typer.Option("--user", "-u", help="Customer user ID")],
    day: Annotated[str, typer.Option("--date", "-d", help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Option("--time", "-t", help="Start time (HH:mm)")],
    payment_method: Annotated[Optional[str], typer.Option("--payment-method", help="card or crypto")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Note for the provider")] = None,
    config_file: ConfigOption = None,
):
    """
    Reserve a start time. The booking is created in pending status.
    """
    try:
        _, booking_service = _open(config_file)
        booking = booking_service.reserve_slot(
            provider,
            service,
            user,
            day,
            start,
            payment_method=payment_method,
            notes=notes,
        )
    except SlotConflict as e:
        console.print(f"[bold yellow]Slot unavailable:[/bold yellow] {e}")
        raise typer.Exit(2)
    except BookingError as e:
        _fail(e)

    console.print(
        f"[green]✓ Booked {booking.date.isoformat()} {booking.time.strftime('%H:%M')}[/green] "
        f"(booking [bold]{booking.id}[/bold], {booking.total_price}, {booking.status.value})"
    )


@app.command()
def bookings(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="List a customer's bookings")] = None,
    provider: Annotated[Optional[str], typer.Option("--provider", "-p", help="List a provider's bookings")] = None,
    config_file: ConfigOption = None,
):
    """
    List bookings of a customer or a provider, newest first.
    """
    if (user is None) == (provider is None):
        console.print("[red]Error: pass exactly one of --user or --provider.[/red]")
        raise typer.Exit(1)

    try:
        _, booking_service = _open(config_file)
        if user is not None:
            found = booking_service.list_user_bookings(user)
            title = f"Bookings of {user}"
        else:
            found = booking_service.list_provider_bookings(provider)
            title = f"Bookings at {provider}"
    except BookingError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No bookings found.[/yellow]")
        return

    console.print()
    console.print(_booking_table(title, found))
    console.print()


def _change(config_file: Optional[Path], booking_id: str, action: str) -> None:
    try:
        _, booking_service = _open(config_file)
        booking = getattr(booking_service, action)(booking_id)
    except BookingError as e:
        _fail(e)

    console.print(
        f"[green]✓ Booking {booking.id}[/green]: "
        f"status {booking.status.value}, payment {booking.payment_status.value}"
    )


@app.command()
def confirm(booking_id: str, config_file: ConfigOption = None):
    """Confirm a pending booking."""
    _change(config_file, booking_id, "confirm_booking")


@app.command()
def cancel(booking_id: str, config_file: ConfigOption = None):
    """Cancel a booking and free its slot."""
    _change(config_file, booking_id, "cancel_booking")


@app.command()
def complete(booking_id: str, config_file: ConfigOption = None):
    """Mark a confirmed appointment as completed."""
    _change(config_file, booking_id, "complete_booking")


@app.command()
def pay(booking_id: str, config_file: ConfigOption = None):
    """Record a successful payment for a booking."""
    _change(config_file, booking_id, "mark_paid")


@app.command()
def services(
    provider: Annotated[str, typer.Argument(help="Provider ID")],
    config_file: ConfigOption = None,
):
    """
    List the services a provider currently offers.
    """
    try:
        _, booking_service = _open(config_file)
        offered = booking_service.list_active_services(provider)
    except BookingError as e:
        _fail(e)

    if not offered:
        console.print(f"[yellow]{provider} offers no active services.[/yellow]")
        return

    table = Table(title=f"Services at {provider}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Duration", justify="right")
    table.add_column("Price", justify="right")
    for item in offered:
        table.add_row(item.id, item.name, f"{item.duration} min", str(item.price))

    console.print()
    console.print(table)
    console.print()


@app.command()
def export(
    provider: Annotated[str, typer.Argument(help="Provider ID")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write to file instead of stdout")] = None,
    config_file: ConfigOption = None,
):
    """
    Export a provider's bookings as an iCalendar file.
    """
    try:
        config, booking_service = _open(config_file)
        found = booking_service.list_provider_bookings(provider)
        catalogue = {
            item.id: item
            for item in booking_service.list_active_services(provider)
        }
        for booking in found:
            if booking.service_id not in catalogue:
                try:
                    catalogue[booking.service_id] = booking_service.get_service(booking.service_id)
                except NotFound:
                    continue
    except BookingError as e:
        _fail(e)

    content = export_ical(found, catalogue, config.timezone)

    if output is None:
        typer.echo(content, nl=False)
        return

    output.write_text(content, encoding="utf-8")
    console.print(f"[green]✓ Wrote {len(found)} booking(s) to {output}[/green]")


@app.command()
def set_key(
    api_key: Annotated[str, typer.Option(prompt=True, hide_input=True, help="API key for the REST store")],
    config_file: ConfigOption = None,
):
    """
    Store the REST store API key in the system keyring.
    """
    try:
        config = load_config(config_file)
    except BookingError as e:
        _fail(e)

    if not config.store.base_url:
        console.print("[red]Error: store.base_url is not configured.[/red]")
        raise typer.Exit(1)

    credentials = CredentialStore(base_url=config.store.base_url)
    credentials.set_api_key(api_key)
    if credentials.insecure_storage_warning:
        console.print(f"[yellow]⚠ {credentials.insecure_storage_warning}[/yellow]")
    console.print(f"[green]✓ API key stored ({credentials.backend}).[/green]")


@app.command()
def clear_key(config_file: ConfigOption = None):
    """
    Remove the stored REST store API key.
    """
    try:
        config = load_config(config_file)
    except BookingError as e:
        _fail(e)

    CredentialStore(base_url=config.store.base_url).clear()
    console.print("[green]✓ API key removed.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    console.print(f"\n[bold cyan]salonslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
