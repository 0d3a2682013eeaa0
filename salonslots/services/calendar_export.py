"""
iCalendar export of committed bookings.

Read-only: builds text for calendar applications and never touches the store.
"""

from typing import Iterable, List, Mapping

import pendulum

from ..domain.models import Booking, Service
from .reservation import FALLBACK_DURATION_MINUTES

PRODUCT_ID = "-//salonslots//Calendar//EN"


def _ical_utc(moment: pendulum.DateTime) -> str:
    return moment.in_timezone("UTC").format("YYYYMMDD[T]HHmmss[Z]")


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def export_ical(
    bookings: Iterable[Booking],
    services: Mapping[str, Service],
    timezone: str,
    include_cancelled: bool = False,
) -> str:
    """
    Render bookings as a VCALENDAR document.

    Args:
        bookings: Bookings to export
        services: Services keyed by id, used for names and durations
        timezone: Timezone the booking dates and times are expressed in
        include_cancelled: Also export cancelled bookings

    Returns:
        iCalendar text with CRLF line endings
    """
    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
    ]

    for booking in bookings:
        if not booking.is_active and not include_cancelled:
            continue

        service = services.get(booking.service_id)
        duration = service.duration if service else FALLBACK_DURATION_MINUTES
        name = service.name if service else "Booking"
        start = booking.starts_at(timezone)

        lines.extend([
            "BEGIN:VEVENT",
            f"UID:{booking.id}@salonslots",
            f"DTSTART:{_ical_utc(start)}",
            f"DTEND:{_ical_utc(start.add(minutes=duration))}",
            f"SUMMARY:{_escape(name)}",
            f"DESCRIPTION:{_escape(f'Price: {booking.total_price}')}",
            f"STATUS:{booking.status.value.upper()}",
            "END:VEVENT",
        ])

    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
