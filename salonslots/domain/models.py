"""
Domain models for schedules, services, bookings and derived time slots.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidArgument

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_time(value: Any) -> time:
    """
    Coerce a clock time given as ``time``, datetime or "HH:mm[:ss]" string.

    Raises:
        InvalidArgument: If the value is not a clock time
    """
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip()).replace(second=0, microsecond=0)
        except ValueError as exc:
            raise InvalidArgument(f"Invalid clock time: {value!r}") from exc
    raise InvalidArgument(f"Invalid clock time: {value!r}")


def parse_date(value: Any) -> date:
    """
    Coerce a calendar date given as ``date``, datetime or "YYYY-MM-DD" string.

    Raises:
        InvalidArgument: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return date(value.year, value.month, value.day)
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            parsed = pendulum.from_format(value.strip(), "YYYY-MM-DD")
        except ValueError as exc:
            raise InvalidArgument(f"Invalid calendar date: {value!r}") from exc
        return date(parsed.year, parsed.month, parsed.day)
    raise InvalidArgument(f"Invalid calendar date: {value!r}")


def parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidArgument(f"Invalid price: {value!r}") from exc
    if not price.is_finite() or price < 0:
        raise InvalidArgument(f"Price must be a non-negative amount, got {value!r}")
    return price


def at(day: date, clock: time, timezone: str) -> DateTime:
    """Anchor a clock time on a calendar day in the given timezone."""
    return pendulum.datetime(
        day.year, day.month, day.day, clock.hour, clock.minute, tz=timezone
    )


def wall_clock(day: date, clock: time) -> DateTime:
    """Place a clock time on a calendar day as a naive local wall-clock value."""
    return pendulum.naive(day.year, day.month, day.day, clock.hour, clock.minute)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidArgument(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def starting_at(cls, start: DateTime, minutes: int) -> "TimeRange":
        return cls(start=start, end=start.add(minutes=minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BreakPeriod:
    """A recurring pause inside a working day."""
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidArgument(f"Break start {self.start} must be before break end {self.end}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BreakPeriod":
        return cls(start=parse_time(data["start"]), end=parse_time(data["end"]))

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


@dataclass(frozen=True)
class DaySchedule:
    """
    Opening hours for one weekday.

    When ``closed`` is set the remaining fields carry no meaning and are not
    validated. Otherwise open must precede close and breaks must lie inside
    the opening hours without overlapping each other.
    """
    open: time = time(9, 0)
    close: time = time(17, 0)
    closed: bool = False
    breaks: Tuple[BreakPeriod, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "breaks", tuple(sorted(self.breaks, key=lambda b: b.start)))
        if self.closed:
            return

        if self.open >= self.close:
            raise InvalidArgument(f"Opening time {self.open} must be before closing time {self.close}")

        previous: BreakPeriod | None = None
        for pause in self.breaks:
            if pause.start < self.open or pause.end > self.close:
                raise InvalidArgument(
                    f"Break {pause.start}-{pause.end} lies outside opening hours {self.open}-{self.close}"
                )
            if previous is not None and pause.start < previous.end:
                raise InvalidArgument(
                    f"Breaks {previous.start}-{previous.end} and {pause.start}-{pause.end} overlap"
                )
            previous = pause

    @classmethod
    def closed_day(cls) -> "DaySchedule":
        return cls(closed=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        if data.get("closed", False):
            return cls.closed_day()
        return cls(
            open=parse_time(data["open"]),
            close=parse_time(data["close"]),
            breaks=tuple(BreakPeriod.from_dict(b) for b in data.get("breaks") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open": self.open.strftime("%H:%M"),
            "close": self.close.strftime("%H:%M"),
            "closed": self.closed,
            "breaks": [b.to_dict() for b in self.breaks],
        }

    def working_range(self, day: date) -> TimeRange | None:
        """
        Get the opening hours on a specific day as wall-clock times.
        Returns None if the day is closed.
        """
        if self.closed:
            return None
        return TimeRange(start=wall_clock(day, self.open), end=wall_clock(day, self.close))

    def break_ranges(self, day: date) -> List[TimeRange]:
        if self.closed:
            return []
        return [
            TimeRange(start=wall_clock(day, b.start), end=wall_clock(day, b.end))
            for b in self.breaks
        ]


@dataclass(frozen=True)
class WeeklySchedule:
    """
    A provider's working hours keyed by lowercase weekday name.

    Weekdays absent from the input are treated as closed.
    """
    days: Dict[str, DaySchedule] = field(default_factory=dict)

    def __post_init__(self):
        unknown = [key for key in self.days if key not in WEEKDAYS]
        if unknown:
            raise InvalidArgument(f"Unknown weekday(s) in schedule: {', '.join(sorted(unknown))}")
        complete = {name: self.days.get(name, DaySchedule.closed_day()) for name in WEEKDAYS}
        object.__setattr__(self, "days", complete)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeeklySchedule":
        return cls(days={
            str(name).lower(): DaySchedule.from_dict(day)
            for name, day in (data or {}).items()
        })

    def to_dict(self) -> Dict[str, Any]:
        return {name: self.days[name].to_dict() for name in WEEKDAYS}

    def for_date(self, day: date) -> DaySchedule:
        """Look up the schedule for the weekday of ``day``."""
        return self.days[WEEKDAYS[day.weekday()]]


@dataclass(frozen=True)
class Service:
    """A bookable offering of a provider."""
    id: str
    provider_id: str
    name: str
    price: Decimal
    duration: int  # minutes
    active: bool = True
    description: str = ""
    category: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "price", parse_price(self.price))
        if isinstance(self.duration, bool) or not isinstance(self.duration, int) or self.duration <= 0:
            raise InvalidArgument(f"Service duration must be a positive number of minutes, got {self.duration!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Service":
        return cls(
            id=str(data["id"]),
            provider_id=str(data["provider_id"]),
            name=data["name"],
            price=data["price"],
            duration=int(data["duration"]),
            active=bool(data.get("active", True)),
            description=data.get("description") or "",
            category=data.get("category"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "price": str(self.price),
            "duration": self.duration,
            "active": self.active,
            "description": self.description,
            "category": self.category,
        }


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class Booking:
    """
    A customer's reservation of one service at one start time.

    Every status except ``cancelled`` keeps the interval occupied.
    """
    id: str
    user_id: str
    provider_id: str
    service_id: str
    date: date
    time: time
    total_price: Decimal
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str | None = None  # "card" or "crypto"
    notes: str | None = None
    created_at: DateTime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is not BookingStatus.CANCELLED

    def starts_at(self, timezone: str) -> DateTime:
        return at(self.date, self.time, timezone)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Booking":
        created_at = data.get("created_at")
        return cls(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            provider_id=str(data["provider_id"]),
            service_id=str(data["service_id"]),
            date=parse_date(data["date"]),
            time=parse_time(data["time"]),
            total_price=parse_price(data["total_price"]),
            status=BookingStatus(data.get("status", "pending")),
            payment_status=PaymentStatus(data.get("payment_status", "pending")),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            created_at=pendulum.parse(created_at) if created_at else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "date": self.date.isoformat(),
            "time": self.time.strftime("%H:%M"),
            "total_price": str(self.total_price),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": self.created_at.to_iso8601_string() if self.created_at else None,
        }


@dataclass(frozen=True)
class OccupiedInterval:
    """An existing booking expanded to its start time and service duration."""
    time: time
    duration: int  # minutes


@dataclass(frozen=True)
class TimeSlot:
    """
    A candidate appointment start time. Derived per request, never stored.
    """
    time: time
    available: bool

    @property
    def label(self) -> str:
        return self.time.strftime("%H:%M")

    def format_display(self) -> str:
        return self.label if self.available else f"{self.label} (taken)"
