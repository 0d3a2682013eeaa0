"""
Core business logic for calculating bookable appointment start times.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). Opening hours, breaks and bookings are compared as local
wall-clock times, so days with a DST change still step evenly. The only
implicit input is the current moment, which is converted into the provider
timezone and can be injected through ``now`` to make results deterministic.
"""

from datetime import date, time
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidArgument
from .models import (
    OccupiedInterval,
    TimeRange,
    TimeSlot,
    WeeklySchedule,
    parse_date,
    parse_time,
    wall_clock,
)

DEFAULT_TIMEZONE = "Europe/Bucharest"
DEFAULT_GRANULARITY = 30
NOON = time(12, 0)


def _require_positive_minutes(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive number of minutes, got {value!r}")
    return value


def _as_interval(item: Any) -> OccupiedInterval:
    """Accept either an ``OccupiedInterval`` or a ``{"time", "duration"}`` mapping."""
    if isinstance(item, OccupiedInterval):
        return item
    if isinstance(item, Mapping):
        try:
            clock, duration = item["time"], int(item["duration"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidArgument(f"Invalid booking entry {item!r}: {exc}") from exc
        return OccupiedInterval(
            time=parse_time(clock),
            duration=_require_positive_minutes("Booking duration", duration),
        )
    raise InvalidArgument(f"Unsupported booking entry: {item!r}")


class AvailabilityCalculator:
    """
    Calculates candidate appointment start times for one provider.

    Algorithm:
    1. Look up the opening hours for the weekday of the requested date
    2. Step through candidate starts from opening time by the granularity,
       keeping only those where the service finishes by closing time
    3. Mark a candidate unavailable if its interval intersects a break or
       an existing booking, or if it starts before the current moment
    4. Return every candidate in chronological order
    """

    def __init__(self, schedule: WeeklySchedule, timezone: str = DEFAULT_TIMEZONE):
        self.schedule = schedule
        self.timezone = timezone

    def compute_available_slots(
        self,
        day: Any,
        service_duration: int,
        existing_bookings: Iterable[Any] = (),
        slot_granularity: int = DEFAULT_GRANULARITY,
        now: DateTime | None = None,
    ) -> List[TimeSlot]:
        """
        Compute every candidate slot for a day, available or not.

        Args:
            day: Calendar date (``date`` or "YYYY-MM-DD")
            service_duration: Length of the requested service in minutes
            existing_bookings: Non-cancelled bookings as ``{time, duration}``
            slot_granularity: Step between candidate start times in minutes
            now: Current moment; defaults to now in the calculator timezone

        Returns:
            List of TimeSlot objects in ascending order

        Raises:
            InvalidArgument: On a non-positive duration or granularity, or an
                invalid date
        """
        day = parse_date(day)
        _require_positive_minutes("Service duration", service_duration)
        _require_positive_minutes("Slot granularity", slot_granularity)

        working = self.schedule.for_date(day).working_range(day)
        if working is None:
            return []

        blocked = self._blocked_ranges(day, existing_bookings)
        current = self._resolve_now(now)

        slots: List[TimeSlot] = []
        start = working.start

        while start.add(minutes=service_duration) <= working.end:
            candidate = TimeRange.starting_at(start, service_duration)
            slots.append(TimeSlot(
                time=time(start.hour, start.minute),
                available=self._is_free(candidate, blocked, current),
            ))
            start = start.add(minutes=slot_granularity)

        return slots

    def is_slot_available(
        self,
        day: Any,
        start_time: Any,
        service_duration: int,
        existing_bookings: Iterable[Any] = (),
        now: DateTime | None = None,
    ) -> bool:
        """
        Check a single candidate start time against the same rules.

        The candidate does not have to lie on the granularity grid but the
        whole service must fit inside the opening hours.
        """
        day = parse_date(day)
        clock = parse_time(start_time)
        _require_positive_minutes("Service duration", service_duration)

        working = self.schedule.for_date(day).working_range(day)
        if working is None:
            return False

        candidate = TimeRange.starting_at(wall_clock(day, clock), service_duration)
        if candidate.start < working.start or candidate.end > working.end:
            return False

        blocked = self._blocked_ranges(day, existing_bookings)
        return self._is_free(candidate, blocked, self._resolve_now(now))

    def available_start_times(
        self,
        day: Any,
        service_duration: int,
        existing_bookings: Iterable[Any] = (),
        slot_granularity: int = DEFAULT_GRANULARITY,
        now: DateTime | None = None,
    ) -> List[str]:
        """Return only the bookable starts, formatted as "HH:mm"."""
        slots = self.compute_available_slots(
            day,
            service_duration,
            existing_bookings,
            slot_granularity=slot_granularity,
            now=now,
        )
        return [slot.label for slot in slots if slot.available]

    def _blocked_ranges(self, day: date, existing_bookings: Iterable[Any]) -> List[TimeRange]:
        blocked = self.schedule.for_date(day).break_ranges(day)
        for item in existing_bookings:
            interval = _as_interval(item)
            blocked.append(TimeRange.starting_at(
                wall_clock(day, interval.time),
                interval.duration,
            ))
        return blocked

    def _resolve_now(self, now: DateTime | None) -> DateTime:
        """Return the current moment as a naive wall-clock value in the calculator timezone."""
        if now is None:
            current = pendulum.now(self.timezone)
        elif isinstance(now, DateTime):
            current = now
        else:
            current = pendulum.instance(now)
        return current.in_timezone(self.timezone).naive()

    @staticmethod
    def _is_free(candidate: TimeRange, blocked: Sequence[TimeRange], now: DateTime) -> bool:
        # Past starts are never bookable
        if candidate.start < now:
            return False
        return not any(candidate.overlaps(other) for other in blocked)


def compute_available_slots(
    schedule: WeeklySchedule,
    day: Any,
    service_duration: int,
    existing_bookings: Iterable[Any] = (),
    slot_granularity: int = DEFAULT_GRANULARITY,
    now: DateTime | None = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> List[TimeSlot]:
    """Functional shortcut for ``AvailabilityCalculator.compute_available_slots``."""
    calculator = AvailabilityCalculator(schedule=schedule, timezone=timezone)
    return calculator.compute_available_slots(
        day,
        service_duration,
        existing_bookings,
        slot_granularity=slot_granularity,
        now=now,
    )


def split_by_period(slots: Iterable[TimeSlot]) -> Tuple[List[TimeSlot], List[TimeSlot]]:
    """Split slots into morning (before noon) and afternoon groups."""
    morning: List[TimeSlot] = []
    afternoon: List[TimeSlot] = []
    for slot in slots:
        (morning if slot.time < NOON else afternoon).append(slot)
    return morning, afternoon
