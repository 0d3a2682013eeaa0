"""
Tests for the availability calculator.
"""

from datetime import date, time

import pendulum
import pytest

from salonslots.domain.availability import (
    AvailabilityCalculator,
    compute_available_slots,
    split_by_period,
)
from salonslots.domain.exceptions import InvalidArgument
from salonslots.domain.models import OccupiedInterval, WeeklySchedule

TZ = "Europe/Bucharest"
MONDAY = date(2024, 11, 25)
SUNDAY = date(2024, 11, 24)
BEFORE_MONDAY = pendulum.datetime(2024, 11, 20, 8, 0, tz=TZ)


def _schedule() -> WeeklySchedule:
    return WeeklySchedule.from_dict({
        "monday": {
            "open": "09:00",
            "close": "18:00",
            "closed": False,
            "breaks": [{"start": "12:00", "end": "13:00"}],
        },
        "sunday": {"open": "00:00", "close": "00:00", "closed": True, "breaks": []},
    })


def _labels(slots, available=True):
    return [slot.label for slot in slots if slot.available is available]


class TestAvailabilityCalculator:
    """Tests for AvailabilityCalculator."""

    def test_break_and_booking_exclusion(self):
        """Monday 09-18, lunch 12-13, one 60 min booking at 14:00."""
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        slots = calculator.compute_available_slots(
            MONDAY,
            60,
            [OccupiedInterval(time=time(14, 0), duration=60)],
            slot_granularity=30,
            now=BEFORE_MONDAY,
        )

        assert _labels(slots) == [
            "09:00", "09:30", "10:00", "10:30", "11:00",
            "13:00",
            "15:00", "15:30", "16:00", "16:30", "17:00",
        ]
        assert _labels(slots, available=False) == [
            "11:30", "12:00", "12:30", "13:30", "14:00", "14:30",
        ]

    def test_slots_are_chronological_and_fit_before_close(self):
        """No candidate runs past closing time, even if it starts before it."""
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        slots = calculator.compute_available_slots(MONDAY, 90, now=BEFORE_MONDAY)

        times = [slot.time for slot in slots]
        assert times == sorted(times)
        assert times[0] == time(9, 0)
        assert times[-1] == time(16, 30)

    def test_closed_day_returns_empty(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        assert calculator.compute_available_slots(SUNDAY, 30, now=BEFORE_MONDAY) == []

    def test_day_missing_from_schedule_is_closed(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        assert calculator.compute_available_slots("2024-11-26", 30, now=BEFORE_MONDAY) == []

    def test_past_slots_today_are_unavailable(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)
        now = pendulum.datetime(2024, 11, 25, 10, 15, tz=TZ)

        slots = calculator.compute_available_slots(MONDAY, 30, now=now)

        assert not any(s.available and s.time < time(10, 15) for s in slots)
        assert _labels(slots)[0] == "10:30"

    def test_past_day_has_no_available_slots(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)
        now = pendulum.datetime(2024, 11, 26, 8, 0, tz=TZ)

        slots = calculator.compute_available_slots(MONDAY, 30, now=now)

        assert slots
        assert _labels(slots) == []

    def test_bookings_as_mappings(self):
        """Existing bookings may be given as plain {time, duration} mappings."""
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        slots = calculator.compute_available_slots(
            MONDAY,
            30,
            [{"time": "09:00", "duration": 45}],
            now=BEFORE_MONDAY,
        )

        assert _labels(slots, available=False)[:2] == ["09:00", "09:30"]
        assert _labels(slots)[0] == "10:00"

    def test_finer_granularity(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        slots = calculator.compute_available_slots(MONDAY, 60, slot_granularity=15, now=BEFORE_MONDAY)

        assert _labels(slots)[:5] == ["09:00", "09:15", "09:30", "09:45", "10:00"]
        assert "11:15" not in _labels(slots)  # would run into the break

    def test_identical_inputs_give_identical_output(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)
        bookings = [OccupiedInterval(time=time(10, 0), duration=30)]

        first = calculator.compute_available_slots(MONDAY, 45, bookings, now=BEFORE_MONDAY)
        second = calculator.compute_available_slots(MONDAY, 45, bookings, now=BEFORE_MONDAY)

        assert first == second

    @pytest.mark.parametrize("duration,granularity", [(0, 30), (-15, 30), (30, 0), (30, -5)])
    def test_non_positive_minutes_rejected(self, duration, granularity):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        with pytest.raises(InvalidArgument):
            calculator.compute_available_slots(
                MONDAY, duration, slot_granularity=granularity, now=BEFORE_MONDAY
            )

    def test_invalid_date_rejected(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        with pytest.raises(InvalidArgument):
            calculator.compute_available_slots("2024-13-01", 30, now=BEFORE_MONDAY)

    @pytest.mark.parametrize("entry", [
        {"time": "10:00", "duration": "abc"},
        {"time": "10:00", "duration": None},
        {"duration": 30},
    ])
    def test_malformed_booking_mapping_rejected(self, entry):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        with pytest.raises(InvalidArgument):
            calculator.compute_available_slots(MONDAY, 30, [entry], now=BEFORE_MONDAY)


class TestDaylightSavingDays:
    """Slots on days where the provider timezone changes its UTC offset."""

    def _night_schedule(self) -> WeeklySchedule:
        return WeeklySchedule.from_dict({"sunday": {"open": "00:00", "close": "06:00"}})

    @pytest.mark.parametrize("day", [date(2030, 10, 27), date(2030, 3, 31)])
    def test_steps_evenly_on_the_wall_clock(self, day):
        calculator = AvailabilityCalculator(schedule=self._night_schedule(), timezone=TZ)

        slots = calculator.compute_available_slots(
            day, 30, now=pendulum.datetime(2030, 1, 1, 8, 0, tz=TZ)
        )

        assert len(slots) == 12
        assert _labels(slots)[0] == "00:00"
        assert _labels(slots)[-1] == "05:30"
        assert len(set(_labels(slots))) == 12

    def test_now_is_read_on_the_local_clock(self):
        calculator = AvailabilityCalculator(schedule=self._night_schedule(), timezone=TZ)
        now = pendulum.datetime(2030, 10, 27, 1, 15, tz="UTC")  # 03:15 local, after the change

        slots = calculator.compute_available_slots(date(2030, 10, 27), 30, now=now)

        assert _labels(slots)[0] == "03:30"


class TestSingleSlotCheck:
    """Tests for is_slot_available."""

    def test_off_grid_start_inside_hours(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        assert calculator.is_slot_available(MONDAY, "09:10", 30, now=BEFORE_MONDAY)

    def test_start_before_opening_or_past_closing(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        assert not calculator.is_slot_available(MONDAY, "08:30", 60, now=BEFORE_MONDAY)
        assert not calculator.is_slot_available(MONDAY, "17:30", 60, now=BEFORE_MONDAY)
        assert calculator.is_slot_available(MONDAY, "17:00", 60, now=BEFORE_MONDAY)

    def test_break_and_booking_block(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)
        bookings = [OccupiedInterval(time=time(15, 0), duration=60)]

        assert not calculator.is_slot_available(MONDAY, "11:30", 60, bookings, now=BEFORE_MONDAY)
        assert not calculator.is_slot_available(MONDAY, "15:30", 30, bookings, now=BEFORE_MONDAY)
        assert calculator.is_slot_available(MONDAY, "16:00", 30, bookings, now=BEFORE_MONDAY)

    def test_closed_day(self):
        calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

        assert not calculator.is_slot_available(SUNDAY, "10:00", 30, now=BEFORE_MONDAY)


def test_functional_shortcut_matches_calculator():
    slots = compute_available_slots(_schedule(), "2024-11-25", 60, now=BEFORE_MONDAY, timezone=TZ)

    assert _labels(slots)[0] == "09:00"
    assert len(slots) == 17


def test_available_start_times_and_periods():
    calculator = AvailabilityCalculator(schedule=_schedule(), timezone=TZ)

    starts = calculator.available_start_times(MONDAY, 60, now=BEFORE_MONDAY)
    morning, afternoon = split_by_period(
        calculator.compute_available_slots(MONDAY, 60, now=BEFORE_MONDAY)
    )

    assert starts[0] == "09:00"
    assert "12:00" not in starts
    assert all(slot.time < time(12, 0) for slot in morning)
    assert all(slot.time >= time(12, 0) for slot in afternoon)
    assert len(morning) + len(afternoon) == 17
