"""
Tests for domain models.
"""

from datetime import date, time
from decimal import Decimal

import pendulum
import pytest

from salonslots.domain.exceptions import InvalidArgument
from salonslots.domain.models import (
    Booking,
    BookingStatus,
    BreakPeriod,
    DaySchedule,
    PaymentStatus,
    Service,
    TimeRange,
    TimeSlot,
    WeeklySchedule,
    parse_date,
    parse_time,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-11-25 09:00", tz="Europe/Bucharest")
        end = pendulum.parse("2024-11-25 17:00", tz="Europe/Bucharest")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises InvalidArgument."""
        start = pendulum.parse("2024-11-25 17:00", tz="Europe/Bucharest")
        end = pendulum.parse("2024-11-25 09:00", tz="Europe/Bucharest")

        with pytest.raises(InvalidArgument, match="Start time .* must be before end time"):
            TimeRange(start=start, end=end)

    def test_overlaps_is_half_open(self):
        """Ranges that only touch at a boundary do not overlap."""
        start = pendulum.parse("2024-11-25 13:00", tz="Europe/Bucharest")
        tr1 = TimeRange.starting_at(start, 60)
        tr2 = TimeRange.starting_at(start.add(minutes=60), 60)
        tr3 = TimeRange.starting_at(start.add(minutes=30), 60)

        assert not tr1.overlaps(tr2)
        assert not tr2.overlaps(tr1)
        assert tr1.overlaps(tr3)
        assert tr3.overlaps(tr2)


class TestParsing:
    """Tests for time and date coercion."""

    def test_parse_time_accepts_strings_with_seconds(self):
        assert parse_time("14:00") == time(14, 0)
        assert parse_time("14:30:00") == time(14, 30)

    def test_parse_time_rejects_garbage(self):
        with pytest.raises(InvalidArgument):
            parse_time("half past two")

    def test_parse_date_variants(self):
        assert parse_date("2024-11-25") == date(2024, 11, 25)
        assert parse_date(pendulum.datetime(2024, 11, 25, 10, 0)) == date(2024, 11, 25)

    @pytest.mark.parametrize("value", ["2024-02-30", "25.11.2024", "", None, 20241125])
    def test_parse_date_rejects_invalid_dates(self, value):
        with pytest.raises(InvalidArgument):
            parse_date(value)


class TestDaySchedule:
    """Tests for DaySchedule validation."""

    def test_open_must_precede_close(self):
        with pytest.raises(InvalidArgument, match="Opening time"):
            DaySchedule(open=time(18, 0), close=time(9, 0))

    def test_closed_day_skips_validation(self):
        day = DaySchedule.from_dict({"open": "00:00", "close": "00:00", "closed": True, "breaks": []})

        assert day.closed
        assert day.working_range(date(2024, 11, 24)) is None
        assert day.break_ranges(date(2024, 11, 24)) == []

    def test_break_outside_opening_hours(self):
        with pytest.raises(InvalidArgument, match="outside opening hours"):
            DaySchedule(
                open=time(9, 0),
                close=time(18, 0),
                breaks=(BreakPeriod(time(17, 30), time(18, 30)),),
            )

    def test_overlapping_breaks(self):
        with pytest.raises(InvalidArgument, match="overlap"):
            DaySchedule(
                open=time(9, 0),
                close=time(18, 0),
                breaks=(
                    BreakPeriod(time(13, 0), time(14, 0)),
                    BreakPeriod(time(12, 0), time(13, 30)),
                ),
            )

    def test_breaks_are_sorted(self):
        day = DaySchedule(
            open=time(9, 0),
            close=time(18, 0),
            breaks=(BreakPeriod(time(15, 0), time(15, 15)), BreakPeriod(time(12, 0), time(13, 0))),
        )

        assert [b.start for b in day.breaks] == [time(12, 0), time(15, 0)]

    def test_working_range_for_day(self):
        day = DaySchedule(open=time(9, 30), close=time(17, 0))

        work_range = day.working_range(date(2024, 11, 25))

        assert work_range is not None
        assert work_range.start.hour == 9
        assert work_range.start.minute == 30
        assert work_range.end.hour == 17
        assert work_range.duration_minutes() == 450


class TestWeeklySchedule:
    """Tests for WeeklySchedule lookup."""

    def test_missing_days_are_closed(self):
        schedule = WeeklySchedule.from_dict({
            "monday": {"open": "09:00", "close": "18:00", "closed": False, "breaks": []},
        })

        assert not schedule.for_date(date(2024, 11, 25)).closed  # Monday
        assert schedule.for_date(date(2024, 11, 26)).closed  # Tuesday
        assert len(schedule.days) == 7

    def test_unknown_weekday_rejected(self):
        with pytest.raises(InvalidArgument, match="Unknown weekday"):
            WeeklySchedule.from_dict({"funday": {"closed": True}})

    def test_round_trip_keeps_breaks(self):
        data = {
            "saturday": {
                "open": "10:00",
                "close": "16:00",
                "closed": False,
                "breaks": [{"start": "12:00", "end": "12:30"}],
            },
        }

        schedule = WeeklySchedule.from_dict(WeeklySchedule.from_dict(data).to_dict())

        saturday = schedule.for_date(date(2024, 11, 23))
        assert saturday.breaks == (BreakPeriod(time(12, 0), time(12, 30)),)


class TestService:
    """Tests for Service validation."""

    def test_price_is_decimal(self):
        service = Service(id="s1", provider_id="p1", name="Cut", price="120.50", duration=60)

        assert service.price == Decimal("120.50")
        assert service.active

    @pytest.mark.parametrize("duration", [0, -30, True])
    def test_duration_must_be_positive(self, duration):
        with pytest.raises(InvalidArgument):
            Service(id="s1", provider_id="p1", name="Cut", price=10, duration=duration)

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidArgument):
            Service(id="s1", provider_id="p1", name="Cut", price=-1, duration=30)


class TestBooking:
    """Tests for Booking parsing."""

    def test_from_dict_with_defaults(self):
        booking = Booking.from_dict({
            "id": "b1",
            "user_id": "u1",
            "provider_id": "p1",
            "service_id": "s1",
            "date": "2024-11-25",
            "time": "14:00:00",
            "total_price": 120,
        })

        assert booking.date == date(2024, 11, 25)
        assert booking.time == time(14, 0)
        assert booking.status is BookingStatus.PENDING
        assert booking.payment_status is PaymentStatus.PENDING
        assert booking.is_active

    def test_cancelled_booking_is_not_active(self):
        booking = Booking(
            id="b1",
            user_id="u1",
            provider_id="p1",
            service_id="s1",
            date=date(2024, 11, 25),
            time=time(14, 0),
            total_price=Decimal("120"),
            status=BookingStatus.CANCELLED,
        )

        assert not booking.is_active
        assert booking.to_dict()["status"] == "cancelled"


def test_time_slot_display():
    assert TimeSlot(time=time(9, 0), available=True).format_display() == "09:00"
    assert TimeSlot(time=time(9, 30), available=False).format_display() == "09:30 (taken)"
