"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityCalculator, compute_available_slots, split_by_period
from .models import (
    Booking,
    BookingStatus,
    BreakPeriod,
    DaySchedule,
    OccupiedInterval,
    PaymentStatus,
    Service,
    TimeRange,
    TimeSlot,
    WeeklySchedule,
)

__all__ = [
    "AvailabilityCalculator",
    "Booking",
    "BookingStatus",
    "BreakPeriod",
    "DaySchedule",
    "OccupiedInterval",
    "PaymentStatus",
    "Service",
    "TimeRange",
    "TimeSlot",
    "WeeklySchedule",
    "compute_available_slots",
    "split_by_period",
]
