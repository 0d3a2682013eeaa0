"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .calendar_export import export_ical
from .reservation import BookingReservationService, BookingStoreProtocol

__all__ = ["BookingReservationService", "BookingStoreProtocol", "export_ical"]
