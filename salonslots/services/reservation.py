"""
Application services for reading availability and reserving slots.

The service coordinates loading schedules, services and bookings through a
store adapter and delegates the availability rules to the domain-level
``AvailabilityCalculator``. The store is injected via a simple protocol so
the in-memory store, the REST store or a test double can be plugged in.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Callable, ContextManager, Dict, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.availability import DEFAULT_GRANULARITY, DEFAULT_TIMEZONE, AvailabilityCalculator
from ..domain.exceptions import InvalidTransition, NotFound, ServiceInactive, SlotConflict
from ..domain.models import (
    Booking,
    BookingStatus,
    OccupiedInterval,
    PaymentStatus,
    Service,
    TimeSlot,
    WeeklySchedule,
    parse_date,
    parse_time,
)

logger = logging.getLogger(__name__)

# Duration assumed for a booking whose service record is gone
FALLBACK_DURATION_MINUTES = 30

BOOKING_TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, frozenset] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


class BookingStoreProtocol(Protocol):
    """Protocol describing the persistence behaviour needed by the service."""

    def get_schedule(self, provider_id: str) -> WeeklySchedule:
        """Return the provider's weekly schedule or raise NotFound."""

    def get_service(self, service_id: str) -> Service:
        """Return a service or raise NotFound."""

    def list_services(self, provider_id: str, active_only: bool = True) -> List[Service]:
        """Return the provider's services."""

    def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        """Return the non-cancelled bookings for one provider and day."""

    def insert_booking(self, booking: Booking) -> Booking:
        """Persist a booking, raising SlotConflict on a duplicate start time."""

    def get_booking(self, booking_id: str) -> Booking:
        """Return a booking or raise NotFound."""

    def update_booking(self, booking_id: str, **fields: Any) -> Booking:
        """Update booking fields and return the stored booking."""

    def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Booking]:
        """Return bookings filtered by user and/or provider."""

    def reservation_lock(self, provider_id: str, day: date) -> ContextManager[None]:
        """Serialize reservations for one provider and day."""


class BookingReservationService:
    """
    Orchestrates availability reads, reservations and booking lifecycle.

    The availability check and the insert of a reservation run inside the
    store's per-(provider, date) lock, and the store rejects a second
    non-cancelled booking at the same start time. Storage failures propagate
    unchanged; nothing is retried here.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        *,
        slot_granularity: int = DEFAULT_GRANULARITY,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], DateTime] | None = None,
    ) -> None:
        self._store = store
        self._slot_granularity = slot_granularity
        self._timezone = timezone
        self._clock = clock or (lambda: pendulum.now(timezone))

    def get_available_slots(self, provider_id: str, service_id: str, day: Any) -> List[TimeSlot]:
        """Compute all candidate slots for a service on a day."""
        day = parse_date(day)
        service = self._load_bookable_service(provider_id, service_id)
        calculator = self._calculator(provider_id)
        bookings = self._store.list_active_bookings(provider_id, day)

        return calculator.compute_available_slots(
            day,
            service.duration,
            self._occupied_intervals(bookings),
            slot_granularity=self._slot_granularity,
            now=self._clock(),
        )

    def reserve_slot(
        self,
        provider_id: str,
        service_id: str,
        user_id: str,
        day: Any,
        start_time: Any,
        *,
        payment_method: str | None = None,
        notes: str | None = None,
    ) -> Booking:
        """
        Reserve a start time for a service.

        Returns:
            The committed booking in ``pending`` status

        Raises:
            NotFound: If the service or provider does not exist
            ServiceInactive: If the service is disabled
            SlotConflict: If the time is not (or no longer) available
        """
        day = parse_date(day)
        clock = parse_time(start_time)
        service = self._load_bookable_service(provider_id, service_id)

        with self._store.reservation_lock(provider_id, day):
            calculator = self._calculator(provider_id)
            bookings = self._store.list_active_bookings(provider_id, day)

            if not calculator.is_slot_available(
                day,
                clock,
                service.duration,
                self._occupied_intervals(bookings),
                now=self._clock(),
            ):
                logger.info(
                    "Slot %s %s for provider %s is not available", day, clock, provider_id
                )
                raise SlotConflict(
                    f"{day.isoformat()} {clock.strftime('%H:%M')} is no longer available. "
                    "Please choose another time."
                )

            booking = self._store.insert_booking(Booking(
                id=str(uuid.uuid4()),
                user_id=user_id,
                provider_id=provider_id,
                service_id=service.id,
                date=day,
                time=clock,
                total_price=service.price,
                payment_method=payment_method,
                notes=notes,
                created_at=self._clock(),
            ))

        logger.info(
            "Reserved %s %s for provider %s (booking %s)",
            day, clock, provider_id, booking.id,
        )
        return booking

    def confirm_booking(self, booking_id: str) -> Booking:
        return self._transition(booking_id, BookingStatus.CONFIRMED)

    def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a booking. The slot becomes free again."""
        return self._transition(booking_id, BookingStatus.CANCELLED)

    def complete_booking(self, booking_id: str) -> Booking:
        """Mark an honoured appointment as completed. It keeps its interval."""
        return self._transition(booking_id, BookingStatus.COMPLETED)

    def mark_paid(self, booking_id: str) -> Booking:
        """Record a successful payment; a pending booking becomes confirmed."""
        booking = self._store.get_booking(booking_id)
        with self._store.reservation_lock(booking.provider_id, booking.date):
            booking = self._store.get_booking(booking_id)
            if not booking.is_active:
                raise InvalidTransition(f"Booking {booking_id} is cancelled and cannot be paid")
            self._check_payment_transition(booking, PaymentStatus.PAID)
            fields: Dict[str, Any] = {"payment_status": PaymentStatus.PAID}
            if booking.status is BookingStatus.PENDING:
                fields["status"] = BookingStatus.CONFIRMED
            updated = self._store.update_booking(booking_id, **fields)

        logger.info("Booking %s paid", booking_id)
        return updated

    def refund_booking(self, booking_id: str) -> Booking:
        booking = self._store.get_booking(booking_id)
        with self._store.reservation_lock(booking.provider_id, booking.date):
            booking = self._store.get_booking(booking_id)
            self._check_payment_transition(booking, PaymentStatus.REFUNDED)
            updated = self._store.update_booking(booking_id, payment_status=PaymentStatus.REFUNDED)

        logger.info("Booking %s refunded", booking_id)
        return updated

    def get_booking(self, booking_id: str) -> Booking:
        return self._store.get_booking(booking_id)

    def get_service(self, service_id: str) -> Service:
        return self._store.get_service(service_id)

    def list_user_bookings(self, user_id: str) -> List[Booking]:
        return self._newest_first(self._store.list_bookings(user_id=user_id))

    def list_provider_bookings(self, provider_id: str) -> List[Booking]:
        return self._newest_first(self._store.list_bookings(provider_id=provider_id))

    def list_active_services(self, provider_id: str) -> List[Service]:
        return self._store.list_services(provider_id, active_only=True)

    def _calculator(self, provider_id: str) -> AvailabilityCalculator:
        schedule = self._store.get_schedule(provider_id)
        return AvailabilityCalculator(schedule=schedule, timezone=self._timezone)

    def _load_bookable_service(self, provider_id: str, service_id: str) -> Service:
        service = self._store.get_service(service_id)
        if service.provider_id != provider_id:
            raise NotFound(f"Service {service_id} is not offered by provider {provider_id}")
        if not service.active:
            raise ServiceInactive(f"Service '{service.name}' is no longer offered.")
        return service

    def _occupied_intervals(self, bookings: List[Booking]) -> List[OccupiedInterval]:
        durations: Dict[str, int] = {}
        intervals: List[OccupiedInterval] = []

        for booking in bookings:
            if not booking.is_active:
                continue
            if booking.service_id not in durations:
                try:
                    durations[booking.service_id] = self._store.get_service(booking.service_id).duration
                except NotFound:
                    logger.debug(
                        "Service %s of booking %s not found, assuming %d minutes",
                        booking.service_id, booking.id, FALLBACK_DURATION_MINUTES,
                    )
                    durations[booking.service_id] = FALLBACK_DURATION_MINUTES
            intervals.append(OccupiedInterval(time=booking.time, duration=durations[booking.service_id]))

        return intervals

    def _transition(self, booking_id: str, target: BookingStatus) -> Booking:
        booking = self._store.get_booking(booking_id)
        with self._store.reservation_lock(booking.provider_id, booking.date):
            booking = self._store.get_booking(booking_id)
            if target not in BOOKING_TRANSITIONS[booking.status]:
                raise InvalidTransition(
                    f"Booking {booking_id} cannot move from {booking.status.value} to {target.value}"
                )
            updated = self._store.update_booking(booking_id, status=target)

        logger.info("Booking %s: %s -> %s", booking_id, booking.status.value, target.value)
        return updated

    @staticmethod
    def _check_payment_transition(booking: Booking, target: PaymentStatus) -> None:
        if target not in PAYMENT_TRANSITIONS[booking.payment_status]:
            raise InvalidTransition(
                f"Payment of booking {booking.id} cannot move from "
                f"{booking.payment_status.value} to {target.value}"
            )

    @staticmethod
    def _newest_first(bookings: List[Booking]) -> List[Booking]:
        return sorted(bookings, key=lambda b: (b.date, b.time), reverse=True)
