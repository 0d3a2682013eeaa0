"""
In-process booking store, optionally backed by a JSON file.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from filelock import FileLock, Timeout

from ..domain.exceptions import InvalidArgument, NotFound, SlotConflict, StoreError
from ..domain.models import Booking, BookingStatus, PaymentStatus, Service, WeeklySchedule
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

SAMPLE_DATA_FILE = Path(__file__).parent / "sample_marketplace.json"

UPDATABLE_FIELDS = {"status", "payment_status", "payment_method", "notes"}


class InMemoryBookingStore:
    """
    Store that keeps providers, services and bookings in memory.

    Data can be seeded from a JSON file with ``providers``, ``services`` and
    ``bookings`` lists (the shape the sample_marketplace.json file uses).
    With ``persist`` enabled every write is flushed back to that file; a
    write that cannot be flushed is rolled back so no partial booking
    remains.

    The store enforces that at most one non-cancelled booking exists per
    (provider_id, date, time) and hands out per-(provider_id, date) locks.
    When persisting, reservations and writes also hold a lock on the data
    file and re-read it first, so several processes sharing one file see
    each other's bookings.
    """

    def __init__(
        self,
        data_file: Path | None = None,
        persist: bool = False,
        lock_timeout: float = 30,
    ):
        self.data_file = Path(data_file) if data_file is not None else None
        self.persist = persist and data_file is not None
        self.lock_timeout = lock_timeout
        self._mutex = threading.RLock()
        self._locks = KeyedLocks()
        self._file_lock = FileLock(f"{self.data_file}.lock") if self.persist else None
        self._schedules: Dict[str, WeeklySchedule] = {}
        self._services: Dict[str, Service] = {}
        self._bookings: Dict[str, Booking] = {}

        if self.data_file is not None:
            if self.data_file.exists():
                self._reload()
            else:
                logger.warning("Data file %s not found, starting with an empty store", self.data_file)

    @classmethod
    def with_sample_data(cls) -> "InMemoryBookingStore":
        return cls(data_file=SAMPLE_DATA_FILE, persist=False)

    def _read_data(self) -> Tuple[Dict[str, WeeklySchedule], Dict[str, Service], Dict[str, Booking]]:
        """Parse providers, services and bookings from the JSON file."""
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read data file {self.data_file}: {exc}") from exc

        schedules: Dict[str, WeeklySchedule] = {}
        services: Dict[str, Service] = {}
        bookings: Dict[str, Booking] = {}
        try:
            for provider in data.get("providers", []):
                schedules[str(provider["id"])] = WeeklySchedule.from_dict(
                    provider.get("working_hours", {})
                )
            for entry in data.get("services", []):
                service = Service.from_dict(entry)
                services[service.id] = service
            for entry in data.get("bookings", []):
                booking = Booking.from_dict(entry)
                bookings[booking.id] = booking
        except (KeyError, ValueError) as exc:
            raise StoreError(f"Invalid record in data file {self.data_file}: {exc}") from exc

        return schedules, services, bookings

    def _reload(self) -> None:
        self._schedules, self._services, self._bookings = self._read_data()

    def _refresh(self) -> None:
        """Pick up changes other processes wrote to the data file."""
        if self.persist and self.data_file.exists():
            self._reload()

    @contextmanager
    def _shared(self) -> Iterator[None]:
        # Writers replace the file atomically, so reads need no file lock
        with self._mutex:
            self._refresh()
            yield

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """
        Hold the store mutex and, when persisting, the data file lock.

        State is re-read under the file lock so conflict checks and the
        following write see every booking committed by other processes.
        """
        with self._mutex:
            if self._file_lock is None:
                yield
                return

            try:
                self._file_lock.acquire(timeout=self.lock_timeout)
            except Timeout as exc:
                raise StoreError(f"Timed out waiting for the lock on {self.data_file}") from exc
            try:
                self._refresh()
                yield
            finally:
                self._file_lock.release()

    def _save_data(self) -> None:
        if not self.persist:
            return

        data = {
            "providers": [
                {"id": provider_id, "working_hours": schedule.to_dict()}
                for provider_id, schedule in self._schedules.items()
            ],
            "services": [service.to_dict() for service in self._services.values()],
            "bookings": [booking.to_dict() for booking in self._bookings.values()],
        }

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.data_file.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.data_file)
        except OSError as exc:
            raise StoreError(f"Could not write data file {self.data_file}: {exc}") from exc

    def add_provider(self, provider_id: str, schedule: WeeklySchedule) -> None:
        with self._exclusive():
            self._schedules[provider_id] = schedule
            self._save_data()

    def add_service(self, service: Service) -> None:
        with self._exclusive():
            self._services[service.id] = service
            self._save_data()

    def get_schedule(self, provider_id: str) -> WeeklySchedule:
        with self._shared():
            schedule = self._schedules.get(provider_id)
        if schedule is None:
            raise NotFound(f"Provider {provider_id} not found")
        return schedule

    def get_service(self, service_id: str) -> Service:
        with self._shared():
            service = self._services.get(service_id)
        if service is None:
            raise NotFound(f"Service {service_id} not found")
        return service

    def list_services(self, provider_id: str, active_only: bool = True) -> List[Service]:
        with self._shared():
            return [
                service for service in self._services.values()
                if service.provider_id == provider_id and (service.active or not active_only)
            ]

    def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        with self._shared():
            return [
                booking for booking in self._bookings.values()
                if booking.provider_id == provider_id and booking.date == day and booking.is_active
            ]

    def insert_booking(self, booking: Booking) -> Booking:
        with self._exclusive():
            if booking.id in self._bookings:
                raise StoreError(f"Booking {booking.id} already exists")

            for existing in self._bookings.values():
                if (
                    existing.is_active
                    and existing.provider_id == booking.provider_id
                    and existing.date == booking.date
                    and existing.time == booking.time
                ):
                    raise SlotConflict(
                        f"Provider {booking.provider_id} already has a booking at "
                        f"{booking.date.isoformat()} {booking.time.strftime('%H:%M')}"
                    )

            self._bookings[booking.id] = booking
            try:
                self._save_data()
            except StoreError:
                del self._bookings[booking.id]
                raise

            return booking

    def get_booking(self, booking_id: str) -> Booking:
        with self._shared():
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking

    def update_booking(self, booking_id: str, **fields: Any) -> Booking:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidArgument(f"Cannot update booking field(s): {', '.join(sorted(unknown))}")
        if "status" in fields:
            fields["status"] = BookingStatus(fields["status"])
        if "payment_status" in fields:
            fields["payment_status"] = PaymentStatus(fields["payment_status"])

        with self._exclusive():
            previous = self._bookings.get(booking_id)
            if previous is None:
                raise NotFound(f"Booking {booking_id} not found")
            updated = replace(previous, **fields)
            self._bookings[booking_id] = updated
            try:
                self._save_data()
            except StoreError:
                self._bookings[booking_id] = previous
                raise
            return updated

    def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Booking]:
        with self._shared():
            return [
                booking for booking in self._bookings.values()
                if (user_id is None or booking.user_id == user_id)
                and (provider_id is None or booking.provider_id == provider_id)
            ]

    @contextmanager
    def reservation_lock(self, provider_id: str, day: date) -> Iterator[None]:
        with self._locks.hold(provider_id, day):
            if not self.persist:
                yield
                return
            with self._exclusive():
                yield
