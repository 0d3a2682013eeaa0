"""
Booking store backed by a PostgREST (Supabase) HTTP API.
"""

import logging
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Any, ContextManager, Dict, List, Optional

import requests

from ..domain.exceptions import NotFound, SlotConflict, StoreError
from ..domain.models import Booking, Service, WeeklySchedule
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


class RestBookingStore:
    """
    Client for the ``providers``, ``services`` and ``bookings`` tables.

    Double booking across processes is prevented by the database: the
    ``bookings`` table is expected to carry a unique index on
    ``(provider_id, date, time)`` for rows whose status is not
    ``cancelled``. PostgREST answers a violation with HTTP 409, which is
    raised as ``SlotConflict``. Within one process reservations are also
    serialized per (provider_id, date).
    """

    API_PATH = "/rest/v1"

    def __init__(self, base_url: str, api_key: str, timeout: int = 30):
        """
        Initialize the REST store.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            api_key: Service or anon key sent as ``apikey`` and bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/") + self.API_PATH
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._locks = KeyedLocks()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Dict[str, str] | None = None,
        payload: Dict[str, Any] | None = None,
        conflict_message: str | None = None,
    ) -> List[Dict[str, Any]]:
        """
        Send one request and return the decoded rows.

        Raises:
            SlotConflict: On HTTP 409 when ``conflict_message`` is given
            StoreError: On transport failures and other error responses
        """
        url = f"{self.base_url}/{table}"
        headers = dict(self.headers)
        if method in ("POST", "PATCH"):
            headers["Prefer"] = "return=representation"

        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Request to {table} failed: {e}") from e

        if response.status_code == 409 and conflict_message:
            logger.info("Unique constraint rejected write to %s: %s", table, response.text)
            raise SlotConflict(conflict_message)

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise StoreError(f"Request to {table} failed: {e}") from e

        if not response.content:
            return []

        try:
            data = response.json()
        except ValueError as e:
            raise StoreError(f"Invalid response from {table}: {e}") from e

        return data if isinstance(data, list) else [data]

    def _single(self, rows: List[Dict[str, Any]], what: str) -> Dict[str, Any]:
        if not rows:
            raise NotFound(f"{what} not found")
        return rows[0]

    def _parse_rows(self, rows: List[Dict[str, Any]], parser) -> List[Any]:
        try:
            return [parser(row) for row in rows]
        except (KeyError, ValueError) as exc:
            raise StoreError(f"Could not parse row: {exc}") from exc

    def get_schedule(self, provider_id: str) -> WeeklySchedule:
        rows = self._request(
            "GET",
            "providers",
            params={"id": f"eq.{provider_id}", "select": "working_hours"},
        )
        row = self._single(rows, f"Provider {provider_id}")
        return self._parse_rows([row.get("working_hours") or {}], WeeklySchedule.from_dict)[0]

    def get_service(self, service_id: str) -> Service:
        rows = self._request("GET", "services", params={"id": f"eq.{service_id}", "select": "*"})
        row = self._single(rows, f"Service {service_id}")
        return self._parse_rows([row], Service.from_dict)[0]

    def list_services(self, provider_id: str, active_only: bool = True) -> List[Service]:
        params = {"provider_id": f"eq.{provider_id}", "select": "*"}
        if active_only:
            params["active"] = "is.true"
        return self._parse_rows(self._request("GET", "services", params=params), Service.from_dict)

    def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        rows = self._request(
            "GET",
            "bookings",
            params={
                "provider_id": f"eq.{provider_id}",
                "date": f"eq.{day.isoformat()}",
                "status": "neq.cancelled",
                "select": "*",
            },
        )
        return self._parse_rows(rows, Booking.from_dict)

    def insert_booking(self, booking: Booking) -> Booking:
        payload = {key: value for key, value in booking.to_dict().items() if value is not None}
        rows = self._request(
            "POST",
            "bookings",
            payload=payload,
            conflict_message=(
                f"{booking.date.isoformat()} {booking.time.strftime('%H:%M')} "
                "was booked by someone else. Please choose another time."
            ),
        )
        if not rows:
            return booking
        return self._parse_rows(rows, Booking.from_dict)[0]

    def get_booking(self, booking_id: str) -> Booking:
        rows = self._request("GET", "bookings", params={"id": f"eq.{booking_id}", "select": "*"})
        row = self._single(rows, f"Booking {booking_id}")
        return self._parse_rows([row], Booking.from_dict)[0]

    def update_booking(self, booking_id: str, **fields: Any) -> Booking:
        rows = self._request(
            "PATCH",
            "bookings",
            params={"id": f"eq.{booking_id}"},
            payload={key: _to_json(value) for key, value in fields.items()},
        )
        row = self._single(rows, f"Booking {booking_id}")
        return self._parse_rows([row], Booking.from_dict)[0]

    def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Booking]:
        params = {"select": "*", "order": "date.desc"}
        if user_id is not None:
            params["user_id"] = f"eq.{user_id}"
        if provider_id is not None:
            params["provider_id"] = f"eq.{provider_id}"
        return self._parse_rows(self._request("GET", "bookings", params=params), Booking.from_dict)

    def reservation_lock(self, provider_id: str, day: date) -> ContextManager[None]:
        return self._locks.hold(provider_id, day)


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value
