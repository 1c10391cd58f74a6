from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping, Sequence

import httpx

from ..config import Settings, get_settings
from ..domain.errors import AvailabilityFetchError, ReservationConflictError, UnknownSubmissionError
from ..domain.repositories import AvailabilitySource, BookingSink, Directory, PaymentLinkSink
from ..schemas import (
    CounterpartyRead,
    CreatedBooking,
    ImmediateBookingRequest,
    PaymentLinkDescriptor,
    PaymentLinkRequest,
    ResourceRead,
    VenueRead,
)
from ..utils.request_id import outgoing_headers

logger = logging.getLogger(__name__)

CONFLICT_CODES = frozenset({"SLOT_ALREADY_BOOKED", "COURT_UNAVAILABLE_THIS_DAY"})


def build_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    settings = settings or get_settings()
    headers = {"Content-Type": "application/json"}
    if settings.booking_api_token:
        headers["Authorization"] = f"Bearer {settings.booking_api_token}"
    return httpx.AsyncClient(
        base_url=settings.booking_api_url,
        headers=headers,
        timeout=settings.booking_api_timeout,
    )


def _error_body(response: httpx.Response) -> tuple[str | None, str]:
    """Return (errorCode, message) from a backend error response."""
    try:
        data = response.json()
    except ValueError:
        return None, response.text or response.reason_phrase
    if not isinstance(data, Mapping):
        return None, response.text
    code = data.get("errorCode")
    message = data.get("message") or data.get("error") or response.reason_phrase
    return (str(code) if code else None), str(message)


def _submission_error(response: httpx.Response) -> Exception:
    code, message = _error_body(response)
    if response.status_code == httpx.codes.CONFLICT or code in CONFLICT_CODES:
        return ReservationConflictError(message, code=code)
    return UnknownSubmissionError(
        f"API Error: {response.status_code} {response.reason_phrase} - {message}",
        status_code=response.status_code,
    )


class _HttpCollaborator:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def _post(self, url: str, body: dict[str, Any]) -> httpx.Response:
        return await self.client.post(url, json=body, headers=outgoing_headers())

    async def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        return await self.client.get(url, params=params, headers=outgoing_headers())


class HttpAvailabilitySource(_HttpCollaborator, AvailabilitySource):
    async def get_availability(
        self,
        resource_id: int,
        booking_date: date,
        duration_minutes: int,
    ) -> Sequence[Mapping[str, Any] | str]:
        body = {
            "courtId": resource_id,
            "date": booking_date.isoformat(),
            "durationMinutes": duration_minutes,
        }
        try:
            response = await self._post("/courts/availability", body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise AvailabilityFetchError(
                f"Failed to load available slots: {status_code} {exc.response.reason_phrase}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AvailabilityFetchError(f"Failed to load available slots: {exc}") from exc

        if isinstance(data, list):
            return data
        slots = data.get("slots")
        if slots is None:
            slots = data.get("availableSlots", [])
        logger.debug("availability for court %s on %s: %d slots", resource_id, booking_date, len(slots))
        return slots


class HttpBookingSink(_HttpCollaborator, BookingSink):
    async def create_booking(self, request: ImmediateBookingRequest) -> CreatedBooking:
        try:
            response = await self._post("/admin/bookings/manual", request.to_wire())
        except httpx.HTTPError as exc:
            raise UnknownSubmissionError(f"Booking service unreachable: {exc}") from exc
        if response.is_error:
            raise _submission_error(response)
        return CreatedBooking.model_validate(response.json())


class HttpPaymentLinkSink(_HttpCollaborator, PaymentLinkSink):
    async def create_payment_link(self, request: PaymentLinkRequest) -> PaymentLinkDescriptor:
        try:
            response = await self._post("/api/admin/payment-links", request.to_wire())
        except httpx.HTTPError as exc:
            raise UnknownSubmissionError(f"Payment link service unreachable: {exc}") from exc
        if response.is_error:
            raise _submission_error(response)
        return PaymentLinkDescriptor.model_validate(response.json())


def _content(data: Any) -> list[Any]:
    # paged endpoints wrap results in {"content": [...]}
    if isinstance(data, Mapping):
        return list(data.get("content", []))
    return list(data)


class HttpDirectory(_HttpCollaborator, Directory):
    async def search_venues(self, query: str | None = None) -> list[VenueRead]:
        params = {"search": query} if query else {}
        response = await self._get("/facilities", params)
        response.raise_for_status()
        return [VenueRead.model_validate(item) for item in _content(response.json())]

    async def search_resources(self, venue_id: int, query: str | None = None) -> list[ResourceRead]:
        params: dict[str, Any] = {"facilityId": venue_id}
        if query:
            params["search"] = query
        response = await self._get("/courts", params)
        response.raise_for_status()
        return [ResourceRead.model_validate(item) for item in _content(response.json())]

    async def search_counterparties(self, query: str, page: int = 0, size: int = 20) -> list[CounterpartyRead]:
        response = await self._get("/admin/users", {"search": query, "page": page, "size": size})
        response.raise_for_status()
        return [CounterpartyRead.model_validate(item) for item in _content(response.json())]
