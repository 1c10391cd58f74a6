from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Protocol, Sequence

from ..models import BookingMode, OperatorPreference
from ..schemas import (
    CounterpartyRead,
    CreatedBooking,
    ImmediateBookingRequest,
    PaymentLinkDescriptor,
    PaymentLinkRequest,
    ResourceRead,
    VenueRead,
)


class AvailabilitySource(Protocol):
    async def get_availability(
        self,
        resource_id: int,
        booking_date: date,
        duration_minutes: int,
    ) -> Sequence[Mapping[str, Any] | str]: ...


class BookingSink(Protocol):
    async def create_booking(self, request: ImmediateBookingRequest) -> CreatedBooking: ...


class PaymentLinkSink(Protocol):
    async def create_payment_link(self, request: PaymentLinkRequest) -> PaymentLinkDescriptor: ...


class Directory(Protocol):
    async def search_venues(self, query: str | None = None) -> list[VenueRead]: ...

    async def search_resources(self, venue_id: int, query: str | None = None) -> list[ResourceRead]: ...

    async def search_counterparties(self, query: str, page: int = 0, size: int = 20) -> list[CounterpartyRead]: ...


class PreferenceRepository(Protocol):
    async def get(self, operator_id: int) -> OperatorPreference | None: ...

    async def save(
        self,
        operator_id: int,
        *,
        venue_id: int | None,
        duration_minutes: int | None,
        mode: BookingMode,
        send_receipt_email: bool,
    ) -> OperatorPreference: ...
