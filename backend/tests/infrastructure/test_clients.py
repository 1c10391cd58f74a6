import json
from datetime import date
from typing import Any, Callable

import httpx
import pytest
from courtdesk.config import Settings
from courtdesk.domain.errors import AvailabilityFetchError, ReservationConflictError, UnknownSubmissionError
from courtdesk.infrastructure.clients import (
    HttpAvailabilitySource,
    HttpBookingSink,
    HttpDirectory,
    HttpPaymentLinkSink,
    build_http_client,
)
from courtdesk.models import MatchKind
from courtdesk.schemas import ImmediateBookingRequest, PaymentLinkRequest
from courtdesk.utils.request_id import set_request_id

BASE_URL = "http://booking.test"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)


def _booking_request() -> ImmediateBookingRequest:
    return ImmediateBookingRequest(
        counterparty_id=7,
        resource_id=12,
        booking_date=date(2025, 3, 10),
        start_time="14:00:00",
        duration_minutes=60,
        match_kind=MatchKind.SINGLE,
        send_receipt_email=False,
    )


def _link_request() -> PaymentLinkRequest:
    return PaymentLinkRequest(
        resource_id=12,
        booking_date=date(2025, 3, 10),
        start_time="14:00:00",
        end_time="15:00:00",
        counterparty_phone="+966501234567",
    )


@pytest.mark.asyncio
async def test_build_http_client_sets_base_url_and_token() -> None:
    client = build_http_client(Settings(booking_api_url="https://api.example.com", booking_api_token="tok"))
    try:
        assert client.base_url.host == "api.example.com"
        assert client.headers["Authorization"] == "Bearer tok"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_availability_posts_triple_and_reads_slots() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"slots": [{"startTime": "14:00", "price": 100}]})

    async with _client(handler) as client:
        slots = await HttpAvailabilitySource(client).get_availability(12, date(2025, 3, 10), 60)

    assert seen == {"path": "/courts/availability", "body": {"courtId": 12, "date": "2025-03-10", "durationMinutes": 60}}
    assert slots == [{"startTime": "14:00", "price": 100}]


@pytest.mark.asyncio
async def test_availability_accepts_bare_lists() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["14:00", "15:00"])

    async with _client(handler) as client:
        slots = await HttpAvailabilitySource(client).get_availability(12, date(2025, 3, 10), 60)

    assert slots == ["14:00", "15:00"]


@pytest.mark.asyncio
async def test_availability_errors_become_fetch_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    async with _client(handler) as client:
        with pytest.raises(AvailabilityFetchError) as excinfo:
            await HttpAvailabilitySource(client).get_availability(12, date(2025, 3, 10), 60)

    assert "500" in str(excinfo.value)


@pytest.mark.asyncio
async def test_availability_transport_errors_become_fetch_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(AvailabilityFetchError):
            await HttpAvailabilitySource(client).get_availability(12, date(2025, 3, 10), 60)


@pytest.mark.asyncio
async def test_booking_sends_wire_body_and_request_id() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["request_id"] = request.headers.get("X-Request-ID")
        return httpx.Response(201, json={"bookingId": 900, "message": "created"})

    set_request_id("req-77")
    try:
        async with _client(handler) as client:
            created = await HttpBookingSink(client).create_booking(_booking_request())
    finally:
        set_request_id(None)

    assert created.booking_id == 900
    assert seen["path"] == "/admin/bookings/manual"
    assert seen["body"]["userId"] == 7
    assert seen["body"]["startTime"] == "14:00:00"
    assert seen["request_id"] == "req-77"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,body",
    [
        (409, {"message": "Slot already booked"}),
        (400, {"errorCode": "SLOT_ALREADY_BOOKED", "message": "Slot already booked"}),
        (422, {"errorCode": "COURT_UNAVAILABLE_THIS_DAY", "message": "Court closed"}),
    ],
)
async def test_conflict_responses_map_to_conflict(status_code: int, body: dict[str, Any]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    async with _client(handler) as client:
        with pytest.raises(ReservationConflictError) as excinfo:
            await HttpBookingSink(client).create_booking(_booking_request())

    assert str(excinfo.value) == body["message"]
    assert excinfo.value.code == body.get("errorCode")


@pytest.mark.asyncio
async def test_other_errors_map_to_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    async with _client(handler) as client:
        with pytest.raises(UnknownSubmissionError) as excinfo:
            await HttpPaymentLinkSink(client).create_payment_link(_link_request())

    assert excinfo.value.status_code == 500
    assert str(excinfo.value).startswith("API Error: 500")


@pytest.mark.asyncio
async def test_unreachable_booking_service_is_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(UnknownSubmissionError):
            await HttpBookingSink(client).create_booking(_booking_request())


@pytest.mark.asyncio
async def test_payment_link_descriptor_is_parsed() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={
                "id": 42,
                "courtName": "Court 12",
                "facilityName": "SEED Riyadh",
                "bookingDate": "2025-03-10",
                "startTime": [14, 0],
                "endTime": "15:00",
                "totalAmount": 100,
                "expiresAt": "2025-03-10T12:00:00Z",
                "phoneNumber": "+966501234567",
                "status": "ACTIVE",
            },
        )

    async with _client(handler) as client:
        link = await HttpPaymentLinkSink(client).create_payment_link(_link_request())

    assert seen["path"] == "/api/admin/payment-links"
    assert seen["body"]["phoneNumber"] == "+966501234567"
    assert "existingUserId" not in seen["body"]
    assert link.id == "42"
    assert (link.start_time, link.end_time) == ("14:00:00", "15:00:00")
    assert link.resource_label == "Court 12"
    assert link.counterparty_phone == "+966501234567"


@pytest.mark.asyncio
async def test_directory_reads_paged_and_plain_responses() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/facilities":
            return httpx.Response(200, json=[{"id": 1, "name": "SEED Riyadh"}])
        if request.url.path == "/courts":
            assert request.url.params["facilityId"] == "1"
            return httpx.Response(200, json=[{"id": 12, "name": "Court 12", "facilityId": 1}])
        assert request.url.params["search"] == "sara"
        return httpx.Response(
            200,
            json={"content": [{"id": 7, "fullName": "Sara A", "email": "sara@example.com", "phoneNumber": "+966501234567"}]},
        )

    async with _client(handler) as client:
        directory = HttpDirectory(client)
        venues = await directory.search_venues()
        resources = await directory.search_resources(1)
        people = await directory.search_counterparties("sara")

    assert venues[0].name == "SEED Riyadh"
    assert resources[0].venue_id == 1
    assert people[0].full_name == "Sara A"
    assert people[0].phone == "+966501234567"
