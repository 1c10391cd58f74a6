import asyncio
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from courtdesk.domain.draft import SelectionState
from courtdesk.domain.errors import AvailabilityFetchError
from courtdesk.domain.slots import Slot
from courtdesk.usecases.availability import AvailabilityResolver, fetch_slots

BOOKING_DATE = date(2025, 3, 10)


class FakeSource:
    def __init__(self, slots: list[Any] | None = None, error: Exception | None = None) -> None:
        self.slots = slots or []
        self.error = error
        self.calls: list[tuple[int, date, int]] = []

    async def get_availability(self, resource_id: int, booking_date: date, duration_minutes: int) -> list[Any]:
        self.calls.append((resource_id, booking_date, duration_minutes))
        if self.error is not None:
            raise self.error
        return self.slots


class GatedSource:
    """Each response carries the call number as its price; gated calls wait for their event."""

    def __init__(self) -> None:
        self.gates: dict[int, asyncio.Event] = {}
        self.calls: list[int] = []

    async def get_availability(self, resource_id: int, booking_date: date, duration_minutes: int) -> list[Any]:
        self.calls.append(resource_id)
        call_no = len(self.calls)
        gate = self.gates.pop(resource_id, None)
        if gate is not None:
            await gate.wait()
        return [{"startTime": f"{8 + resource_id:02d}:00", "price": call_no}]


def _state(resource_id: int | None = 12, duration: int | None = 60) -> SelectionState:
    state = SelectionState()
    if resource_id is not None:
        state.set_field("resource_id", resource_id)
    state.set_field("date", BOOKING_DATE)
    if duration is not None:
        state.set_field("duration", duration)
    return state


@pytest.mark.asyncio
async def test_resolver_normalizes_collaborator_slots() -> None:
    source = FakeSource([{"startTime": "14:00", "price": 100, "available": True}])
    state = _state()

    slots = await AvailabilityResolver(source).refresh(state)

    assert source.calls == [(12, BOOKING_DATE, 60)]
    assert slots == [Slot("14:00:00", "15:00:00")]
    assert slots is not None
    assert slots[0].price == Decimal("100")
    assert slots[0].available is True
    assert state.slots == slots


@pytest.mark.asyncio
async def test_incomplete_triple_issues_no_request() -> None:
    source = FakeSource([{"startTime": "14:00"}])
    state = _state(duration=None)

    slots = await AvailabilityResolver(source).refresh(state)

    assert slots == []
    assert source.calls == []
    assert state.slots == []


@pytest.mark.asyncio
async def test_unusable_slots_are_dropped() -> None:
    source = FakeSource(
        [
            {"startTime": "14:00", "price": 100},
            {"startTime": "nonsense"},
            {"startTime": "15:00", "price": -1},
            {"startTime": "14:00:00", "endTime": "15:00:00", "price": 100},
        ]
    )
    state = _state()
    key = state.availability_key()
    assert key is not None

    slots = await fetch_slots(source, key)

    assert slots == [Slot("14:00:00", "15:00:00")]


@pytest.mark.asyncio
async def test_listing_is_lazy_and_restartable() -> None:
    source = FakeSource(["14:00", "16:00"])
    listing = AvailabilityResolver(source).resolve(12, BOOKING_DATE, 60)
    assert source.calls == []

    first = [slot async for slot in listing]
    second = [slot async for slot in listing]

    assert first == second == [Slot("14:00:00", "15:00:00"), Slot("16:00:00", "17:00:00")]
    assert len(source.calls) == 2


@pytest.mark.asyncio
async def test_listing_for_incomplete_triple_is_empty() -> None:
    source = FakeSource(["14:00"])
    listing = AvailabilityResolver(source).resolve(12, None, 60)
    assert [slot async for slot in listing] == []
    assert source.calls == []


@pytest.mark.asyncio
async def test_response_for_a_changed_triple_is_discarded() -> None:
    source = GatedSource()
    gate = asyncio.Event()
    source.gates[1] = gate
    state = _state(resource_id=1)
    resolver = AvailabilityResolver(source)

    pending = asyncio.create_task(resolver.refresh(state))
    await asyncio.sleep(0)
    state.set_field("resource_id", 2)
    latest = await resolver.refresh(state)
    gate.set()
    stale = await pending

    assert source.calls == [1, 2]
    assert stale is None
    assert latest == [Slot("10:00:00", "11:00:00")]
    assert state.slots == latest


@pytest.mark.asyncio
async def test_older_response_for_the_same_triple_does_not_overwrite_newer() -> None:
    source = GatedSource()
    gate = asyncio.Event()
    source.gates[3] = gate
    state = _state(resource_id=3)
    resolver = AvailabilityResolver(source)

    pending = asyncio.create_task(resolver.refresh(state))
    await asyncio.sleep(0)
    latest = await resolver.refresh(state)
    gate.set()
    stale = await pending

    assert stale is None
    assert latest is not None
    assert latest[0].price == Decimal("2")
    assert state.slots[0].price == Decimal("2")


@pytest.mark.asyncio
async def test_current_fetch_error_is_raised() -> None:
    source = FakeSource(error=AvailabilityFetchError("Failed to load available slots: 500"))
    state = _state()

    with pytest.raises(AvailabilityFetchError):
        await AvailabilityResolver(source).refresh(state)


@pytest.mark.asyncio
async def test_superseded_fetch_error_is_dropped() -> None:
    class FailingThenGood(GatedSource):
        async def get_availability(self, resource_id: int, booking_date: date, duration_minutes: int) -> list[Any]:
            if resource_id == 1:
                self.calls.append(resource_id)
                await gate.wait()
                raise AvailabilityFetchError("late failure")
            return await super().get_availability(resource_id, booking_date, duration_minutes)

    gate = asyncio.Event()
    source = FailingThenGood()
    state = _state(resource_id=1)
    resolver = AvailabilityResolver(source)

    pending = asyncio.create_task(resolver.refresh(state))
    await asyncio.sleep(0)
    state.set_field("resource_id", 2)
    latest = await resolver.refresh(state)
    gate.set()

    assert await pending is None
    assert state.slots == latest
    assert state.availability_error is None


@pytest.mark.asyncio
async def test_non_finite_price_drops_only_that_slot() -> None:
    source = FakeSource([{"startTime": "14:00", "price": float("nan")}, {"startTime": "15:00", "price": 100}])
    state = _state()
    key = state.availability_key()
    assert key is not None

    slots = await fetch_slots(source, key)

    assert slots == [Slot("15:00:00", "16:00:00")]
