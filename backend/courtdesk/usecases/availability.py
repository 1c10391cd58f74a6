from __future__ import annotations

import logging
from datetime import date
from typing import AsyncIterator

from ..domain.draft import AvailabilityKey, SelectionState
from ..domain.errors import AvailabilityFetchError
from ..domain.repositories import AvailabilitySource
from ..domain.slots import Slot, merge_slots, slot_from_raw
from ..models import Duration

logger = logging.getLogger(__name__)


async def fetch_slots(source: AvailabilitySource, key: AvailabilityKey) -> list[Slot]:
    raw_slots = await source.get_availability(key.resource_id, key.date, int(key.duration))
    slots: list[Slot] = []
    for raw in raw_slots:
        try:
            slots.append(slot_from_raw(raw, int(key.duration)))
        except ValueError as exc:
            logger.warning("dropping unusable slot for resource %s: %s", key.resource_id, exc)
    return merge_slots(slots)


class SlotListing:
    """Slots for one (resource, date, duration) triple.

    Nothing is requested until iteration starts, and every new iteration asks
    the source again. An incomplete triple iterates as empty without a request.
    """

    def __init__(self, source: AvailabilitySource, key: AvailabilityKey | None) -> None:
        self.source = source
        self.key = key

    def __aiter__(self) -> AsyncIterator[Slot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Slot]:
        if self.key is None:
            return
        for slot in await fetch_slots(self.source, self.key):
            yield slot


class AvailabilityResolver:
    def __init__(self, source: AvailabilitySource) -> None:
        self.source = source
        self._issued = 0
        self._applied = 0

    def resolve(
        self,
        resource_id: int | None,
        booking_date: date | None,
        duration_minutes: int | None,
    ) -> SlotListing:
        if resource_id is None or booking_date is None or duration_minutes is None:
            return SlotListing(self.source, None)
        return SlotListing(self.source, AvailabilityKey(resource_id, booking_date, Duration(duration_minutes)))

    def _is_stale(self, state: SelectionState, key: AvailabilityKey, seq: int) -> bool:
        return seq < self._applied or key != state.availability_key()

    async def refresh(self, state: SelectionState) -> list[Slot] | None:
        """Fetch slots for the live triple and store them on ``state``.

        Returns None when the response was superseded while in flight: the
        triple changed, or a later request was applied first. Such responses
        are dropped, errors included.
        """
        self._issued += 1
        seq = self._issued
        key = state.availability_key()
        if key is None:
            state.clear_availability()
            self._applied = seq
            return []

        try:
            slots = [slot async for slot in self.resolve(key.resource_id, key.date, key.duration)]
        except AvailabilityFetchError:
            if self._is_stale(state, key, seq):
                logger.info("ignoring failed availability request superseded for %s", key)
                return None
            raise

        if self._is_stale(state, key, seq):
            logger.info("discarding stale availability for %s", key)
            return None
        state.apply_slots(key, slots)
        self._applied = seq
        return slots
