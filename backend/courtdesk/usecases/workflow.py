from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Mapping

from ..domain.draft import AVAILABILITY_INPUTS, BookingDraft, SelectionState
from ..domain.errors import AvailabilityFetchError, ReservationConflictError, ValidationError
from ..domain.repositories import AvailabilitySource, BookingSink, PaymentLinkSink, PreferenceRepository
from ..domain.slots import Slot
from ..domain.time_normalizer import normalize
from ..domain.validation import validate
from ..models import BookingMode, Duration
from ..schemas import ConfirmedReservation, CounterpartyRead, Decision, PaymentLinkResult
from .availability import AvailabilityResolver
from .post_reservation import decide
from .submission import ReservationSubmitter

logger = logging.getLogger(__name__)


class BookingWorkflow:
    """One open booking form: selections, its availability, and its submission."""

    def __init__(
        self,
        availability: AvailabilitySource,
        bookings: BookingSink,
        links: PaymentLinkSink,
        *,
        preferences: PreferenceRepository | None = None,
        operator_id: int | None = None,
        submitter: ReservationSubmitter | None = None,
    ) -> None:
        self.state = SelectionState()
        self.resolver = AvailabilityResolver(availability)
        self.submitter = submitter or ReservationSubmitter(bookings, links)
        self.preferences = preferences
        self.operator_id = operator_id
        self.last_submitted: BookingDraft | None = None
        self.errors: dict[str, str] = validate(self.state.snapshot())

    @property
    def draft(self) -> BookingDraft:
        return self.state.snapshot()

    def _revalidate(self) -> None:
        self.errors = validate(self.state.snapshot())

    async def set_field(self, name: str, value: Any) -> BookingDraft:
        return await self.apply({name: value})

    async def apply(self, changes: Mapping[str, Any]) -> BookingDraft:
        """Apply writes in the given order, fetching availability once at the end."""
        for name, value in changes.items():
            self.state.set_field(name, value)
        if AVAILABILITY_INPUTS.intersection(changes) and self.state.availability_key() is not None:
            await self.refresh_slots()
        self._revalidate()
        return self.state.snapshot()

    async def select_counterparty(self, person: CounterpartyRead) -> BookingDraft:
        self.state.set_field("counterparty_id", person.id)
        if person.email and not self.state.snapshot().receipt_email:
            self.state.set_field("receipt_email", person.email)
        self._revalidate()
        return self.state.snapshot()

    def match_slot(self, raw: Mapping[str, Any] | str) -> Slot:
        """The resolved slot equal to ``raw``, or ``raw`` itself when nothing matches."""
        duration = self.state.snapshot().duration
        try:
            times = normalize(raw, int(duration) if duration is not None else None)
        except ValueError:
            if isinstance(raw, str):
                return Slot(start_time=raw, end_time="", label=raw)
            return Slot(
                start_time=str(raw.get("start_time") or raw.get("startTime") or ""),
                end_time=str(raw.get("end_time") or raw.get("endTime") or ""),
                label=str(raw.get("label") or ""),
            )
        wanted = Slot(times.start_time, times.end_time)
        for slot in self.state.slots:
            if slot == wanted:
                return slot
        return replace(wanted, label=wanted.time_range)

    async def select_slot(self, raw: Mapping[str, Any] | str | None) -> BookingDraft:
        slot = None if raw is None else self.match_slot(raw)
        return await self.set_field("selected_slot", slot)

    async def refresh_slots(self) -> list[Slot]:
        try:
            slots = await self.resolver.refresh(self.state)
        except AvailabilityFetchError as exc:
            logger.warning("failed to load available time slots: %s", exc)
            self.state.clear_availability()
            self.state.availability_error = str(exc) or "Failed to load available time slots"
            return []
        return self.state.slots if slots is None else slots

    async def load_preferences(self, preferences: PreferenceRepository | None = None) -> BookingDraft:
        preferences = preferences or self.preferences
        if preferences is None or self.operator_id is None:
            return self.state.snapshot()
        pref = await preferences.get(self.operator_id)
        if pref is None:
            return self.state.snapshot()
        self.state.reset(
            BookingDraft(
                venue_id=pref.venue_id,
                duration=Duration(pref.duration_minutes) if pref.duration_minutes else None,
                mode=BookingMode(pref.mode),
                send_receipt_email=pref.send_receipt_email,
            )
        )
        self._revalidate()
        return self.state.snapshot()

    async def submit(
        self,
        *,
        now: datetime | None = None,
        preferences: PreferenceRepository | None = None,
    ) -> tuple[ConfirmedReservation | PaymentLinkResult, Decision]:
        draft = self.state.snapshot()
        errors = validate(draft)
        if errors:
            self.errors = errors
            raise ValidationError(errors)

        try:
            result = await self.submitter.submit(draft)
        except ReservationConflictError:
            logger.info("slot %s taken before submission, re-resolving", draft.selected_slot)
            self.state.set_field("selected_slot", None)
            await self.refresh_slots()
            self._revalidate()
            raise

        # the booking exists upstream from here on; only the defaults write may fail
        decision = decide(result, now=now)
        self.last_submitted = draft
        self.state.reset(self._defaults_from(draft) if self.operator_id is not None else None)
        self._revalidate()
        await self.remember(preferences)
        return result, decision

    async def reset(self, preferences: PreferenceRepository | None = None) -> BookingDraft:
        self.state.reset()
        await self.load_preferences(preferences)
        self._revalidate()
        return self.state.snapshot()

    async def remember(self, preferences: PreferenceRepository | None = None) -> bool:
        """Store the last submitted draft's defaults. Returns False when the write failed."""
        preferences = preferences or self.preferences
        draft = self.last_submitted
        if preferences is None or self.operator_id is None or draft is None:
            return False
        try:
            await preferences.save(
                self.operator_id,
                venue_id=draft.venue_id,
                duration_minutes=int(draft.duration) if draft.duration is not None else None,
                mode=draft.mode,
                send_receipt_email=draft.send_receipt_email,
            )
        except Exception:
            logger.exception("failed to store booking defaults for operator %s", self.operator_id)
            return False
        return True

    @staticmethod
    def _defaults_from(draft: BookingDraft) -> BookingDraft:
        return BookingDraft(
            venue_id=draft.venue_id,
            duration=draft.duration,
            mode=draft.mode,
            send_receipt_email=draft.send_receipt_email,
        )
