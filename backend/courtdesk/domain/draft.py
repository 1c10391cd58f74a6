from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping

from ..models import BookingMode, Duration, MatchKind, PaymentMethod
from .errors import InvalidFieldError
from .slots import Slot


@dataclass(frozen=True)
class AvailabilityKey:
    resource_id: int
    date: date
    duration: Duration


@dataclass(frozen=True)
class BookingDraft:
    counterparty_id: int | None = None
    counterparty_phone: str | None = None
    venue_id: int | None = None
    resource_id: int | None = None
    duration: Duration | None = None
    date: date | None = None
    match_kind: MatchKind | None = None
    selected_slot: Slot | None = None
    notes: str = ""
    mode: BookingMode = BookingMode.IMMEDIATE
    payment_method: PaymentMethod | None = None
    send_receipt_email: bool = True
    receipt_email: str = ""
    recording_enabled: bool = False


FIELD_NAMES = frozenset(f.name for f in fields(BookingDraft))

# field -> downstream fields nulled when it is written
CASCADE: Mapping[str, tuple[str, ...]] = {
    "venue_id": ("resource_id", "selected_slot"),
    "resource_id": ("selected_slot",),
    "date": ("selected_slot",),
    "duration": ("selected_slot",),
}

# writes that invalidate the availability cache
AVAILABILITY_INPUTS = frozenset({"venue_id", "resource_id", "date", "duration"})


def _optional(convert: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def wrapper(value: Any) -> Any:
        if value is None or value == "":
            return None
        return convert(value)

    return wrapper


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _to_phone(value: Any) -> str | None:
    text = _to_text(value)
    return text or None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


_COERCE: Mapping[str, Callable[[Any], Any]] = {
    "counterparty_id": _optional(int),
    "counterparty_phone": _to_phone,
    "venue_id": _optional(int),
    "resource_id": _optional(int),
    "duration": _optional(lambda v: Duration(int(v))),
    "date": _optional(_to_date),
    "match_kind": _optional(MatchKind),
    "notes": _to_text,
    "mode": lambda v: BookingMode(v),
    "payment_method": _optional(PaymentMethod),
    "send_receipt_email": _to_bool,
    "receipt_email": _to_text,
    "recording_enabled": _to_bool,
}


class SelectionState:
    """The mutable booking form behind one draft.

    Every write goes through ``set_field``, which applies the write and then the
    cascade for that field in one step. The availability cache lives here so
    that the cascade and the cache can never disagree.
    """

    def __init__(self, draft: BookingDraft | None = None) -> None:
        self._draft = draft or BookingDraft()
        self.slots: list[Slot] = []
        self.availability_error: str | None = None

    def set_field(self, name: str, value: Any) -> BookingDraft:
        if name not in FIELD_NAMES:
            raise InvalidFieldError(f"unknown draft field: {name}")
        if name == "selected_slot":
            if value is not None and not isinstance(value, Slot):
                raise InvalidFieldError(f"selected_slot must be a Slot, got {type(value).__name__}")
        else:
            try:
                value = _COERCE[name](value)
            except (TypeError, ValueError) as exc:
                raise InvalidFieldError(f"invalid value for {name}: {value!r}") from exc

        changes: dict[str, Any] = {name: value}
        for downstream in CASCADE.get(name, ()):
            changes[downstream] = None
        self._draft = replace(self._draft, **changes)
        if name in AVAILABILITY_INPUTS:
            self.clear_availability()
        return self._draft

    def reset(self, draft: BookingDraft | None = None) -> None:
        self._draft = draft or BookingDraft()
        self.clear_availability()

    def snapshot(self) -> BookingDraft:
        return self._draft

    def clear_availability(self) -> None:
        self.slots = []
        self.availability_error = None

    def availability_key(self) -> AvailabilityKey | None:
        draft = self._draft
        if draft.resource_id is None or draft.date is None or draft.duration is None:
            return None
        return AvailabilityKey(draft.resource_id, draft.date, draft.duration)

    def apply_slots(self, key: AvailabilityKey | None, slots: list[Slot]) -> bool:
        """Store ``slots`` only if ``key`` is still the live triple."""
        if key != self.availability_key():
            return False
        self.slots = list(slots)
        self.availability_error = None
        return True
