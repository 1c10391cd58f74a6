from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from .time_normalizer import normalize, short_time


@dataclass(frozen=True)
class Slot:
    """A bookable window. Identity is the (start_time, end_time) pair only."""

    start_time: str
    end_time: str
    label: str = field(default="", compare=False)
    price: Decimal = field(default=Decimal("0"), compare=False)
    available: bool = field(default=True, compare=False)

    @property
    def time_range(self) -> str:
        return f"{short_time(self.start_time)}-{short_time(self.end_time)}"


def _price(raw: Mapping[str, Any]) -> Decimal:
    value = raw.get("price", raw.get("totalPrice", 0))
    try:
        price = Decimal(str(value if value is not None else 0))
    except InvalidOperation as exc:
        raise ValueError(f"price is not a number: {value!r}") from exc
    # NaN does not compare; Infinity is not a price
    if not price.is_finite():
        raise ValueError(f"price is not a number: {value!r}")
    if price < 0:
        raise ValueError(f"price must not be negative: {price}")
    return price


def _available(raw: Mapping[str, Any]) -> bool:
    for key in ("available", "isAvailable", "is_available"):
        if key in raw and raw[key] is not None:
            return bool(raw[key])
    return True


def slot_from_raw(raw: Mapping[str, Any] | str, duration_minutes: int | None) -> Slot:
    """Build a Slot from an availability record. Raises TimeFormatError or ValueError."""
    times = normalize(raw, duration_minutes)
    if isinstance(raw, str):
        return Slot(times.start_time, times.end_time, label=f"{short_time(times.start_time)}-{short_time(times.end_time)}")
    label = raw.get("formattedTimeRange") or raw.get("label")
    return Slot(
        start_time=times.start_time,
        end_time=times.end_time,
        label=str(label) if label else f"{short_time(times.start_time)}-{short_time(times.end_time)}",
        price=_price(raw),
        available=_available(raw),
    )


def merge_slots(slots: Iterable[Slot]) -> list[Slot]:
    """Collapse equal slots (preferring an available one) and order by start time."""
    merged: dict[Slot, Slot] = {}
    for slot in slots:
        kept = merged.get(slot)
        if kept is None or (slot.available and not kept.available):
            merged[slot] = slot
    return sorted(merged.values(), key=lambda s: (s.start_time, s.end_time))
