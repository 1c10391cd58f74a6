from __future__ import annotations

import re
from datetime import date
from typing import Mapping

from ..models import BookingMode
from ..utils.time import local_today
from .draft import BookingDraft

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")

# Declaration order doubles as the priority for a single summary message.
RULE_ORDER = (
    "resource_id",
    "date",
    "duration",
    "selected_slot",
    "counterparty_id",
    "match_kind",
    "payment_method",
    "receipt_email",
    "counterparty",
    "counterparty_phone",
)


def clean_phone(phone: str) -> str:
    return _PHONE_SEPARATORS.sub("", phone)


def is_valid_phone(phone: str) -> bool:
    return PHONE_RE.match(clean_phone(phone)) is not None


def _shared(draft: BookingDraft, today: date) -> dict[str, str]:
    errors: dict[str, str] = {}
    if draft.resource_id is None:
        errors["resource_id"] = "Please select a court"
    if draft.date is None:
        errors["date"] = "Please select a date"
    elif draft.date < today:
        errors["date"] = "Cannot book for past dates"
    if draft.duration is None:
        errors["duration"] = "Please select duration"
    if draft.selected_slot is None:
        errors["selected_slot"] = "Please select a time slot"
    elif not draft.selected_slot.available:
        errors["selected_slot"] = "Selected time slot is no longer available"
    return errors


def _immediate(draft: BookingDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if draft.counterparty_id is None:
        errors["counterparty_id"] = "Please select a user"
    if draft.match_kind is None:
        errors["match_kind"] = "Please select match type"
    if draft.payment_method is None:
        errors["payment_method"] = "Please select payment method"
    if draft.send_receipt_email:
        if not draft.receipt_email:
            errors["receipt_email"] = "Email is required when receipt email is enabled"
        elif EMAIL_RE.match(draft.receipt_email) is None:
            errors["receipt_email"] = "Please enter a valid email address"
    return errors


def _link(draft: BookingDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if draft.counterparty_id is None and not draft.counterparty_phone:
        errors["counterparty"] = "Enter a phone number or select an existing user"
    if draft.counterparty_phone and not is_valid_phone(draft.counterparty_phone):
        errors["counterparty_phone"] = "Phone number must be in international format, e.g. +966501234567"
    return errors


def validate(draft: BookingDraft, today: date | None = None) -> dict[str, str]:
    """Return field -> message for every violated rule; an empty dict means ready to submit."""
    errors = _shared(draft, today or local_today())
    if draft.mode == BookingMode.IMMEDIATE:
        errors.update(_immediate(draft))
    else:
        errors.update(_link(draft))
    return errors


def first_error(errors: Mapping[str, str]) -> str | None:
    for field in RULE_ORDER:
        if field in errors:
            return errors[field]
    return next(iter(errors.values()), None)
