from __future__ import annotations

import logging
from datetime import date
from enum import StrEnum
from typing import Any, Callable, Optional

from ..domain.draft import BookingDraft
from ..domain.errors import (
    ConcurrentSubmissionError,
    ReservationConflictError,
    TimeFormatError,
    UnknownSubmissionError,
    ValidationError,
)
from ..domain.repositories import BookingSink, PaymentLinkSink
from ..domain.time_normalizer import NormalizedTime, normalize
from ..domain.validation import clean_phone, validate
from ..models import BookingMode
from ..schemas import ConfirmedReservation, ImmediateBookingRequest, PaymentLinkRequest, PaymentLinkResult
from ..utils.audit_log import AuditAction, emit_audit_log
from ..utils.time import local_today

logger = logging.getLogger(__name__)


class SubmissionState(StrEnum):
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    SUBMITTING = "SUBMITTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def build_immediate_request(draft: BookingDraft, times: NormalizedTime) -> ImmediateBookingRequest:
    """Builder for a draft that already passed ``validate``."""
    return ImmediateBookingRequest(
        counterparty_id=draft.counterparty_id,
        resource_id=draft.resource_id,
        booking_date=draft.date,
        start_time=times.start_time,
        duration_minutes=int(draft.duration),
        match_kind=draft.match_kind,
        notes=draft.notes or None,
        send_receipt_email=draft.send_receipt_email,
        receipt_email=draft.receipt_email or None,
        recording_enabled=draft.recording_enabled,
    )


def build_payment_link_request(draft: BookingDraft, times: NormalizedTime) -> PaymentLinkRequest:
    """Builder for a draft that already passed ``validate``.

    An existing directory entry wins over a typed phone number, so the request
    always names exactly one counterparty.
    """
    phone = None
    if draft.counterparty_id is None and draft.counterparty_phone:
        phone = clean_phone(draft.counterparty_phone)
    return PaymentLinkRequest(
        resource_id=draft.resource_id,
        booking_date=draft.date,
        start_time=times.start_time,
        end_time=times.end_time,
        counterparty_phone=phone,
        counterparty_id=draft.counterparty_id,
        recording_addon=draft.recording_enabled,
    )


class ReservationSubmitter:
    """Runs one submission at a time: IDLE -> VALIDATING -> SUBMITTING -> SUCCEEDED | FAILED."""

    def __init__(
        self,
        bookings: BookingSink,
        links: PaymentLinkSink,
        *,
        today: Callable[[], date] = local_today,
    ) -> None:
        self.bookings = bookings
        self.links = links
        self._today = today
        self.state = SubmissionState.IDLE

    async def submit(self, draft: BookingDraft) -> ConfirmedReservation | PaymentLinkResult:
        if self.state == SubmissionState.SUBMITTING:
            raise ConcurrentSubmissionError("a submission is already in progress")

        self.state = SubmissionState.VALIDATING
        errors = validate(draft, self._today())
        if errors:
            self.state = SubmissionState.FAILED
            raise ValidationError(errors)
        try:
            times = normalize(draft.selected_slot, int(draft.duration))
        except TimeFormatError:
            self.state = SubmissionState.FAILED
            raise

        self.state = SubmissionState.SUBMITTING
        try:
            if draft.mode == BookingMode.IMMEDIATE:
                result: ConfirmedReservation | PaymentLinkResult = await self._confirm(draft, times)
            else:
                result = await self._create_link(draft, times)
            self.state = SubmissionState.SUCCEEDED
        except ReservationConflictError as exc:
            self._audit("booking.conflict", draft, times, message=str(exc))
            raise
        except UnknownSubmissionError as exc:
            self._audit("booking.failed", draft, times, message=str(exc))
            raise
        except Exception as exc:
            self._audit("booking.failed", draft, times, message=str(exc))
            raise UnknownSubmissionError(str(exc) or type(exc).__name__) from exc
        finally:
            # cancellation skips the handlers above; never stay SUBMITTING
            if self.state != SubmissionState.SUCCEEDED:
                self.state = SubmissionState.FAILED

        return result

    async def _confirm(self, draft: BookingDraft, times: NormalizedTime) -> ConfirmedReservation:
        request = build_immediate_request(draft, times)
        created = await self.bookings.create_booking(request)
        logger.info("booking %s confirmed for resource %s", created.booking_id, request.resource_id)
        self._audit("booking.confirmed", draft, times, reference=str(created.booking_id))
        return ConfirmedReservation(
            reservation=created,
            receipt=created.receipt,
            resource_id=request.resource_id,
            counterparty_id=request.counterparty_id,
            booking_date=request.booking_date,
            start_time=times.start_time,
            end_time=times.end_time,
            price=draft.selected_slot.price,
        )

    async def _create_link(self, draft: BookingDraft, times: NormalizedTime) -> PaymentLinkResult:
        request = build_payment_link_request(draft, times)
        link = await self.links.create_payment_link(request)
        logger.info("payment link %s created for resource %s", link.id, request.resource_id)
        self._audit("payment_link.created", draft, times, reference=link.id)
        return PaymentLinkResult(link=link)

    def _audit(
        self,
        action: AuditAction,
        draft: BookingDraft,
        times: NormalizedTime,
        *,
        reference: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        extra: dict[str, Any] = {"end_time": times.end_time}
        try:
            emit_audit_log(
                action=action,
                mode=draft.mode,
                resource_id=draft.resource_id,
                booking_date=draft.date.isoformat() if draft.date else None,
                start_time=times.start_time,
                counterparty_id=draft.counterparty_id,
                reference=reference,
                message=message,
                extra=extra,
            )
        except RuntimeError:
            # the submission outcome stands even when the audit line is lost
            logger.exception("audit log failed for %s", action)
