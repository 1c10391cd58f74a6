from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote

from ..config import Settings, get_settings
from ..domain.time_normalizer import short_time
from ..schemas import ConfirmedReservation, Decision, PaymentLinkDescriptor, PaymentLinkResult, Receipt
from ..utils.time import remaining_until, to_local

SHARE_TEMPLATE = """\U0001F3BE *{brand} Booking*

Hi! We've reserved a court for you:

\U0001F4CD *Facility:* {venue}
\U0001F3DF️ *Court:* {resource}
\U0001F4C5 *Date:* {date}
⏰ *Time:* {start} - {end}
\U0001F4B0 *Price:* {amount} {currency}

Please complete your payment to confirm:
{url}

───────────────

\U0001F3BE *حجز ملاعب {brand}*

مرحباً! حجزنا لك ملعب:

\U0001F4CD *المنشأة:* {venue}
\U0001F3DF️ *الملعب:* {resource}
\U0001F4C5 *التاريخ:* {date}
⏰ *الوقت:* {start} - {end}
\U0001F4B0 *السعر:* {amount} ريال

يرجى إتمام الدفع لتأكيد الحجز:
{url}"""


def payment_link_url(link: PaymentLinkDescriptor, settings: Settings | None = None) -> str:
    base = (settings or get_settings()).payment_link_base_url.rstrip("/")
    return f"{base}/payment/{link.id}"


def _display_date(link: PaymentLinkDescriptor) -> str:
    d = link.booking_date
    return f"{d:%a}, {d:%b} {d.day}, {d.year}"


def build_share_message(link: PaymentLinkDescriptor, url: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return SHARE_TEMPLATE.format(
        brand=settings.share_brand,
        venue=link.venue_label,
        resource=link.resource_label,
        date=_display_date(link),
        start=short_time(link.start_time),
        end=short_time(link.end_time),
        amount=link.total_amount,
        currency=settings.currency,
        url=url,
    )


def whatsapp_share_url(message: str, phone: str | None = None) -> str:
    encoded = quote(message, safe="")
    digits = re.sub(r"\D", "", phone or "")
    if digits:
        return f"https://wa.me/{digits}?text={encoded}"
    return f"https://wa.me/?text={encoded}"


def time_until_expiry(link: PaymentLinkDescriptor, now: datetime | None = None) -> timedelta:
    return remaining_until(link.expires_at, now)


def _receipt_payload(result: ConfirmedReservation, receipt: Receipt) -> dict[str, Any]:
    return {
        "receipt_id": receipt.id,
        "receipt_number": receipt.number or "N/A",
        "total_amount": receipt.total_amount if receipt.total_amount is not None else result.price,
        "pdf_url": receipt.pdf_url,
        "booking_id": result.reservation.booking_id,
        "booking_date": result.booking_date.isoformat(),
        "start_time": short_time(result.start_time),
        "end_time": short_time(result.end_time),
    }


def _link_payload(link: PaymentLinkDescriptor, now: datetime | None, settings: Settings) -> dict[str, Any]:
    url = payment_link_url(link, settings)
    message = build_share_message(link, url, settings)
    remaining = time_until_expiry(link, now)
    seconds = int(remaining.total_seconds())
    return {
        "link_id": link.id,
        "url": url,
        "share_message": message,
        "whatsapp_url": whatsapp_share_url(message, link.counterparty_phone),
        "expires_at": to_local(link.expires_at).isoformat(),
        "seconds_until_expiry": seconds,
        "hours_until_expiry": seconds // 3600,
        "expired": seconds == 0,
        "counterparty_phone": link.counterparty_phone,
        "counterparty_id": link.counterparty_id,
        "recording_addon": link.recording_addon,
    }


def decide(
    result: ConfirmedReservation | PaymentLinkResult,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> Decision:
    """Pick the follow-up surface for a finished submission."""
    if isinstance(result, PaymentLinkResult):
        return Decision(show="LINK_SHARE", payload=_link_payload(result.link, now, settings or get_settings()))
    if result.receipt is not None and result.receipt.id is not None:
        return Decision(show="RECEIPT", payload=_receipt_payload(result, result.receipt))
    return Decision(show="NONE")
