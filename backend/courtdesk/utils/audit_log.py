from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.confirmed",
    "booking.conflict",
    "booking.failed",
    "payment_link.created",
]


def _build_audit_logger(name: str = "audit") -> logging.Logger:
    audit = logging.getLogger(name)
    audit.setLevel(logging.INFO)
    if not audit.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(message)s"))
        audit.addHandler(stream)
    # audit lines are one JSON object each; keep them out of the app log format
    audit.propagate = False
    return audit


_audit_logger = _build_audit_logger()


def emit_audit_log(
    *,
    action: AuditAction,
    mode: Any,
    resource_id: Optional[int],
    booking_date: Optional[str],
    start_time: Optional[str],
    counterparty_id: Optional[int] = None,
    reference: Optional[str] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one JSON line describing a submission outcome.

    `reference` is the booking id or payment link id returned by the
    collaborator. Empty fields are left out of the line. Raises RuntimeError
    if the line cannot be written.
    """
    fields: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "mode": mode.value if isinstance(mode, Enum) else mode,
        "resource_id": resource_id,
        "date": booking_date,
        "start_time": start_time,
        "counterparty_id": counterparty_id,
        "reference": reference,
        "message": message,
        **(extra or {}),
    }
    line = json.dumps({key: value for key, value in fields.items() if value is not None}, ensure_ascii=True)
    try:
        _audit_logger.info(line)
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
