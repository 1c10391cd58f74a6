import json
from typing import Any, List

import pytest
from courtdesk.models import BookingMode
from courtdesk.utils import audit_log
from courtdesk.utils.request_id import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="booking.confirmed",
        mode=BookingMode.IMMEDIATE,
        resource_id=12,
        booking_date="2025-03-10",
        start_time="14:00:00",
        counterparty_id=7,
        reference="900",
        extra={"end_time": "15:00:00"},
    )
    set_request_id(None)
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "booking.confirmed"
    assert payload["mode"] == "IMMEDIATE"
    assert payload["request_id"] == "req-123"
    assert payload["reference"] == "900"
    assert payload["end_time"] == "15:00:00"
    assert "message" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_drops_empty_fields(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="booking.conflict",
        mode=BookingMode.LINK,
        resource_id=12,
        booking_date="2025-03-10",
        start_time="14:00:00",
        message="Slot already booked",
    )
    payload = json.loads(messages[0])
    assert payload["message"] == "Slot already booked"
    assert "counterparty_id" not in payload
    assert "reference" not in payload


def test_emit_audit_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="payment_link.created",
            mode=BookingMode.LINK,
            resource_id=12,
            booking_date="2025-03-10",
            start_time="14:00:00",
            reference="lnk-1",
        )
