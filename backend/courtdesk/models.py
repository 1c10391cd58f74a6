from __future__ import annotations

from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, DateTime, Integer


class Base(DeclarativeBase):
    pass


class BookingMode(StrEnum):
    IMMEDIATE = "IMMEDIATE"
    LINK = "LINK"


class MatchKind(StrEnum):
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"


class PaymentMethod(StrEnum):
    CASH = "CASH"
    TAP_TO_MANAGER = "TAP_TO_MANAGER"
    PENDING = "PENDING"


class PaymentLinkStatus(StrEnum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Duration(IntEnum):
    ONE_HOUR = 60
    NINETY_MINUTES = 90
    TWO_HOURS = 120


class OperatorPreference(Base):
    """Desk defaults remembered per staff operator between drafts."""

    __tablename__ = "operator_preferences"
    __table_args__ = (
        CheckConstraint("duration_minutes IN (60, 90, 120)", name="chk_pref_duration"),
    )

    operator_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    venue_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mode: Mapped[BookingMode] = mapped_column(
        Enum(
            BookingMode,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=BookingMode.IMMEDIATE,
    )
    send_receipt_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
