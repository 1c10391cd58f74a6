from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

from .domain.draft import BookingDraft
from .domain.slots import Slot
from .domain.time_normalizer import canonical_time
from .models import BookingMode, Duration, MatchKind, PaymentLinkStatus, PaymentMethod
from .utils.time import to_local


class _WireModel(BaseModel):
    """Request bodies sent to the booking backend (camelCase on the wire)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ImmediateBookingRequest(_WireModel):
    kind: Literal["IMMEDIATE"] = Field(default="IMMEDIATE", exclude=True)
    counterparty_id: int = Field(serialization_alias="userId")
    resource_id: int = Field(serialization_alias="courtId")
    booking_date: date = Field(serialization_alias="date")
    start_time: str = Field(serialization_alias="startTime")
    duration_minutes: int = Field(serialization_alias="durationMinutes")
    match_kind: MatchKind = Field(serialization_alias="matchType")
    notes: Optional[str] = Field(default=None, serialization_alias="notes")
    send_receipt_email: bool = Field(serialization_alias="sendReceiptEmail")
    receipt_email: Optional[str] = Field(default=None, serialization_alias="customerEmail")
    recording_enabled: bool = Field(default=False, serialization_alias="recordingEnabled")


class PaymentLinkRequest(_WireModel):
    kind: Literal["LINK"] = Field(default="LINK", exclude=True)
    resource_id: int = Field(serialization_alias="courtId")
    booking_date: date = Field(serialization_alias="bookingDate")
    start_time: str = Field(serialization_alias="startTime")
    end_time: str = Field(serialization_alias="endTime")
    counterparty_phone: Optional[str] = Field(default=None, serialization_alias="phoneNumber")
    counterparty_id: Optional[int] = Field(default=None, serialization_alias="existingUserId")
    recording_addon: bool = Field(default=False, serialization_alias="recordingAddon")


ReservationRequest = Annotated[
    Union[ImmediateBookingRequest, PaymentLinkRequest],
    Field(discriminator="kind"),
]


class Receipt(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: Optional[Union[int, str]] = Field(default=None, validation_alias=AliasChoices("receiptId", "id"))
    number: Optional[str] = Field(default=None, validation_alias=AliasChoices("receiptNumber", "number"))
    total_amount: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("totalAmount", "total_amount")
    )
    pdf_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("pdfUrl", "pdf_url"))


class CreatedBooking(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    booking_id: Union[int, str] = Field(validation_alias=AliasChoices("bookingId", "booking_id", "id"))
    message: Optional[str] = None
    receipt: Optional[Receipt] = None


class PaymentLinkDescriptor(BaseModel):
    """Server-issued payment link. Read-only on this side; it is never extended."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    resource_label: str = Field(validation_alias=AliasChoices("resourceLabel", "courtName", "resource_label"))
    venue_label: str = Field(validation_alias=AliasChoices("venueLabel", "facilityName", "venue_label"))
    booking_date: date = Field(validation_alias=AliasChoices("date", "bookingDate", "booking_date"))
    start_time: str = Field(validation_alias=AliasChoices("startTime", "start_time"))
    end_time: str = Field(validation_alias=AliasChoices("endTime", "end_time"))
    total_amount: Decimal = Field(ge=0, validation_alias=AliasChoices("totalAmount", "total_amount"))
    recording_addon: bool = Field(default=False, validation_alias=AliasChoices("recordingAddon", "recording_addon"))
    expires_at: datetime = Field(validation_alias=AliasChoices("expiresAt", "expires_at"))
    counterparty_phone: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("counterpartyPhone", "phoneNumber", "counterparty_phone")
    )
    counterparty_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("counterpartyId", "targetUserId", "counterparty_id")
    )
    status: PaymentLinkStatus = PaymentLinkStatus.ACTIVE

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _canonical_time(cls, value: Any) -> str:
        return canonical_time(value)


class ConfirmedReservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["CONFIRMED"] = "CONFIRMED"
    reservation: CreatedBooking
    receipt: Optional[Receipt] = None
    resource_id: int
    counterparty_id: int
    booking_date: date
    start_time: str
    end_time: str
    price: Decimal = Decimal("0")


class PaymentLinkResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["LINK"] = "LINK"
    link: PaymentLinkDescriptor


ReservationResult = Annotated[
    Union[ConfirmedReservation, PaymentLinkResult],
    Field(discriminator="kind"),
]


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    show: Literal["RECEIPT", "LINK_SHARE", "NONE"]
    payload: dict[str, Any] = Field(default_factory=dict)


# Directory lookups (read-only)


class VenueRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: str
    address: Optional[str] = None


class ResourceRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: str
    venue_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("facilityId", "venueId", "venue_id"))


class CounterpartyRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    full_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("fullName", "full_name", "name"))
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, validation_alias=AliasChoices("phoneNumber", "phone"))


# Desk API


class SlotRead(BaseModel):
    start_time: str
    end_time: str
    label: str
    price: Decimal
    available: bool

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotRead":
        return cls(
            start_time=slot.start_time,
            end_time=slot.end_time,
            label=slot.label,
            price=slot.price,
            available=slot.available,
        )


class SlotSelection(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    label: Optional[str] = None


class DraftUpdate(BaseModel):
    """Partial draft write. Fields are applied upstream-first, in declaration order."""

    counterparty_id: Optional[int] = None
    counterparty_phone: Optional[str] = None
    venue_id: Optional[int] = None
    resource_id: Optional[int] = None
    booking_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("date", "booking_date"))
    duration: Optional[Duration] = None
    selected_slot: Optional[SlotSelection] = None
    match_kind: Optional[MatchKind] = None
    notes: Optional[str] = None
    mode: Optional[BookingMode] = None
    payment_method: Optional[PaymentMethod] = None
    send_receipt_email: Optional[bool] = None
    receipt_email: Optional[str] = None
    recording_enabled: Optional[bool] = None


class CounterpartySelect(BaseModel):
    id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    full_name: Optional[str] = None


class DraftRead(BaseModel):
    draft_id: str
    counterparty_id: Optional[int]
    counterparty_phone: Optional[str]
    venue_id: Optional[int]
    resource_id: Optional[int]
    booking_date: Optional[date]
    duration: Optional[int]
    match_kind: Optional[MatchKind]
    selected_slot: Optional[SlotRead]
    notes: str
    mode: BookingMode
    payment_method: Optional[PaymentMethod]
    send_receipt_email: bool
    receipt_email: str
    recording_enabled: bool
    slots: list[SlotRead]
    availability_error: Optional[str]
    errors: dict[str, str]
    ready: bool

    @classmethod
    def from_state(
        cls,
        *,
        draft_id: str,
        draft: BookingDraft,
        slots: list[Slot],
        availability_error: Optional[str],
        errors: dict[str, str],
    ) -> "DraftRead":
        return cls(
            draft_id=draft_id,
            counterparty_id=draft.counterparty_id,
            counterparty_phone=draft.counterparty_phone,
            venue_id=draft.venue_id,
            resource_id=draft.resource_id,
            booking_date=draft.date,
            duration=int(draft.duration) if draft.duration is not None else None,
            match_kind=draft.match_kind,
            selected_slot=SlotRead.from_slot(draft.selected_slot) if draft.selected_slot else None,
            notes=draft.notes,
            mode=draft.mode,
            payment_method=draft.payment_method,
            send_receipt_email=draft.send_receipt_email,
            receipt_email=draft.receipt_email,
            recording_enabled=draft.recording_enabled,
            slots=[SlotRead.from_slot(slot) for slot in slots],
            availability_error=availability_error,
            errors=errors,
            ready=not errors,
        )


class ValidationRead(BaseModel):
    errors: dict[str, str]
    summary: Optional[str]
    ready: bool


class SubmissionRead(BaseModel):
    result: ReservationResult
    decision: Decision


class PreferenceRead(BaseModel):
    operator_id: int
    venue_id: Optional[int]
    duration_minutes: Optional[int]
    mode: BookingMode
    send_receipt_email: bool
    updated_at: Optional[datetime] = None

    @field_serializer("updated_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return to_local(dt).isoformat() if dt is not None else None


class PreferenceUpdate(BaseModel):
    venue_id: Optional[int] = None
    duration_minutes: Optional[Duration] = None
    mode: BookingMode = BookingMode.IMMEDIATE
    send_receipt_email: bool = True
