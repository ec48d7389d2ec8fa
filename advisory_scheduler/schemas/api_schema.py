"""JSON request/response models for the HTTP layer (camelCase on the wire)."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from advisory_scheduler.schemas.booking_schema import AvailableSlot, Booking
from advisory_scheduler.schemas.template_schema import RecurringTemplate
from advisory_scheduler.scheduling.schedule_validation import ScheduleSlot, ScheduleValidation
from advisory_scheduler.scheduling.services import DEFAULT_SERVICE_TYPE
from advisory_scheduler.utils import format_display_date

_SERVICE_TYPE_ALIASES = AliasChoices("serviceType", "servicioTipo", "tipo", "service_type")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Availability ---

class AvailabilityCheckRequest(CamelModel):
    date: str
    time: str
    service_type: str = Field(
        default=DEFAULT_SERVICE_TYPE, validation_alias=_SERVICE_TYPE_ALIASES
    )
    advisory_or_training_subtype: Optional[str] = None


class AvailabilityCheckResponse(CamelModel):
    available: bool
    conflicts: int
    message: str
    reasons: list[str] = Field(default_factory=list)
    service_type: str
    requested_start: datetime
    requested_end: datetime


class SlotOut(CamelModel):
    date: date
    display_date: str
    time: str
    service_type: str
    price: float
    duration_minutes: int
    start_time: datetime
    end_time: datetime

    @classmethod
    def from_slot(cls, slot: AvailableSlot) -> "SlotOut":
        return cls(
            date=slot.date,
            display_date=format_display_date(slot.date),
            time=slot.time,
            service_type=slot.service_type,
            price=slot.price,
            duration_minutes=slot.duration_minutes,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )


# --- Holds and bookings ---

class HoldRequest(CamelModel):
    date: str
    time: str
    service_type: str = Field(
        default=DEFAULT_SERVICE_TYPE, validation_alias=_SERVICE_TYPE_ALIASES
    )
    owner_id: str = Field(min_length=1)
    owner_email: str = Field(min_length=3)
    owner_name: Optional[str] = None
    ttl_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    notes: Optional[str] = Field(default=None, max_length=500)


class PromoteRequest(CamelModel):
    external_event_id: Optional[str] = None


class PaymentWebhook(CamelModel):
    booking_id: str
    status: Literal["paid", "failed", "refunded"]
    external_event_id: Optional[str] = None


class BookingOut(CamelModel):
    id: str
    owner_id: str
    owner_email: str
    owner_name: Optional[str] = None
    service_type: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    price: Optional[float] = None
    status: str
    payment_status: str
    hold_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    external_event_id: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingOut":
        return cls.model_validate(booking.model_dump(mode="json"))


# --- Schedules and templates ---

class ScheduleValidateRequest(CamelModel):
    day_of_week: int
    start_time: str
    end_time: str
    type: str = "advisory"
    title: Optional[str] = None
    grace_minutes: Optional[int] = None
    exclude_id: Optional[str] = None


class ScheduleConflictOut(CamelModel):
    day_of_week: int
    start_time: str
    end_time: str
    type: str
    title: Optional[str] = None

    @classmethod
    def from_slot(cls, slot: ScheduleSlot) -> "ScheduleConflictOut":
        return cls(
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            type=slot.type,
            title=slot.title,
        )


class ScheduleValidateResponse(CamelModel):
    is_valid: bool
    conflicts: list[ScheduleConflictOut] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    message: str = ""

    @classmethod
    def from_validation(cls, result: ScheduleValidation) -> "ScheduleValidateResponse":
        return cls(
            is_valid=result.is_valid,
            conflicts=[ScheduleConflictOut.from_slot(c) for c in result.conflicts],
            suggestions=result.suggestions,
            message=result.message,
        )


class TemplateOut(CamelModel):
    id: str
    service_type: str
    day_of_week: int
    hour: int
    minute: int
    start_time: str
    end_time: str
    duration_minutes: int
    price: float
    max_bookings_per_day: Optional[int] = None
    active: bool
    title: Optional[str] = None

    @classmethod
    def from_template(cls, template: RecurringTemplate) -> "TemplateOut":
        return cls(
            id=template.id,
            service_type=template.service_type,
            day_of_week=template.day_of_week,
            hour=template.hour,
            minute=template.minute,
            start_time=template.start_time,
            end_time=template.end_time,
            duration_minutes=template.duration_minutes,
            price=template.price,
            max_bookings_per_day=template.max_bookings_per_day,
            active=template.active,
            title=template.title,
        )
