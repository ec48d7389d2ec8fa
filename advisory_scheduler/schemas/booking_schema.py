"""Booking, hold, and availability data models."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from advisory_scheduler.utils import format_time


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


class CancellationReason(str, Enum):
    HOLD_EXPIRED = "hold_expired"
    RELEASED = "released"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class SlotKey:
    """Identifies one bookable slot: a date, a start time, and a service."""

    date: date
    start_minute: int
    service_type: str

    @property
    def time(self) -> str:
        return format_time(self.start_minute)

    def __str__(self) -> str:
        return f"{self.service_type}@{self.date.isoformat()} {self.time}"


class Booking(BaseModel):
    """A concrete reservation. A pending booking with an expiry is a hold."""

    id: str = Field(default_factory=new_booking_id)
    owner_id: str
    owner_email: str
    owner_name: Optional[str] = None
    service_type: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    hold_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    external_event_id: Optional[str] = None
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_span(self) -> "Booking":
        if self.start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware")
        if self.end_time != self.start_time + timedelta(minutes=self.duration_minutes):
            raise ValueError("end_time must equal start_time + duration_minutes")
        return self

    def is_hold_lapsed(self, now: datetime) -> bool:
        """A pending hold whose expiry has passed."""
        return (
            self.status == BookingStatus.PENDING
            and self.hold_expires_at is not None
            and self.hold_expires_at <= now
        )

    def is_active(self, now: datetime) -> bool:
        """Whether this record currently occupies its slot."""
        if self.status == BookingStatus.CONFIRMED:
            return True
        return self.status == BookingStatus.PENDING and not self.is_hold_lapsed(now)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap: touching endpoints do not overlap."""
        return self.start_time < end and start < self.end_time


class AvailableSlot(BaseModel):
    """A bookable slot derived from a recurring template. Never stored."""

    date: date
    time: str
    service_type: str
    price: float
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    template_id: Optional[str] = None
    max_bookings_per_day: Optional[int] = None


class AvailabilityResult(BaseModel):
    """Outcome of an availability check for one slot."""

    available: bool
    conflicts: int = 0
    reasons: list[str] = Field(default_factory=list)
    message: str = ""
    requested_start: datetime
    requested_end: datetime
