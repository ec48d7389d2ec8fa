"""Recurring availability template models.

Templates are stored with a single canonical start time (minutes since
midnight). Admin input may arrive as ``hour``/``minute`` or as ``HH:MM``
strings and is normalized here, at the store boundary.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from advisory_scheduler.errors import ValidationError
from advisory_scheduler.utils import MINUTES_PER_DAY, format_time, parse_time

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def new_template_id() -> str:
    return f"TPL-{uuid.uuid4().hex[:8].upper()}"


def _minutes_from(value: str, field: str) -> int:
    try:
        return parse_time(value, field=field)
    except ValidationError as exc:
        raise ValueError(str(exc)) from None


class RecurringTemplate(BaseModel):
    """A weekly-recurring availability definition for one service type."""

    id: str = Field(default_factory=new_template_id)
    service_type: str
    day_of_week: int = Field(ge=0, le=6)
    start_minute: int = Field(ge=0, lt=MINUTES_PER_DAY)
    duration_minutes: int = Field(gt=0)
    price: float = Field(ge=0)
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)
    active: bool = True
    title: Optional[str] = None

    @property
    def key(self) -> tuple[str, int, int]:
        return (self.service_type, self.day_of_week, self.start_minute)

    @property
    def hour(self) -> int:
        return self.start_minute // 60

    @property
    def minute(self) -> int:
        return self.start_minute % 60

    @property
    def start_time(self) -> str:
        return format_time(self.start_minute)

    @property
    def end_time(self) -> str:
        return format_time(self.start_minute + self.duration_minutes)

    def describe(self) -> str:
        label = self.title or self.service_type
        return f"{label} ({DAY_NAMES[self.day_of_week]} {self.start_time} - {self.end_time})"


class TemplateInput(BaseModel):
    """Admin payload for creating a template.

    Either ``start_time`` or ``hour`` (with optional ``minute``) sets the
    start; either ``end_time`` or ``duration_minutes`` sets the length.
    Missing duration and price fall back to the service catalog.
    """

    model_config = ConfigDict(populate_by_name=True)

    service_type: str = Field(alias="serviceType")
    day_of_week: int = Field(alias="dayOfWeek", ge=0, le=6)
    hour: Optional[int] = Field(default=None, ge=0, le=23)
    minute: Optional[int] = Field(default=None, ge=0, le=59)
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes", gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    max_bookings_per_day: Optional[int] = Field(default=None, alias="maxBookingsPerDay", ge=1)
    active: bool = True
    title: Optional[str] = Field(default=None, max_length=100)

    start_minute: Optional[int] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _normalize_times(self) -> "TemplateInput":
        if self.start_time is not None:
            self.start_minute = _minutes_from(self.start_time, "startTime")
        elif self.hour is not None:
            self.start_minute = self.hour * 60 + (self.minute or 0)
        else:
            raise ValueError("Either startTime or hour is required")

        if self.end_time is not None and self.duration_minutes is None:
            end = _minutes_from(self.end_time, "endTime")
            duration = (end - self.start_minute) % MINUTES_PER_DAY
            if duration == 0:
                raise ValueError("endTime must differ from the start time")
            self.duration_minutes = duration
        return self


class TemplateChanges(BaseModel):
    """Partial admin payload for editing a template."""

    model_config = ConfigDict(populate_by_name=True)

    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek", ge=0, le=6)
    start_time: Optional[str] = Field(default=None, alias="startTime")
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes", gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    max_bookings_per_day: Optional[int] = Field(default=None, alias="maxBookingsPerDay", ge=1)
    title: Optional[str] = Field(default=None, max_length=100)

    def apply_to(self, template: RecurringTemplate) -> RecurringTemplate:
        """Return a copy of ``template`` with these changes applied."""
        update = self.model_dump(exclude_none=True, exclude={"start_time"})
        if self.start_time is not None:
            update["start_minute"] = parse_time(self.start_time, field="startTime")
        return RecurringTemplate.model_validate({**template.model_dump(), **update})
