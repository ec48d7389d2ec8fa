"""
Slot generator: expands weekly templates into dated candidate slots.

Pure read. An empty result means the service has no active template in
the requested range; it is never an error.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from advisory_scheduler.config import settings
from advisory_scheduler.errors import ValidationError
from advisory_scheduler.schemas.booking_schema import AvailableSlot
from advisory_scheduler.schemas.template_schema import RecurringTemplate
from advisory_scheduler.scheduling.services import require_service
from advisory_scheduler.store.templates import TemplateStore
from advisory_scheduler.utils import date_range, day_of_week, format_time, local_datetime

logger = logging.getLogger(__name__)


def validate_range(start_date: date, end_date: date, max_days: int) -> None:
    """Reject inverted or oversized ranges (``max_days`` counts inclusive days)."""
    if end_date < start_date:
        raise ValidationError(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}.",
            field="end",
        )
    span = (end_date - start_date).days + 1
    if span > max_days:
        raise ValidationError(
            f"Requested range covers {span} days; the limit is {max_days}.", field="end"
        )


def expand_templates(
    templates: list[RecurringTemplate],
    start_date: date,
    end_date: date,
    tz: ZoneInfo,
) -> list[AvailableSlot]:
    """Expand templates over [start_date, end_date] ordered by date then time."""
    by_day: dict[int, list[RecurringTemplate]] = {}
    for template in templates:
        if template.active:
            by_day.setdefault(template.day_of_week, []).append(template)
    for day_templates in by_day.values():
        day_templates.sort(key=lambda t: t.start_minute)

    slots: list[AvailableSlot] = []
    for current in date_range(start_date, end_date):
        for template in by_day.get(day_of_week(current), []):
            start = local_datetime(current, template.start_minute, tz)
            slots.append(AvailableSlot(
                date=current,
                time=format_time(template.start_minute),
                service_type=template.service_type,
                price=template.price,
                duration_minutes=template.duration_minutes,
                start_time=start,
                end_time=start + timedelta(minutes=template.duration_minutes),
                template_id=template.id,
                max_bookings_per_day=template.max_bookings_per_day,
            ))
    return slots


class SlotGenerator:
    """Reads active templates for a service and expands them over a range."""

    def __init__(
        self,
        templates: TemplateStore,
        tz: Optional[ZoneInfo] = None,
        max_horizon_days: Optional[int] = None,
    ) -> None:
        self._templates = templates
        self._tz = tz or settings.scheduling.tzinfo
        self._max_days = max_horizon_days or settings.scheduling.max_horizon_days

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    async def generate_candidates(
        self, service_type: str, start_date: date, end_date: date
    ) -> list[AvailableSlot]:
        """Candidate slots for ``service_type`` between two dates inclusive."""
        require_service(service_type)
        validate_range(start_date, end_date, self._max_days)
        templates = await self._templates.find(service_type=service_type, active_only=True)
        slots = expand_templates(templates, start_date, end_date, self._tz)
        logger.debug(
            "Expanded %d template(s) into %d candidate(s) for %s %s..%s",
            len(templates), len(slots), service_type, start_date, end_date,
        )
        return slots

    async def template_for(
        self, service_type: str, on: date, start_minute: int
    ) -> Optional[RecurringTemplate]:
        """The active template offering exactly this slot, if any."""
        templates = await self._templates.find(service_type=service_type, active_only=True)
        dow = day_of_week(on)
        for template in templates:
            if template.day_of_week == dow and template.start_minute == start_minute:
                return template
        return None
