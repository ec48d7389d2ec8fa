"""
Recurring template administration.

Application-level guard (grace-period validation against every other
template, advisory and training) runs before each write; the template
store's unique key is the storage-level guard.
"""

from typing import Optional

from advisory_scheduler.errors import TemplateConflictError, ValidationError
from advisory_scheduler.logging_context import get_request_logger
from advisory_scheduler.schemas.template_schema import (
    RecurringTemplate,
    TemplateChanges,
    TemplateInput,
)
from advisory_scheduler.scheduling.schedule_validation import (
    ScheduleSlot,
    ScheduleValidation,
    validate_schedule_slot,
)
from advisory_scheduler.scheduling.services import category_of, normalize_category, require_service
from advisory_scheduler.store.templates import TemplateStore
from advisory_scheduler.utils import parse_time

logger = get_request_logger(__name__)


def to_schedule_slot(template: RecurringTemplate) -> ScheduleSlot:
    return ScheduleSlot(
        day_of_week=template.day_of_week,
        start_time=template.start_time,
        end_time=template.end_time,
        type=category_of(template.service_type),
        title=template.title or template.service_type,
    )


class TemplateAdmin:
    """CRUD over recurring templates with grace-period validation."""

    def __init__(self, store: TemplateStore) -> None:
        self._store = store

    async def _existing_slots(self, exclude_id: Optional[str] = None) -> list[ScheduleSlot]:
        templates = await self._store.find(active_only=True)
        return [to_schedule_slot(t) for t in templates if t.id != exclude_id]

    async def validate(
        self,
        day_of_week: int,
        start_time: str,
        end_time: str,
        type: str = "advisory",
        title: Optional[str] = None,
        grace_minutes: Optional[int] = None,
        exclude_id: Optional[str] = None,
    ) -> ScheduleValidation:
        """Check a proposed block against all other active templates."""
        if not 0 <= day_of_week <= 6:
            raise ValidationError(f"dayOfWeek must be 0-6, got {day_of_week}.", field="dayOfWeek")
        parse_time(start_time, field="startTime")
        parse_time(end_time, field="endTime")
        if grace_minutes is not None and grace_minutes < 0:
            raise ValidationError("graceMinutes must be >= 0.", field="graceMinutes")
        category = normalize_category(type)
        if category is None:
            raise ValidationError(
                f"Unknown schedule type {type!r}; use advisory or training.", field="type"
            )
        proposed = ScheduleSlot(day_of_week, start_time, end_time, category, title)
        existing = await self._existing_slots(exclude_id)
        return validate_schedule_slot(proposed, existing, grace_minutes)

    async def _guard(self, template: RecurringTemplate, grace_minutes: Optional[int]) -> None:
        if not template.active:
            return
        slot = to_schedule_slot(template)
        result = await self.validate(
            slot.day_of_week, slot.start_time, slot.end_time, slot.type, slot.title,
            grace_minutes=grace_minutes, exclude_id=template.id,
        )
        if not result.is_valid:
            logger.warning("Template %s rejected: %s", template.describe(), result.message)
            raise TemplateConflictError(
                result.message, conflicts=result.conflicts, suggestions=result.suggestions
            )

    async def create(
        self, payload: TemplateInput, grace_minutes: Optional[int] = None
    ) -> RecurringTemplate:
        """Validate and store a new template."""
        info = require_service(payload.service_type)
        template = RecurringTemplate(
            service_type=payload.service_type,
            day_of_week=payload.day_of_week,
            start_minute=payload.start_minute,
            duration_minutes=payload.duration_minutes or info["duration_minutes"],
            price=info["price"] if payload.price is None else payload.price,
            max_bookings_per_day=payload.max_bookings_per_day,
            active=payload.active,
            title=payload.title,
        )
        await self._guard(template, grace_minutes)
        stored = await self._store.add(template)
        logger.info("Template %s created: %s", stored.id, stored.describe())
        return stored

    async def update(
        self, template_id: str, changes: TemplateChanges, grace_minutes: Optional[int] = None
    ) -> RecurringTemplate:
        """Apply changes to a template, re-validating against the others."""
        current = await self._store.get(template_id)
        updated = changes.apply_to(current)
        await self._guard(updated, grace_minutes)
        stored = await self._store.replace(updated)
        logger.info("Template %s updated: %s", stored.id, stored.describe())
        return stored

    async def deactivate(self, template_id: str) -> RecurringTemplate:
        stored = await self._store.set_active(template_id, False)
        logger.info("Template %s deactivated", template_id)
        return stored

    async def reactivate(
        self, template_id: str, grace_minutes: Optional[int] = None
    ) -> RecurringTemplate:
        """Reactivate a template; it must still clear the grace-period check."""
        current = await self._store.get(template_id)
        if current.active:
            return current
        await self._guard(current.model_copy(update={"active": True}), grace_minutes)
        stored = await self._store.set_active(template_id, True)
        logger.info("Template %s reactivated", template_id)
        return stored

    async def get(self, template_id: str) -> RecurringTemplate:
        return await self._store.get(template_id)

    async def list_templates(
        self, service_type: Optional[str] = None, include_inactive: bool = False
    ) -> list[RecurringTemplate]:
        if service_type is not None:
            require_service(service_type)
        return await self._store.find(service_type=service_type, active_only=not include_inactive)
