"""
Grace-period validation for recurring schedules.

Used when an admin creates or edits a weekly template: the proposed
block is compared with every other template on the same weekday (advisory
and training alike) padded by ``grace_minutes`` on both sides. On a clash
the validator proposes free start times on the same day.

This protects against admin misconfiguration; runtime booking races are
handled by the reservation store.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from advisory_scheduler.config import settings
from advisory_scheduler.utils import MINUTES_PER_DAY, format_time, parse_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleSlot:
    """A weekly block: day of week plus ``HH:MM`` start and end."""

    day_of_week: int
    start_time: str
    end_time: str
    type: str = "advisory"
    title: Optional[str] = None

    def describe(self) -> str:
        return f"{self.title or self.type} ({self.start_time} - {self.end_time})"


@dataclass
class ScheduleValidation:
    """Outcome of validating a proposed schedule block."""

    is_valid: bool
    conflicts: list[ScheduleSlot] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    message: str = ""


def time_to_minutes(value: str) -> int:
    return parse_time(value)


def minutes_to_time(minutes: int) -> str:
    return format_time(minutes)


def calculate_duration(start_time: str, end_time: str) -> int:
    """Minutes between two times; an end before the start crosses midnight."""
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    if end < start:
        return MINUTES_PER_DAY - start + end
    return end - start


def _span(slot: ScheduleSlot) -> tuple[int, int]:
    start = time_to_minutes(slot.start_time)
    return start, start + calculate_duration(slot.start_time, slot.end_time)


def has_schedule_conflict(
    new: ScheduleSlot, existing: ScheduleSlot, grace_minutes: int = 30
) -> bool:
    """Whether ``new`` falls inside ``existing`` padded by the grace period."""
    if new.day_of_week != existing.day_of_week:
        return False

    new_start, new_end = _span(new)
    existing_start, existing_end = _span(existing)
    padded_start = existing_start - grace_minutes
    padded_end = existing_end + grace_minutes

    return (
        (padded_start <= new_start < padded_end)
        or (padded_start < new_end <= padded_end)
        or (new_start <= padded_start and new_end >= padded_end)
    )


def find_schedule_conflicts(
    new: ScheduleSlot, existing: list[ScheduleSlot], grace_minutes: int = 30
) -> list[ScheduleSlot]:
    return [e for e in existing if has_schedule_conflict(new, e, grace_minutes)]


def suggest_available_slots(
    day_of_week: int,
    duration: int,
    existing: list[ScheduleSlot],
    grace_minutes: int = 30,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
    step_minutes: Optional[int] = None,
) -> list[str]:
    """Start times on ``day_of_week`` where a ``duration`` block fits."""
    start_hour = settings.scheduling.day_start_hour if start_hour is None else start_hour
    end_hour = settings.scheduling.day_end_hour if end_hour is None else end_hour
    step = step_minutes or settings.scheduling.suggestion_step_minutes

    same_day = [s for s in existing if s.day_of_week == day_of_week]
    closing = end_hour * 60
    suggestions = []
    for start in range(start_hour * 60, closing, step):
        end = start + duration
        if end > closing:
            continue
        candidate = ScheduleSlot(day_of_week, format_time(start), format_time(end))
        if not find_schedule_conflicts(candidate, same_day, grace_minutes):
            suggestions.append(candidate.start_time)
    return suggestions


def validate_schedule_slot(
    new: ScheduleSlot,
    existing: list[ScheduleSlot],
    grace_minutes: Optional[int] = None,
    max_suggestions: Optional[int] = None,
) -> ScheduleValidation:
    """Validate a proposed block; on conflict include up to N suggestions."""
    grace = settings.scheduling.grace_minutes if grace_minutes is None else grace_minutes
    limit = settings.scheduling.max_suggestions if max_suggestions is None else max_suggestions

    conflicts = find_schedule_conflicts(new, existing, grace)
    if not conflicts:
        return ScheduleValidation(is_valid=True, message="Schedule slot is available.")

    duration = calculate_duration(new.start_time, new.end_time)
    suggestions = suggest_available_slots(new.day_of_week, duration, existing, grace)
    details = ", ".join(c.describe() for c in conflicts)
    logger.debug("Schedule %s rejected, conflicts: %s", new.describe(), details)
    return ScheduleValidation(
        is_valid=False,
        conflicts=conflicts,
        suggestions=suggestions[:limit],
        message=f"Conflicts with: {details}. Grace period: {grace} minutes.",
    )
