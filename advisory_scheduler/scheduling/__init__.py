from advisory_scheduler.scheduling.availability import AvailabilityResolver
from advisory_scheduler.scheduling.compaction import CompactionJob
from advisory_scheduler.scheduling.holds import HoldManager
from advisory_scheduler.scheduling.lifecycle import BookingTrigger, apply_transition
from advisory_scheduler.scheduling.schedule_validation import (
    ScheduleSlot,
    ScheduleValidation,
    validate_schedule_slot,
)
from advisory_scheduler.scheduling.slot_generator import SlotGenerator
from advisory_scheduler.scheduling.template_admin import TemplateAdmin

__all__ = [
    "AvailabilityResolver",
    "SlotGenerator",
    "HoldManager",
    "TemplateAdmin",
    "CompactionJob",
    "BookingTrigger",
    "apply_transition",
    "ScheduleSlot",
    "ScheduleValidation",
    "validate_schedule_slot",
]
