"""
Availability resolver.

Answers "is this slot free?" and "which slots are free in this range?"
by comparing candidate slots against active reservations. Lapsed holds
are filtered out on every read, so an expired hold frees its slot for the
next reader without any background job.

Two conflict policies are supported:
    overlap  half-open interval overlap with any active booking of the
             same service (default)
    exact    only a booking starting at the same local
             (year, month, day, hour, minute) conflicts

Store failures propagate as StorageUnavailableError; a failed read is
never reported as "available".
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Union

from advisory_scheduler.config import CONFLICT_MODES, settings
from advisory_scheduler.errors import ValidationError
from advisory_scheduler.logging_context import get_request_logger
from advisory_scheduler.schemas.booking_schema import AvailabilityResult, AvailableSlot, Booking, SlotKey
from advisory_scheduler.scheduling.services import require_service
from advisory_scheduler.scheduling.slot_generator import SlotGenerator
from advisory_scheduler.store.reservations import ReservationStore
from advisory_scheduler.utils import local_datetime, parse_date, parse_time

logger = get_request_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _wall_clock(value: datetime, tz) -> tuple[int, int, int, int, int]:
    local = value.astimezone(tz)
    return (local.year, local.month, local.day, local.hour, local.minute)


class AvailabilityResolver:
    """Resolves slot availability against the reservation store."""

    def __init__(
        self,
        generator: SlotGenerator,
        reservations: ReservationStore,
        conflict_mode: Optional[str] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        mode = (conflict_mode or settings.scheduling.conflict_mode).lower()
        if mode not in CONFLICT_MODES:
            raise ValueError(f"conflict_mode must be one of {CONFLICT_MODES}, got {mode!r}")
        self._generator = generator
        self._reservations = reservations
        self._mode = mode
        self._clock = clock or utc_now

    @property
    def conflict_mode(self) -> str:
        return self._mode

    @property
    def generator(self) -> SlotGenerator:
        return self._generator

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ #
    # Slot resolution
    # ------------------------------------------------------------------ #

    def to_slot_key(
        self, when: Union[str, date], time: Union[str, int], service_type: str
    ) -> SlotKey:
        """Parse request inputs into a SlotKey (date strings in any accepted format)."""
        require_service(service_type)
        today = self.now().astimezone(self._generator.tz).date()
        slot_date = parse_date(when, today=today) if isinstance(when, str) else when
        start_minute = parse_time(time) if isinstance(time, str) else time
        if not 0 <= start_minute < 24 * 60:
            raise ValidationError(f"Invalid start minute {start_minute}.", field="time")
        return SlotKey(date=slot_date, start_minute=start_minute, service_type=service_type)

    async def slot_span(self, slot_key: SlotKey):
        """Start, end, and offering template (or None) for a slot.

        The duration comes from the template offering this exact slot, or
        the service's catalog default when no template matches.
        """
        template = await self._generator.template_for(
            slot_key.service_type, slot_key.date, slot_key.start_minute
        )
        duration = (
            template.duration_minutes if template
            else require_service(slot_key.service_type)["duration_minutes"]
        )
        start = local_datetime(slot_key.date, slot_key.start_minute, self._generator.tz)
        return start, start + timedelta(minutes=duration), template

    def _day_window(self, day: date) -> tuple[datetime, datetime]:
        start = local_datetime(day, 0, self._generator.tz)
        return start, start + timedelta(days=1)

    def conflicting(
        self, bookings: list[Booking], start: datetime, end: datetime
    ) -> list[Booking]:
        """Bookings (already filtered to active) that clash with [start, end)."""
        if self._mode == "exact":
            target = _wall_clock(start, self._generator.tz)
            return [b for b in bookings if _wall_clock(b.start_time, self._generator.tz) == target]
        return [b for b in bookings if b.overlaps(start, end)]

    # ------------------------------------------------------------------ #
    # Single-slot check
    # ------------------------------------------------------------------ #

    async def check_availability(
        self, when: Union[str, date], time: Union[str, int], service_type: str
    ) -> AvailabilityResult:
        """Check one slot. Expected "taken" outcomes are results, not errors."""
        return await self.check_slot(self.to_slot_key(when, time, service_type))

    async def check_slot(self, slot_key: SlotKey) -> AvailabilityResult:
        now = self.now()
        start, end, template = await self.slot_span(slot_key)
        day_start, day_end = self._day_window(slot_key.date)

        if self._mode == "exact":
            candidates = await self._reservations.find_active(
                slot_key.service_type, day_start, day_end, now
            )
        else:
            candidates = await self._reservations.find_active(
                slot_key.service_type, start, end, now
            )
        conflicts = self.conflicting(candidates, start, end)

        reasons = [
            f"{b.status.value} booking {b.id} "
            f"{b.start_time.astimezone(self._generator.tz):%H:%M}-"
            f"{b.end_time.astimezone(self._generator.tz):%H:%M}"
            for b in conflicts
        ]

        capped = False
        if template is not None and template.max_bookings_per_day:
            taken = await self._reservations.count_active_on_date(
                slot_key.service_type, slot_key.date, now, tz=self._generator.tz
            )
            if taken >= template.max_bookings_per_day:
                capped = True
                reasons.append(
                    f"daily limit reached ({taken}/{template.max_bookings_per_day})"
                )

        available = not conflicts and not capped
        if available:
            message = f"{slot_key} is available."
        elif conflicts:
            message = f"{slot_key} is not available: {len(conflicts)} conflicting booking(s)."
        else:
            message = f"{slot_key} is not available: daily limit reached."

        logger.debug("Availability %s -> %s (%s)", slot_key, available, self._mode)
        return AvailabilityResult(
            available=available,
            conflicts=len(conflicts),
            reasons=reasons,
            message=message,
            requested_start=start,
            requested_end=end,
        )

    # ------------------------------------------------------------------ #
    # Range listing
    # ------------------------------------------------------------------ #

    async def list_available_slots(
        self, service_type: str, start_date: date, end_date: date
    ) -> list[AvailableSlot]:
        """Candidate slots in range minus taken, capped, and already-started ones."""
        candidates = await self._generator.generate_candidates(service_type, start_date, end_date)
        if not candidates:
            return []

        now = self.now()
        window_start, _ = self._day_window(start_date)
        _, window_end = self._day_window(end_date)
        bookings = await self._reservations.find_active(service_type, window_start, window_end, now)

        per_day: dict[date, int] = {}
        for day in sorted({s.date for s in candidates if s.max_bookings_per_day}):
            per_day[day] = await self._reservations.count_active_on_date(
                service_type, day, now, tz=self._generator.tz
            )

        free: list[AvailableSlot] = []
        for slot in candidates:
            if slot.start_time <= now:
                continue
            if slot.max_bookings_per_day and per_day[slot.date] >= slot.max_bookings_per_day:
                continue
            if self.conflicting(bookings, slot.start_time, slot.end_time):
                continue
            free.append(slot)

        logger.debug(
            "%d of %d candidate slot(s) free for %s %s..%s",
            len(free), len(candidates), service_type, start_date, end_date,
        )
        return free
