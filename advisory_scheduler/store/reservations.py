"""
Reservation store.

Holds concrete bookings and temporary holds (pending bookings with an
expiry). The store owns the invariant that at most one active record
exists per (service_type, start_time): inserts go through a unique index,
and a constraint violation is the authoritative conflict signal. Callers
may read first as a fast path, but never rely on that read alone.

A record is active when it is confirmed, or pending with no expiry or an
expiry in the future. Lapsed holds are never swept by a timer; whoever
next claims the slot cancels the lapsed occupant under the store lock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, tzinfo
from typing import Iterable, Optional

from advisory_scheduler.errors import ConcurrentUpdateError, NotFoundError, SlotConflictError
from advisory_scheduler.schemas.booking_schema import (
    Booking,
    BookingStatus,
    CancellationReason,
)

logger = logging.getLogger(__name__)

IndexKey = tuple[str, datetime]


def _index_key(booking: Booking) -> IndexKey:
    return (booking.service_type, booking.start_time)


class ReservationStore(ABC):
    """Storage interface for bookings and holds.

    Implementations raise StorageUnavailableError when the backend
    cannot be reached; an empty result always means "nothing found".
    """

    @abstractmethod
    async def insert_active(
        self,
        booking: Booking,
        now: datetime,
        check_overlap: bool = False,
        max_per_day: Optional[int] = None,
    ) -> Booking:
        """Insert an active booking under the uniqueness constraint.

        Raises:
            SlotConflictError: another active record holds the same
                (service_type, start_time), overlaps it when
                ``check_overlap`` is set, or the day is at ``max_per_day``.
        """

    @abstractmethod
    async def save(self, booking: Booking, now: datetime, check_overlap: bool = False) -> Booking:
        """Persist a status change, keeping the unique index consistent.

        Compare-and-set on ``booking.version``: the write only lands if the
        stored record still carries the version the caller read, and the
        stored copy gets the next version.

        Raises:
            ConcurrentUpdateError: the record changed since it was read.
        """

    @abstractmethod
    async def get(self, booking_id: str) -> Booking:
        """Fetch one booking. Raises NotFoundError."""

    @abstractmethod
    async def find_active(
        self, service_type: str, window_start: datetime, window_end: datetime, now: datetime
    ) -> list[Booking]:
        """Active bookings of a service overlapping [window_start, window_end)."""

    @abstractmethod
    async def count_active_on_date(
        self, service_type: str, on_date: date, now: datetime, tz: Optional[tzinfo] = None
    ) -> int:
        """Active bookings of a service starting on ``on_date``.

        The date is read in ``tz``; without one, in each booking's own zone.
        """

    @abstractmethod
    async def find_by_owner(self, owner_id: str) -> list[Booking]:
        """Every record of one owner, any status, ordered by start time."""

    @abstractmethod
    async def find_by_slot(self, service_type: str, start_time: datetime) -> list[Booking]:
        """All records, any status, starting exactly at start_time."""

    @abstractmethod
    async def list_all(self) -> list[Booking]:
        """Every stored record, ordered by start time."""

    @abstractmethod
    async def delete(self, booking_ids: Iterable[str]) -> int:
        """Remove records by id. Returns the number removed."""


class InMemoryReservationStore(ReservationStore):
    """Process-local reservation store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._active_index: dict[IndexKey, str] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Constraint checks (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _claim_key(self, booking: Booking, now: datetime) -> None:
        """Take the unique index entry for ``booking`` or raise."""
        key = _index_key(booking)
        occupant_id = self._active_index.get(key)
        if occupant_id is None or occupant_id == booking.id:
            self._active_index[key] = booking.id
            return

        occupant = self._bookings[occupant_id]
        if occupant.is_active(now):
            raise SlotConflictError(
                f"Slot {booking.service_type} at {booking.start_time.isoformat()} "
                "is already held or booked.",
                slot_key=key,
            )
        if occupant.is_hold_lapsed(now):
            self._bookings[occupant_id] = occupant.model_copy(update={
                "status": BookingStatus.CANCELLED,
                "cancellation_reason": CancellationReason.HOLD_EXPIRED.value,
                "updated_at": now,
                "version": occupant.version + 1,
            })
            logger.info("Lapsed hold %s reclaimed by %s", occupant_id, booking.id)
        self._active_index[key] = booking.id

    def _check_overlap(self, booking: Booking, now: datetime) -> None:
        clashes = [
            b for b in self._bookings.values()
            if b.id != booking.id
            and b.service_type == booking.service_type
            and b.is_active(now)
            and b.overlaps(booking.start_time, booking.end_time)
        ]
        if clashes:
            raise SlotConflictError(
                f"Slot {booking.service_type} at {booking.start_time.isoformat()} "
                f"overlaps {len(clashes)} existing booking(s).",
                slot_key=_index_key(booking),
                conflicts=len(clashes),
            )

    def _count_on_date(
        self,
        service_type: str,
        on_date: date,
        now: datetime,
        tz: Optional[tzinfo] = None,
        exclude_id: Optional[str] = None,
    ) -> int:
        return sum(
            1 for b in self._bookings.values()
            if b.id != exclude_id
            and b.service_type == service_type
            and b.is_active(now)
            and b.start_time.astimezone(tz or b.start_time.tzinfo).date() == on_date
        )

    def _check_day_cap(self, booking: Booking, now: datetime, max_per_day: int) -> None:
        tz = booking.start_time.tzinfo
        day = booking.start_time.date()
        taken = self._count_on_date(booking.service_type, day, now, tz, exclude_id=booking.id)
        if taken >= max_per_day:
            raise SlotConflictError(
                f"{booking.service_type} already has {taken} booking(s) on {day.isoformat()} "
                f"(limit {max_per_day}).",
                slot_key=_index_key(booking),
                conflicts=taken,
            )

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def insert_active(
        self,
        booking: Booking,
        now: datetime,
        check_overlap: bool = False,
        max_per_day: Optional[int] = None,
    ) -> Booking:
        if not booking.is_active(now):
            raise ValueError(f"Booking {booking.id} is not active and cannot claim a slot")
        async with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking {booking.id} already exists")
            if check_overlap:
                self._check_overlap(booking, now)
            if max_per_day is not None:
                self._check_day_cap(booking, now, max_per_day)
            self._claim_key(booking, now)
            stored = booking.model_copy(deep=True)
            self._bookings[stored.id] = stored
        logger.debug("Booking %s stored for %s", stored.id, _index_key(stored))
        return stored.model_copy(deep=True)

    async def save(self, booking: Booking, now: datetime, check_overlap: bool = False) -> Booking:
        async with self._lock:
            current = self._bookings.get(booking.id)
            if current is None:
                raise NotFoundError(f"Booking {booking.id} not found.")
            if current.version != booking.version:
                raise ConcurrentUpdateError(
                    f"Booking {booking.id} changed since it was read "
                    f"(version {booking.version}, stored {current.version}).",
                    booking_id=booking.id,
                )
            key = _index_key(booking)
            if booking.is_active(now):
                if check_overlap:
                    self._check_overlap(booking, now)
                self._claim_key(booking, now)
            elif self._active_index.get(key) == booking.id:
                del self._active_index[key]
            stored = booking.model_copy(
                deep=True, update={"updated_at": now, "version": current.version + 1}
            )
            self._bookings[stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete(self, booking_ids: Iterable[str]) -> int:
        removed = 0
        async with self._lock:
            for booking_id in booking_ids:
                booking = self._bookings.pop(booking_id, None)
                if booking is None:
                    continue
                key = _index_key(booking)
                if self._active_index.get(key) == booking_id:
                    del self._active_index[key]
                removed += 1
        return removed

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found.")
        return booking.model_copy(deep=True)

    async def find_active(
        self, service_type: str, window_start: datetime, window_end: datetime, now: datetime
    ) -> list[Booking]:
        found = [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.service_type == service_type
            and b.is_active(now)
            and b.overlaps(window_start, window_end)
        ]
        return sorted(found, key=lambda b: b.start_time)

    async def count_active_on_date(
        self, service_type: str, on_date: date, now: datetime, tz: Optional[tzinfo] = None
    ) -> int:
        return self._count_on_date(service_type, on_date, now, tz)

    async def find_by_owner(self, owner_id: str) -> list[Booking]:
        found = [b.model_copy(deep=True) for b in self._bookings.values() if b.owner_id == owner_id]
        return sorted(found, key=lambda b: b.start_time)

    async def find_by_slot(self, service_type: str, start_time: datetime) -> list[Booking]:
        found = [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.service_type == service_type and b.start_time == start_time
        ]
        return sorted(found, key=lambda b: b.created_at)

    async def list_all(self) -> list[Booking]:
        return sorted(
            (b.model_copy(deep=True) for b in self._bookings.values()),
            key=lambda b: b.start_time,
        )
