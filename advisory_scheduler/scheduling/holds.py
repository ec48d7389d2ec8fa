"""
Temporary hold manager.

Bridges "user picked a slot" and "payment confirmed". A hold is a
pending booking with ``hold_expires_at`` set; it occupies the slot until it
is promoted, released, or its expiry passes. Expiry is passive: readers
ignore lapsed holds and the next claimant cancels them under the store
lock, so no timer is involved.

Usage:
    manager = HoldManager(resolver, reservations)
    hold = await manager.acquire_hold(slot_key, "user-1", "ana@example.com")
    ... payment provider confirms ...
    booking = await manager.promote(hold.id)
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from advisory_scheduler.config import settings
from advisory_scheduler.errors import (
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from advisory_scheduler.logging_context import get_request_logger
from advisory_scheduler.schemas.booking_schema import (
    Booking,
    BookingStatus,
    CancellationReason,
    PaymentStatus,
    SlotKey,
)
from advisory_scheduler.scheduling.availability import AvailabilityResolver
from advisory_scheduler.scheduling.lifecycle import BookingTrigger, apply_transition
from advisory_scheduler.scheduling.services import require_service
from advisory_scheduler.store.reservations import ReservationStore

logger = get_request_logger(__name__)

MAX_WRITE_ATTEMPTS = 3


class HoldManager:
    """Acquires, promotes, and releases temporary holds."""

    def __init__(
        self,
        resolver: AvailabilityResolver,
        reservations: ReservationStore,
        default_ttl: Optional[timedelta] = None,
    ) -> None:
        self._resolver = resolver
        self._reservations = reservations
        self._default_ttl = default_ttl or timedelta(minutes=settings.holds.ttl_minutes)

    @property
    def _check_overlap(self) -> bool:
        return self._resolver.conflict_mode == "overlap"

    def _now(self) -> datetime:
        return self._resolver.now()

    # ------------------------------------------------------------------ #
    # Acquire
    # ------------------------------------------------------------------ #

    async def acquire_hold(
        self,
        slot_key: SlotKey,
        owner_id: str,
        owner_email: str,
        ttl: Optional[timedelta] = None,
        owner_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """Place a hold on ``slot_key`` for ``ttl`` (default from config).

        Raises:
            SlotConflictError: The slot is held or booked. Raised either by
                the fast-path read or by the store's uniqueness constraint,
                which is the authoritative check.
            ValidationError: The slot has already started.
            ValueError: ``ttl`` is not positive.
        """
        ttl = ttl if ttl is not None else self._default_ttl
        if ttl <= timedelta(0):
            raise ValueError("Hold ttl must be positive")

        start, end, template = await self._resolver.slot_span(slot_key)
        if start <= self._now():
            raise ValidationError(f"{slot_key} has already started.", field="time")

        check = await self._resolver.check_slot(slot_key)
        if not check.available:
            logger.warning("Hold refused for %s: %s", slot_key, check.message)
            raise SlotConflictError(check.message, slot_key=slot_key, conflicts=check.conflicts)

        now = self._now()
        if template is not None:
            price = template.price
        else:
            price = require_service(slot_key.service_type)["price"]
        hold = Booking(
            owner_id=owner_id,
            owner_email=owner_email,
            owner_name=owner_name,
            service_type=slot_key.service_type,
            start_time=start,
            end_time=end,
            duration_minutes=int((end - start).total_seconds() // 60),
            price=price,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            hold_expires_at=now + ttl,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        try:
            stored = await self._reservations.insert_active(
                hold,
                now,
                check_overlap=self._check_overlap,
                max_per_day=template.max_bookings_per_day if template is not None else None,
            )
        except SlotConflictError as exc:
            logger.warning("Hold lost race for %s: %s", slot_key, exc)
            exc.slot_key = slot_key
            raise
        logger.info(
            "Hold %s acquired on %s by %s until %s",
            stored.id, slot_key, owner_id, stored.hold_expires_at.isoformat(),
        )
        return stored

    # ------------------------------------------------------------------ #
    # Outcomes
    # ------------------------------------------------------------------ #

    async def _update(
        self,
        booking_id: str,
        change: Callable[[Booking, datetime], Optional[Booking]],
        check_overlap: bool = False,
    ) -> tuple[Booking, bool]:
        """Read, apply ``change``, and compare-and-set the result.

        ``change`` returns the new record, or None when nothing needs
        writing. A concurrent writer makes the save fail; the record is then
        re-read and ``change`` re-applied to the fresh state, so it may
        raise InvalidTransitionError on a retry that it did not raise on
        the first read. Returns the record and whether it was written.
        """
        attempt = 1
        while True:
            booking = await self._reservations.get(booking_id)
            now = self._now()
            updated = change(booking, now)
            if updated is None:
                return booking, False
            try:
                stored = await self._reservations.save(updated, now, check_overlap=check_overlap)
            except ConcurrentUpdateError:
                if attempt >= MAX_WRITE_ATTEMPTS:
                    raise
                logger.info("Booking %s changed concurrently, re-reading", booking_id)
                attempt += 1
                continue
            return stored, True

    async def promote(self, booking_id: str, external_event_id: Optional[str] = None) -> Booking:
        """Confirm a hold after payment. Promoting a confirmed booking is a no-op.

        A payment arriving after the hold lapsed is honoured while the slot
        is still free; if another hold has already reclaimed it, the
        booking cannot be confirmed and SlotConflictError is raised so the
        payment can be refunded.
        """

        def confirm(booking: Booking, now: datetime) -> Optional[Booking]:
            if booking.status == BookingStatus.CONFIRMED:
                if external_event_id and booking.external_event_id != external_event_id:
                    return booking.model_copy(update={"external_event_id": external_event_id})
                return None
            if (
                booking.status == BookingStatus.CANCELLED
                and booking.cancellation_reason == CancellationReason.HOLD_EXPIRED.value
            ):
                raise SlotConflictError(
                    f"Hold {booking_id} expired and its slot was taken before payment arrived.",
                    slot_key=(booking.service_type, booking.start_time),
                )
            confirmed = apply_transition(booking, BookingTrigger.PAYMENT_CONFIRMED, now)
            if external_event_id:
                confirmed = confirmed.model_copy(update={"external_event_id": external_event_id})
            return confirmed

        stored, written = await self._update(booking_id, confirm, check_overlap=self._check_overlap)
        if written:
            logger.info("Booking %s confirmed for %s", stored.id, stored.owner_id)
        else:
            logger.debug("Booking %s already confirmed", booking_id)
        return stored

    async def release(self, booking_id: str) -> Booking:
        """Cancel a hold or booking explicitly. Releasing twice is a no-op."""

        def cancel(booking: Booking, now: datetime) -> Optional[Booking]:
            if booking.status == BookingStatus.CANCELLED:
                return None
            return apply_transition(booking, BookingTrigger.RELEASED, now)

        stored, written = await self._update(booking_id, cancel)
        if written:
            logger.info("Booking %s released", booking_id)
        return stored

    async def mark_payment_failed(self, booking_id: str) -> Booking:
        """Payment provider reported failure: cancel the hold and free the slot."""

        def fail(booking: Booking, now: datetime) -> Optional[Booking]:
            if booking.payment_status == PaymentStatus.FAILED:
                return None
            return apply_transition(booking, BookingTrigger.PAYMENT_FAILED, now)

        stored, written = await self._update(booking_id, fail)
        if written:
            logger.info("Booking %s cancelled after failed payment", booking_id)
        return stored

    async def refund(self, booking_id: str) -> Booking:
        """Refund a paid booking and free its slot."""

        def refund_paid(booking: Booking, now: datetime) -> Optional[Booking]:
            if booking.payment_status == PaymentStatus.REFUNDED:
                return None
            if booking.payment_status != PaymentStatus.PAID:
                raise InvalidTransitionError(
                    f"Booking {booking_id} has payment status '{booking.payment_status.value}'; "
                    "only paid bookings can be refunded."
                )
            return apply_transition(booking, BookingTrigger.REFUNDED, now)

        stored, written = await self._update(booking_id, refund_paid)
        if written:
            logger.info("Booking %s refunded", booking_id)
        return stored

    # ------------------------------------------------------------------ #
    # Slot-key addressed variants
    # ------------------------------------------------------------------ #

    async def find_active_hold(self, slot_key: SlotKey) -> Booking:
        """The record currently occupying ``slot_key``. Raises NotFoundError."""
        start, _, _ = await self._resolver.slot_span(slot_key)
        now = self._now()
        for booking in await self._reservations.find_by_slot(slot_key.service_type, start):
            if booking.is_active(now):
                return booking
        raise NotFoundError(f"No active hold or booking on {slot_key}.")

    async def promote_slot(self, slot_key: SlotKey, external_event_id: Optional[str] = None) -> Booking:
        booking = await self.find_active_hold(slot_key)
        return await self.promote(booking.id, external_event_id=external_event_id)

    async def release_slot(self, slot_key: SlotKey) -> Booking:
        booking = await self.find_active_hold(slot_key)
        return await self.release(booking.id)
