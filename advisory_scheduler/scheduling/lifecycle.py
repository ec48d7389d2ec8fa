"""
Table-driven lifecycle for booking and payment status changes.

Every status change a booking can undergo is listed explicitly. The hold
manager and the compaction job go through ``apply_transition`` so an
illegal change (e.g. confirming a cancelled booking) is rejected with a
message naming the allowed triggers.

Usage:
    booking = apply_transition(booking, BookingTrigger.PAYMENT_CONFIRMED, now)
    assert booking.status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from advisory_scheduler.errors import InvalidTransitionError
from advisory_scheduler.schemas.booking_schema import (
    Booking,
    BookingStatus,
    CancellationReason,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that change a booking's status."""
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    RELEASED = "released"
    HOLD_EXPIRED = "hold_expired"
    SESSION_ENDED = "session_ended"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class Transition:
    """A single valid booking transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: BookingTrigger
    payment_status: Optional[PaymentStatus] = None
    cancellation_reason: Optional[CancellationReason] = None


TRANSITIONS: list[Transition] = [
    # --- Hold outcomes ---
    Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED,
               BookingTrigger.PAYMENT_CONFIRMED, PaymentStatus.PAID),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED,
               BookingTrigger.PAYMENT_FAILED, PaymentStatus.FAILED,
               CancellationReason.PAYMENT_FAILED),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED,
               BookingTrigger.RELEASED, None, CancellationReason.RELEASED),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED,
               BookingTrigger.HOLD_EXPIRED, None, CancellationReason.HOLD_EXPIRED),

    # --- Confirmed bookings ---
    Transition(BookingStatus.CONFIRMED, BookingStatus.CONFIRMED,
               BookingTrigger.PAYMENT_CONFIRMED, PaymentStatus.PAID),
    Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
               BookingTrigger.RELEASED, None, CancellationReason.RELEASED),
    Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
               BookingTrigger.REFUNDED, PaymentStatus.REFUNDED, CancellationReason.REFUNDED),
    Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED,
               BookingTrigger.SESSION_ENDED),

    # --- Terminal ---
    Transition(BookingStatus.CANCELLED, BookingStatus.CANCELLED,
               BookingTrigger.RELEASED),
]


def valid_triggers(status: BookingStatus) -> list[BookingTrigger]:
    """Return all triggers valid from ``status``."""
    return [t.trigger for t in TRANSITIONS if t.from_status == status]


def find_transition(status: BookingStatus, trigger: BookingTrigger) -> Transition:
    for t in TRANSITIONS:
        if t.from_status == status and t.trigger == trigger:
            return t
    valid = [t.value for t in valid_triggers(status)]
    raise InvalidTransitionError(
        f"No valid transition from '{status.value}' "
        f"with trigger '{trigger.value}'. Valid triggers: {valid}"
    )


def apply_transition(booking: Booking, trigger: BookingTrigger, now: datetime) -> Booking:
    """
    Return a copy of ``booking`` moved along ``trigger``.

    Raises:
        InvalidTransitionError: If no valid transition exists.
    """
    t = find_transition(booking.status, trigger)
    update: dict = {"status": t.to_status, "updated_at": now}
    if t.payment_status is not None:
        update["payment_status"] = t.payment_status
    if t.cancellation_reason is not None:
        update["cancellation_reason"] = t.cancellation_reason.value
    if t.to_status != BookingStatus.PENDING:
        update["hold_expires_at"] = None

    logger.debug(
        "Booking %s: %s -> %s (trigger: %s)",
        booking.id, booking.status.value, t.to_status.value, trigger.value,
    )
    return booking.model_copy(update=update)


def is_terminal(status: BookingStatus) -> bool:
    """Completed and cancelled bookings never occupy a slot again."""
    return status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)
