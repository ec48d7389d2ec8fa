"""
Out-of-band maintenance for the reservation store.

Correctness never depends on this job: lapsed holds are already ignored
by every read. It only marks finished sessions as completed and prunes
records that no longer matter (lapsed holds and old cancellations).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from advisory_scheduler.config import settings
from advisory_scheduler.errors import ConcurrentUpdateError
from advisory_scheduler.schemas.booking_schema import BookingStatus
from advisory_scheduler.scheduling.lifecycle import BookingTrigger, apply_transition
from advisory_scheduler.store.reservations import ReservationStore

logger = logging.getLogger(__name__)


@dataclass
class CompactionReport:
    """Counts from one compaction pass."""

    completed: int = 0
    pruned: int = 0


class CompactionJob:
    """Periodic cleanup of the reservation store."""

    def __init__(
        self,
        reservations: ReservationStore,
        clock: Callable[[], datetime],
        retention: Optional[timedelta] = None,
    ) -> None:
        self._reservations = reservations
        self._clock = clock
        self._retention = retention if retention is not None else timedelta(
            hours=settings.holds.cancelled_retention_hours
        )

    async def complete_past_bookings(self, now: datetime) -> int:
        """Confirmed bookings whose end time has passed become completed.

        A booking changed concurrently since the listing is left for the
        next pass.
        """
        count = 0
        for booking in await self._reservations.list_all():
            if booking.status == BookingStatus.CONFIRMED and booking.end_time <= now:
                done = apply_transition(booking, BookingTrigger.SESSION_ENDED, now)
                try:
                    await self._reservations.save(done, now)
                except ConcurrentUpdateError:
                    logger.debug("Booking %s changed during compaction; next pass", booking.id)
                    continue
                count += 1
        return count

    async def prune(self, now: datetime) -> int:
        """Delete holds and cancellations that lapsed before the retention window."""
        cutoff = now - self._retention
        stale = [
            b.id for b in await self._reservations.list_all()
            if b.is_hold_lapsed(cutoff)
            or (b.status == BookingStatus.CANCELLED and b.updated_at <= cutoff)
        ]
        if not stale:
            return 0
        return await self._reservations.delete(stale)

    async def run_once(self) -> CompactionReport:
        now = self._clock()
        report = CompactionReport(
            completed=await self.complete_past_bookings(now),
            pruned=await self.prune(now),
        )
        if report.completed or report.pruned:
            logger.info(
                "Compaction: %d booking(s) completed, %d record(s) pruned",
                report.completed, report.pruned,
            )
        return report

    async def run_forever(self, interval_seconds: float) -> None:
        """Run ``run_once`` every ``interval_seconds`` until cancelled."""
        logger.info("Compaction job started (every %.0fs)", interval_seconds)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Compaction pass failed; retrying next interval")
            await asyncio.sleep(interval_seconds)
