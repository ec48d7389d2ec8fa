"""Tests for the reservation compaction job."""

from datetime import date, datetime, timedelta, timezone

import pytest

from advisory_scheduler.schemas.booking_schema import BookingStatus
from advisory_scheduler.scheduling.compaction import CompactionJob
from advisory_scheduler.store.reservations import InMemoryReservationStore
from tests.conftest import make_booking


class CancelAfterListingStore(InMemoryReservationStore):
    """Cancels every record right after listing it, as a concurrent caller would."""

    async def list_all(self):
        listed = await super().list_all()
        for booking in listed:
            await self.save(
                booking.model_copy(update={"status": BookingStatus.CANCELLED}), booking.updated_at
            )
        return listed


@pytest.fixture
def job(reservation_store, clock):
    return CompactionJob(reservation_store, clock, retention=timedelta(hours=24))


class TestCompletePastBookings:
    @pytest.mark.asyncio
    async def test_finished_session_completed(self, job, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(date(2025, 6, 2)), clock())
        clock.set(datetime(2025, 6, 3, tzinfo=timezone.utc))
        report = await job.run_once()
        assert report.completed == 1
        assert (await reservation_store.get(booking.id)).status == BookingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_future_session_untouched(self, job, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(date(2025, 6, 16)), clock())
        report = await job.run_once()
        assert report.completed == 0
        assert (await reservation_store.get(booking.id)).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_booking_cancelled_after_listing_left_alone(self, clock):
        store = CancelAfterListingStore()
        booking = await store.insert_active(make_booking(date(2025, 6, 2)), clock())
        clock.set(datetime(2025, 6, 3, tzinfo=timezone.utc))

        completed = await CompactionJob(store, clock).complete_past_bookings(clock())

        assert completed == 0
        stored = await store.get(booking.id)
        assert stored.status == BookingStatus.CANCELLED
        assert stored.version == 1


class TestPrune:
    @pytest.mark.asyncio
    async def test_old_lapsed_hold_pruned(self, job, reservation_store, clock):
        hold = make_booking(
            date(2025, 6, 16), status=BookingStatus.PENDING,
            hold_expires_at=clock() + timedelta(minutes=15),
        )
        await reservation_store.insert_active(hold, clock())
        clock.advance(minutes=25 * 60)
        assert await job.prune(clock()) == 1
        assert await reservation_store.list_all() == []

    @pytest.mark.asyncio
    async def test_recently_lapsed_hold_kept(self, job, reservation_store, clock):
        hold = make_booking(
            date(2025, 6, 16), status=BookingStatus.PENDING,
            hold_expires_at=clock() + timedelta(minutes=15),
        )
        await reservation_store.insert_active(hold, clock())
        clock.advance(minutes=60)
        assert await job.prune(clock()) == 0

    @pytest.mark.asyncio
    async def test_old_cancellation_pruned(self, job, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(date(2025, 6, 16)), clock())
        await reservation_store.save(
            booking.model_copy(update={"status": BookingStatus.CANCELLED}), clock()
        )
        clock.advance(minutes=23 * 60)
        assert await job.prune(clock()) == 0
        clock.advance(minutes=60)
        assert await job.prune(clock()) == 1

    @pytest.mark.asyncio
    async def test_confirmed_never_pruned(self, job, reservation_store, clock):
        await reservation_store.insert_active(make_booking(date(2025, 6, 16)), clock())
        clock.advance(minutes=48 * 60)
        assert await job.prune(clock()) == 0

    @pytest.mark.asyncio
    async def test_empty_store(self, job):
        report = await job.run_once()
        assert (report.completed, report.pruned) == (0, 0)
