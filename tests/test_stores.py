"""Tests for the in-memory template and reservation stores."""

from datetime import date, timedelta, timezone

import pytest

from advisory_scheduler.errors import (
    ConcurrentUpdateError,
    NotFoundError,
    SlotConflictError,
    TemplateConflictError,
)
from advisory_scheduler.schemas.booking_schema import BookingStatus, CancellationReason
from tests.conftest import TZ, make_booking, make_template

JUNE_16 = date(2025, 6, 16)


class TestTemplateStore:
    @pytest.mark.asyncio
    async def test_unique_key(self, template_store):
        await template_store.add(make_template())
        with pytest.raises(TemplateConflictError):
            await template_store.add(make_template(price=10))

    @pytest.mark.asyncio
    async def test_same_time_other_service_allowed(self, template_store):
        await template_store.add(make_template())
        await template_store.add(make_template(service_type="CuentaAsesorada"))
        assert len(await template_store.find()) == 2

    @pytest.mark.asyncio
    async def test_replace_moves_key(self, template_store):
        template = await template_store.add(make_template())
        await template_store.replace(template.model_copy(update={"start_minute": 720}))
        await template_store.add(make_template())  # old key is free again

    @pytest.mark.asyncio
    async def test_returns_copies(self, template_store):
        template = await template_store.add(make_template())
        template.price = 1.0
        assert (await template_store.get(template.id)).price == 199.0

    @pytest.mark.asyncio
    async def test_find_filters(self, template_store):
        await template_store.add(make_template(active=False))
        await template_store.add(make_template(day_of_week=0, service_type="SwingTrading"))
        assert [t.day_of_week for t in await template_store.find()] == [0]
        assert len(await template_store.find(active_only=False)) == 2
        assert await template_store.find(service_type="CuentaAsesorada") == []

    @pytest.mark.asyncio
    async def test_get_missing(self, template_store):
        with pytest.raises(NotFoundError):
            await template_store.get("TPL-MISSING")


class TestReservationStore:
    @pytest.mark.asyncio
    async def test_unique_active_slot(self, reservation_store, clock):
        await reservation_store.insert_active(make_booking(JUNE_16), clock())
        with pytest.raises(SlotConflictError):
            await reservation_store.insert_active(make_booking(JUNE_16, owner_id="user-2"), clock())

    @pytest.mark.asyncio
    async def test_overlap_checked_on_request(self, reservation_store, clock):
        await reservation_store.insert_active(make_booking(JUNE_16, "10:00"), clock())
        later = make_booking(JUNE_16, "10:30", owner_id="user-2")
        with pytest.raises(SlotConflictError):
            await reservation_store.insert_active(later, clock(), check_overlap=True)

    @pytest.mark.asyncio
    async def test_day_cap(self, reservation_store, clock):
        await reservation_store.insert_active(make_booking(JUNE_16, "10:00"), clock())
        with pytest.raises(SlotConflictError, match="limit 1"):
            await reservation_store.insert_active(
                make_booking(JUNE_16, "14:00", owner_id="user-2"), clock(), max_per_day=1
            )

    @pytest.mark.asyncio
    async def test_lapsed_occupant_cancelled_on_claim(self, reservation_store, clock):
        hold = make_booking(
            JUNE_16, status=BookingStatus.PENDING, hold_expires_at=clock() + timedelta(minutes=5)
        )
        await reservation_store.insert_active(hold, clock())
        clock.advance(minutes=5)
        await reservation_store.insert_active(make_booking(JUNE_16, owner_id="user-2"), clock())
        old = await reservation_store.get(hold.id)
        assert old.status == BookingStatus.CANCELLED
        assert old.cancellation_reason == CancellationReason.HOLD_EXPIRED.value

    @pytest.mark.asyncio
    async def test_inactive_insert_rejected(self, reservation_store, clock):
        with pytest.raises(ValueError):
            await reservation_store.insert_active(
                make_booking(JUNE_16, status=BookingStatus.CANCELLED), clock()
            )

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(JUNE_16), clock())
        with pytest.raises(ValueError):
            await reservation_store.insert_active(booking, clock())

    @pytest.mark.asyncio
    async def test_save_unknown(self, reservation_store, clock):
        with pytest.raises(NotFoundError):
            await reservation_store.save(make_booking(JUNE_16), clock())

    @pytest.mark.asyncio
    async def test_delete_frees_slot(self, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(JUNE_16), clock())
        assert await reservation_store.delete([booking.id, "BK-MISSING"]) == 1
        await reservation_store.insert_active(make_booking(JUNE_16, owner_id="user-2"), clock())

    @pytest.mark.asyncio
    async def test_find_by_slot_includes_history(self, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(JUNE_16), clock())
        await reservation_store.save(
            booking.model_copy(update={"status": BookingStatus.CANCELLED}), clock()
        )
        await reservation_store.insert_active(make_booking(JUNE_16, owner_id="user-2"), clock())
        found = await reservation_store.find_by_slot(booking.service_type, booking.start_time)
        assert len(found) == 2

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(JUNE_16), clock())
        assert booking.version == 0
        saved = await reservation_store.save(booking.model_copy(update={"notes": "x"}), clock())
        assert saved.version == 1

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self, reservation_store, clock):
        booking = await reservation_store.insert_active(make_booking(JUNE_16), clock())
        await reservation_store.save(
            booking.model_copy(update={"status": BookingStatus.CANCELLED}), clock()
        )
        with pytest.raises(ConcurrentUpdateError):
            await reservation_store.save(booking.model_copy(update={"notes": "late"}), clock())
        assert (await reservation_store.get(booking.id)).status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_reclaiming_lapsed_hold_bumps_its_version(self, reservation_store, clock):
        hold = make_booking(
            JUNE_16, status=BookingStatus.PENDING, hold_expires_at=clock() + timedelta(minutes=5)
        )
        hold = await reservation_store.insert_active(hold, clock())
        clock.advance(minutes=5)
        await reservation_store.insert_active(make_booking(JUNE_16, owner_id="user-2"), clock())
        with pytest.raises(ConcurrentUpdateError):
            await reservation_store.save(
                hold.model_copy(update={"status": BookingStatus.CONFIRMED, "hold_expires_at": None}),
                clock(),
            )

    @pytest.mark.asyncio
    async def test_count_active_on_date(self, reservation_store, clock):
        await reservation_store.insert_active(make_booking(JUNE_16, "10:00"), clock())
        await reservation_store.insert_active(make_booking(JUNE_16, "14:00", owner_id="user-2"), clock())
        await reservation_store.insert_active(
            make_booking(JUNE_16, "16:00", service_type="SwingTrading"), clock()
        )
        cancelled = await reservation_store.insert_active(
            make_booking(JUNE_16, "18:00", owner_id="user-3"), clock()
        )
        await reservation_store.save(
            cancelled.model_copy(update={"status": BookingStatus.CANCELLED}), clock()
        )
        await reservation_store.insert_active(make_booking(date(2025, 6, 17), "10:00"), clock())

        count = reservation_store.count_active_on_date
        assert await count("ConsultorioFinanciero", JUNE_16, clock()) == 2
        assert await count("SwingTrading", JUNE_16, clock()) == 1

    @pytest.mark.asyncio
    async def test_count_active_on_date_reads_date_in_zone(self, reservation_store, clock):
        # 22:00 in Montevideo on the 16th is already the 17th in UTC
        await reservation_store.insert_active(make_booking(JUNE_16, "22:00"), clock())
        service = "ConsultorioFinanciero"
        assert await reservation_store.count_active_on_date(service, JUNE_16, clock(), tz=TZ) == 1
        utc_count = await reservation_store.count_active_on_date(
            service, JUNE_16, clock(), tz=timezone.utc
        )
        assert utc_count == 0

    @pytest.mark.asyncio
    async def test_find_by_owner(self, reservation_store, clock):
        later = await reservation_store.insert_active(make_booking(JUNE_16, "14:00"), clock())
        earlier = await reservation_store.insert_active(make_booking(JUNE_16, "10:00"), clock())
        await reservation_store.save(
            earlier.model_copy(update={"status": BookingStatus.CANCELLED}), clock()
        )
        await reservation_store.insert_active(make_booking(JUNE_16, "16:00", owner_id="user-2"), clock())

        found = await reservation_store.find_by_owner("user-1")
        assert [b.id for b in found] == [earlier.id, later.id]
        assert found[0].status == BookingStatus.CANCELLED
        assert await reservation_store.find_by_owner("nobody") == []
