"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from advisory_scheduler.schemas.booking_schema import Booking, BookingStatus, PaymentStatus
from advisory_scheduler.schemas.template_schema import RecurringTemplate
from advisory_scheduler.scheduling.availability import AvailabilityResolver
from advisory_scheduler.scheduling.holds import HoldManager
from advisory_scheduler.scheduling.slot_generator import SlotGenerator
from advisory_scheduler.scheduling.template_admin import TemplateAdmin
from advisory_scheduler.store.reservations import InMemoryReservationStore
from advisory_scheduler.store.templates import InMemoryTemplateStore
from advisory_scheduler.utils import local_datetime

TZ = ZoneInfo("America/Montevideo")
SERVICE = "ConsultorioFinanciero"

# Sunday 2025-06-01 09:00 in Montevideo
START = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: int = 0, seconds: int = 0) -> None:
        self.current += timedelta(minutes=minutes, seconds=seconds)

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def template_store():
    return InMemoryTemplateStore()


@pytest.fixture
def reservation_store():
    return InMemoryReservationStore()


@pytest.fixture
def generator(template_store):
    return SlotGenerator(template_store, tz=TZ, max_horizon_days=60)


@pytest.fixture
def resolver(generator, reservation_store, clock):
    return AvailabilityResolver(generator, reservation_store, conflict_mode="overlap", clock=clock)


@pytest.fixture
def exact_resolver(generator, reservation_store, clock):
    return AvailabilityResolver(generator, reservation_store, conflict_mode="exact", clock=clock)


@pytest.fixture
def hold_manager(resolver, reservation_store):
    return HoldManager(resolver, reservation_store, default_ttl=timedelta(minutes=15))


@pytest.fixture
def template_admin(template_store):
    return TemplateAdmin(template_store)


def make_template(
    day_of_week: int = 1,
    start_time: str = "10:00",
    service_type: str = SERVICE,
    duration_minutes: int = 60,
    price: float = 199.0,
    max_bookings_per_day: Optional[int] = None,
    active: bool = True,
) -> RecurringTemplate:
    """Helper to create a RecurringTemplate (Monday 10:00 by default)."""
    hours, minutes = (int(p) for p in start_time.split(":"))
    return RecurringTemplate(
        service_type=service_type,
        day_of_week=day_of_week,
        start_minute=hours * 60 + minutes,
        duration_minutes=duration_minutes,
        price=price,
        max_bookings_per_day=max_bookings_per_day,
        active=active,
    )


def make_booking(
    on: date,
    start_time: str = "10:00",
    service_type: str = SERVICE,
    duration_minutes: int = 60,
    status: BookingStatus = BookingStatus.CONFIRMED,
    hold_expires_at: Optional[datetime] = None,
    owner_id: str = "user-1",
) -> Booking:
    """Helper to create a Booking at a local business time."""
    hours, minutes = (int(p) for p in start_time.split(":"))
    start = local_datetime(on, hours * 60 + minutes, TZ)
    return Booking(
        owner_id=owner_id,
        owner_email=f"{owner_id}@example.com",
        service_type=service_type,
        start_time=start,
        end_time=start + timedelta(minutes=duration_minutes),
        duration_minutes=duration_minutes,
        status=status,
        payment_status=PaymentStatus.PAID if status == BookingStatus.CONFIRMED else PaymentStatus.PENDING,
        hold_expires_at=hold_expires_at,
        created_at=START,
        updated_at=START,
    )
