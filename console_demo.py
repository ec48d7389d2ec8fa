"""
Offline console demo: walks through the scheduler with in-memory stores.

Uses the real template admin, slot generator, resolver, and hold manager
with a simulated clock. No HTTP server and no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario race
    python console_demo.py --scenario expiry
    python console_demo.py --scenario schedule
"""

import argparse
import asyncio
import sys
from datetime import date, datetime, timedelta, timezone

from advisory_scheduler.errors import SlotConflictError, TemplateConflictError
from advisory_scheduler.logging_context import request_scope
from advisory_scheduler.schemas.template_schema import TemplateInput
from advisory_scheduler.scheduling import (
    AvailabilityResolver,
    HoldManager,
    SlotGenerator,
    TemplateAdmin,
)
from advisory_scheduler.store.reservations import InMemoryReservationStore
from advisory_scheduler.store.templates import InMemoryTemplateStore
from advisory_scheduler.utils import format_display_date

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

SERVICE = "ConsultorioFinanciero"


class DemoClock:
    """A clock the demo moves forward by hand."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: int) -> None:
        self.current += timedelta(minutes=minutes)


class ConsoleSession:
    """Runs scripted scheduler scenarios in the terminal."""

    SCENARIOS = ("booking", "race", "expiry", "schedule")

    def __init__(self) -> None:
        self.clock = DemoClock(datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))
        self.templates = InMemoryTemplateStore()
        self.reservations = InMemoryReservationStore()
        self.generator = SlotGenerator(self.templates)
        self.resolver = AvailabilityResolver(self.generator, self.reservations, clock=self.clock)
        self.holds = HoldManager(self.resolver, self.reservations)
        self.admin = TemplateAdmin(self.templates)

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def warn(self, text: str) -> None:
        print(f"{YELLOW}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def header(self, text: str) -> None:
        print(f"\n{BLUE}{BOLD}=== {text} ==={RESET}")

    async def _seed(self) -> None:
        # Monday and Wednesday mornings
        for day in (1, 3):
            template = await self.admin.create(
                TemplateInput(service_type=SERVICE, day_of_week=day, start_time="10:00")
            )
            self.system_log(f"template {template.id}: {template.describe()}")
            template = await self.admin.create(
                TemplateInput(service_type=SERVICE, day_of_week=day, start_time="14:00")
            )
            self.system_log(f"template {template.id}: {template.describe()}")

    async def _show_slots(self, start: date, end: date) -> None:
        slots = await self.resolver.list_available_slots(SERVICE, start, end)
        if not slots:
            self.warn("No free slots.")
        for slot in slots:
            self.say(f"  {format_display_date(slot.date)} {slot.time}  ${slot.price:.0f}")

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    async def booking(self) -> None:
        self.header("Hold and confirm a session")
        await self._seed()
        await self._show_slots(date(2025, 6, 2), date(2025, 6, 8))

        key = self.resolver.to_slot_key("2025-06-02", "10:00", SERVICE)
        hold = await self.holds.acquire_hold(key, "user-1", "ana@example.com", owner_name="Ana")
        self.system_log(f"hold {hold.id} until {hold.hold_expires_at:%H:%M} UTC")
        booking = await self.holds.promote(hold.id, external_event_id="evt-001")
        self.say(f"Booking {booking.id} is {booking.status.value} ({booking.payment_status.value})")

        self.system_log("slots after booking:")
        await self._show_slots(date(2025, 6, 2), date(2025, 6, 8))

    async def race(self) -> None:
        self.header("Five clients race for one slot")
        await self._seed()
        key = self.resolver.to_slot_key("2025-06-04", "14:00", SERVICE)
        results = await asyncio.gather(
            *(self.holds.acquire_hold(key, f"user-{i}", f"user{i}@example.com") for i in range(5)),
            return_exceptions=True,
        )
        for i, result in enumerate(results):
            if isinstance(result, SlotConflictError):
                self.warn(f"user-{i}: refused ({result})")
            else:
                self.say(f"user-{i}: got hold {result.id}")

    async def expiry(self) -> None:
        self.header("An unpaid hold lapses")
        await self._seed()
        key = self.resolver.to_slot_key("2025-06-02", "14:00", SERVICE)
        hold = await self.holds.acquire_hold(
            key, "user-1", "ana@example.com", ttl=timedelta(minutes=5)
        )
        self.system_log(f"hold {hold.id} placed")
        elapsed = 0
        for step in (1, 5):
            self.clock.advance(step)
            elapsed += step
            check = await self.resolver.check_slot(key)
            self.say(f"t+{elapsed}m: {check.message}")
        second = await self.holds.acquire_hold(key, "user-2", "bruno@example.com")
        self.say(f"user-2 took the slot with hold {second.id}")
        first = await self.reservations.get(hold.id)
        self.system_log(f"first hold is now {first.status.value} ({first.cancellation_reason})")

    async def schedule(self) -> None:
        self.header("Admin adds a clashing template")
        await self._seed()
        try:
            await self.admin.create(
                TemplateInput(service_type="SwingTrading", day_of_week=1, start_time="10:15")
            )
        except TemplateConflictError as exc:
            self.warn(str(exc))
            self.say("Suggested start times: " + ", ".join(exc.suggestions))

    async def run(self, scenario: str) -> None:
        with request_scope(f"DEMO-{scenario}"):
            await getattr(self, scenario)()


def main() -> None:
    parser = argparse.ArgumentParser(description="Advisory scheduler console demo")
    parser.add_argument(
        "--scenario",
        choices=ConsoleSession.SCENARIOS,
        default="booking",
        help="Scripted scenario to run",
    )
    args = parser.parse_args()
    try:
        asyncio.run(ConsoleSession().run(args.scenario))
    except KeyboardInterrupt:
        print(f"\n{RED}Interrupted.{RESET}")
        sys.exit(1)


if __name__ == "__main__":
    main()
