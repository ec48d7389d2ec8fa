"""
HTTP surface for the scheduler.

``create_app`` wires the stores, the scheduling services, and the error
taxonomy into a FastAPI application. Everything it needs can be injected,
so tests build isolated apps with their own stores and clock.

Usage:
    uvicorn advisory_scheduler.api.app:app
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from advisory_scheduler import __version__
from advisory_scheduler.config import settings
from advisory_scheduler.errors import (
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    StorageUnavailableError,
    TemplateConflictError,
    ValidationError,
)
from advisory_scheduler.logging_context import get_request_logger, request_scope
from advisory_scheduler.schemas.api_schema import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    BookingOut,
    HoldRequest,
    PaymentWebhook,
    PromoteRequest,
    ScheduleConflictOut,
    ScheduleValidateRequest,
    ScheduleValidateResponse,
    SlotOut,
    TemplateOut,
)
from advisory_scheduler.schemas.template_schema import (
    RecurringTemplate,
    TemplateChanges,
    TemplateInput,
)
from advisory_scheduler.scheduling import (
    AvailabilityResolver,
    CompactionJob,
    HoldManager,
    SlotGenerator,
    TemplateAdmin,
)
from advisory_scheduler.scheduling.availability import Clock
from advisory_scheduler.scheduling.services import (
    DEFAULT_SERVICE_TYPE,
    check_subtype,
    get_all_services,
    get_service_details,
)
from advisory_scheduler.scheduling.template_admin import to_schedule_slot
from advisory_scheduler.store.reservations import InMemoryReservationStore, ReservationStore
from advisory_scheduler.store.templates import InMemoryTemplateStore, TemplateStore
from advisory_scheduler.utils import parse_date

logger = get_request_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class Scheduler:
    """The services one application instance runs on."""

    templates: TemplateStore
    reservations: ReservationStore
    generator: SlotGenerator
    resolver: AvailabilityResolver
    holds: HoldManager
    admin: TemplateAdmin
    compaction: CompactionJob


def build_scheduler(
    templates: Optional[TemplateStore] = None,
    reservations: Optional[ReservationStore] = None,
    clock: Optional[Clock] = None,
    conflict_mode: Optional[str] = None,
) -> Scheduler:
    templates = templates if templates is not None else InMemoryTemplateStore()
    reservations = reservations if reservations is not None else InMemoryReservationStore()
    generator = SlotGenerator(templates)
    resolver = AvailabilityResolver(generator, reservations, conflict_mode=conflict_mode, clock=clock)
    return Scheduler(
        templates=templates,
        reservations=reservations,
        generator=generator,
        resolver=resolver,
        holds=HoldManager(resolver, reservations),
        admin=TemplateAdmin(templates),
        compaction=CompactionJob(reservations, resolver.now),
    )


def _scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def _error(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(400, "validation_error", str(exc), field=exc.field)

    @app.exception_handler(SlotConflictError)
    async def _slot_conflict(request: Request, exc: SlotConflictError):
        return JSONResponse(
            status_code=409,
            content={"available": False, "conflicts": exc.conflicts, "message": str(exc)},
        )

    @app.exception_handler(TemplateConflictError)
    async def _template_conflict(request: Request, exc: TemplateConflictError):
        conflicts = [
            ScheduleConflictOut.from_slot(
                to_schedule_slot(item) if isinstance(item, RecurringTemplate) else item
            ).model_dump(by_alias=True)
            for item in exc.conflicts
        ]
        return JSONResponse(
            status_code=409,
            content={
                "isValid": False,
                "message": str(exc),
                "conflicts": conflicts,
                "suggestions": exc.suggestions,
            },
        )

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def _invalid_transition(request: Request, exc: InvalidTransitionError):
        return _error(409, "invalid_transition", str(exc))

    @app.exception_handler(StorageUnavailableError)
    async def _storage_unavailable(request: Request, exc: StorageUnavailableError):
        logger.error("Storage unavailable: %s", exc)
        return _error(503, "storage_unavailable", "Scheduling storage is temporarily unavailable.")


def create_app(
    templates: Optional[TemplateStore] = None,
    reservations: Optional[ReservationStore] = None,
    clock: Optional[Clock] = None,
    conflict_mode: Optional[str] = None,
    admin_api_key: Optional[str] = None,
    compaction_interval: Optional[float] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        templates: Template store; in-memory when omitted.
        reservations: Reservation store; in-memory when omitted.
        clock: Returns the current aware datetime; wall clock when omitted.
        conflict_mode: ``overlap`` or ``exact``; config default when omitted.
        admin_api_key: Required ``X-Admin-Key`` value for admin routes.
            Admin routes are open when empty.
        compaction_interval: Seconds between compaction passes; 0 disables.
    """
    scheduler = build_scheduler(templates, reservations, clock, conflict_mode)
    api_key = settings.admin_api_key if admin_api_key is None else admin_api_key
    interval = (
        settings.holds.compaction_interval_sec if compaction_interval is None else compaction_interval
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if interval > 0:
            task = asyncio.create_task(scheduler.compaction.run_forever(interval))
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="Advisory Scheduler", version=__version__, lifespan=lifespan)
    app.state.scheduler = scheduler
    app.state.admin_api_key = api_key
    _register_error_handlers(app)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        with request_scope(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    async def require_admin(request: Request, x_admin_key: Optional[str] = Header(default=None)):
        expected = request.app.state.admin_api_key
        if not expected:
            return
        if x_admin_key != expected:
            logger.warning("Rejected admin request to %s", request.url.path)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")

    # --- Public ---

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/services")
    async def services():
        return get_all_services()

    @app.get("/services/{service_type}")
    async def service_details(service_type: str):
        details = get_service_details(service_type)
        if details is None:
            raise NotFoundError(f"Service {service_type} not found.")
        return details

    @app.post("/availability/check", response_model=AvailabilityCheckResponse)
    async def check_availability(
        body: AvailabilityCheckRequest, sched: Scheduler = Depends(_scheduler)
    ):
        check_subtype(body.service_type, body.advisory_or_training_subtype)
        result = await sched.resolver.check_availability(body.date, body.time, body.service_type)
        return AvailabilityCheckResponse(
            available=result.available,
            conflicts=result.conflicts,
            message=result.message,
            reasons=result.reasons,
            service_type=body.service_type,
            requested_start=result.requested_start,
            requested_end=result.requested_end,
        )

    @app.get("/availability/slots", response_model=list[SlotOut])
    async def list_slots(
        start: str,
        end: Optional[str] = None,
        service_type: str = Query(default=DEFAULT_SERVICE_TYPE, alias="serviceType"),
        sched: Scheduler = Depends(_scheduler),
    ):
        today = sched.resolver.now().astimezone(sched.generator.tz).date()
        start_date = parse_date(start, today=today, field="start")
        end_date = parse_date(end, today=today, field="end") if end else start_date
        slots = await sched.resolver.list_available_slots(service_type, start_date, end_date)
        return [SlotOut.from_slot(s) for s in slots]

    @app.post("/holds", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
    async def acquire_hold(body: HoldRequest, sched: Scheduler = Depends(_scheduler)):
        slot_key = sched.resolver.to_slot_key(body.date, body.time, body.service_type)
        ttl = timedelta(minutes=body.ttl_minutes) if body.ttl_minutes else None
        hold = await sched.holds.acquire_hold(
            slot_key,
            body.owner_id,
            body.owner_email,
            ttl=ttl,
            owner_name=body.owner_name,
            notes=body.notes,
        )
        return BookingOut.from_booking(hold)

    @app.post("/holds/{booking_id}/promote", response_model=BookingOut)
    async def promote_hold(
        booking_id: str,
        body: Optional[PromoteRequest] = None,
        sched: Scheduler = Depends(_scheduler),
    ):
        event_id = body.external_event_id if body else None
        return BookingOut.from_booking(await sched.holds.promote(booking_id, external_event_id=event_id))

    @app.post("/holds/{booking_id}/release", response_model=BookingOut)
    async def release_hold(booking_id: str, sched: Scheduler = Depends(_scheduler)):
        return BookingOut.from_booking(await sched.holds.release(booking_id))

    @app.post("/webhooks/payment", response_model=BookingOut)
    async def payment_webhook(body: PaymentWebhook, sched: Scheduler = Depends(_scheduler)):
        logger.info("Payment webhook for %s: %s", body.booking_id, body.status)
        if body.status == "paid":
            booking = await sched.holds.promote(body.booking_id, external_event_id=body.external_event_id)
        elif body.status == "failed":
            booking = await sched.holds.mark_payment_failed(body.booking_id)
        else:
            booking = await sched.holds.refund(body.booking_id)
        return BookingOut.from_booking(booking)

    @app.get("/bookings", response_model=list[BookingOut])
    async def list_owner_bookings(
        owner_id: str = Query(alias="ownerId", min_length=1), sched: Scheduler = Depends(_scheduler)
    ):
        return [BookingOut.from_booking(b) for b in await sched.reservations.find_by_owner(owner_id)]

    @app.get("/bookings/{booking_id}", response_model=BookingOut)
    async def get_booking(booking_id: str, sched: Scheduler = Depends(_scheduler)):
        return BookingOut.from_booking(await sched.reservations.get(booking_id))

    # --- Admin ---

    admin = [Depends(require_admin)]

    @app.post("/schedules/validate", response_model=ScheduleValidateResponse, dependencies=admin)
    async def validate_schedule(body: ScheduleValidateRequest, sched: Scheduler = Depends(_scheduler)):
        result = await sched.admin.validate(
            body.day_of_week,
            body.start_time,
            body.end_time,
            type=body.type,
            title=body.title,
            grace_minutes=body.grace_minutes,
            exclude_id=body.exclude_id,
        )
        return ScheduleValidateResponse.from_validation(result)

    @app.get("/templates", response_model=list[TemplateOut], dependencies=admin)
    async def list_templates(
        service_type: Optional[str] = Query(default=None, alias="serviceType"),
        include_inactive: bool = Query(default=False, alias="includeInactive"),
        sched: Scheduler = Depends(_scheduler),
    ):
        templates = await sched.admin.list_templates(service_type, include_inactive=include_inactive)
        return [TemplateOut.from_template(t) for t in templates]

    @app.post(
        "/templates",
        response_model=TemplateOut,
        status_code=status.HTTP_201_CREATED,
        dependencies=admin,
    )
    async def create_template(
        body: TemplateInput,
        grace_minutes: Optional[int] = Query(default=None, alias="graceMinutes", ge=0),
        sched: Scheduler = Depends(_scheduler),
    ):
        return TemplateOut.from_template(await sched.admin.create(body, grace_minutes=grace_minutes))

    @app.patch("/templates/{template_id}", response_model=TemplateOut, dependencies=admin)
    async def update_template(
        template_id: str,
        body: TemplateChanges,
        grace_minutes: Optional[int] = Query(default=None, alias="graceMinutes", ge=0),
        sched: Scheduler = Depends(_scheduler),
    ):
        updated = await sched.admin.update(template_id, body, grace_minutes=grace_minutes)
        return TemplateOut.from_template(updated)

    @app.post("/templates/{template_id}/deactivate", response_model=TemplateOut, dependencies=admin)
    async def deactivate_template(template_id: str, sched: Scheduler = Depends(_scheduler)):
        return TemplateOut.from_template(await sched.admin.deactivate(template_id))

    @app.post("/templates/{template_id}/activate", response_model=TemplateOut, dependencies=admin)
    async def activate_template(template_id: str, sched: Scheduler = Depends(_scheduler)):
        return TemplateOut.from_template(await sched.admin.reactivate(template_id))

    logger.info("App created (conflict_mode=%s)", scheduler.resolver.conflict_mode)
    return app


app = create_app()
