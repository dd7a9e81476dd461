import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.access.permissions import PermissionEngine
from app.access.reference import seed_departments
from app.access.users import UserService
from app.analytics.service import ResponseTimeAnalyzer
from app.api.routes import admin, analytics, ping, tickets
from app.audit.logger import AuditLogger
from app.core.config import get_settings
from app.core.database import create_engine, create_session_factory, ensure_schema
from app.core.errors import TicketingError
from app.core.logging import configure_logging, init_tracer, shutdown_tracer
from app.sla.calendar import BusinessCalendar
from app.sla.tracker import SLAPolicy, SLATracker
from app.tickets.codes import TicketCodeGenerator
from app.tickets.events import TicketEventBus
from app.tickets.repository import TicketRepository
from app.tickets.service import TicketService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    configure_logging(settings)
    tracer_provider = init_tracer(settings)

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    await ensure_schema(engine)
    await seed_departments(session_factory)

    calendar = BusinessCalendar.from_settings(settings)
    repository = TicketRepository()
    permissions = PermissionEngine()
    audit = AuditLogger(session_factory)
    sla_tracker = SLATracker(
        session_factory,
        calendar=calendar,
        policy=SLAPolicy.from_settings(settings),
        repository=repository,
    )

    app.state.permissions = permissions
    app.state.audit_logger = audit
    app.state.sla_tracker = sla_tracker
    app.state.ticket_service = TicketService(
        session_factory,
        sla_tracker=sla_tracker,
        audit=audit,
        permissions=permissions,
        event_bus=TicketEventBus(),
        repository=repository,
        code_generator=TicketCodeGenerator(),
        calendar=calendar,
        auto_status_on_reply=settings.auto_status_on_reply,
        attachment_max_bytes=settings.attachment_max_bytes,
        attachment_allowed_types=settings.attachment_allowed_types,
    )
    app.state.user_service = UserService(session_factory, permissions=permissions, audit=audit)
    app.state.response_analyzer = ResponseTimeAnalyzer(session_factory, calendar=calendar, repository=repository)
    logger.info("Ticketing services ready (%s)", settings.environment)
    try:
        yield
    finally:
        await engine.dispose()
        shutdown_tracer(tracer_provider)


async def handle_ticketing_error(request: Request, exc: TicketingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_exception_handler(TicketingError, handle_ticketing_error)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(analytics.router)
    app.include_router(admin.router)
    return app


app = create_app()
