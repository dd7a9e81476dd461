from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from app.access.models import UserProfile
from app.access.reference import seed_departments
from app.access.roles import Role
from app.analytics.service import ResponseTimeAnalyzer
from app.audit.logger import AuditLogger
from app.core.database import create_session_factory
from app.sla.calendar import BusinessCalendar
from app.sla.tracker import SLAPolicy, SLATracker
from app.tickets.events import TicketEventBus
from app.tickets.repository import TicketRepository
from app.tickets.service import TicketService
from packages.db.models import UserTable

# Monday, inside business hours.
START = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

UTC_CALENDAR = BusinessCalendar(timezone="UTC", start_hour=8, end_hour=17)


class FrozenClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return value


def _profile(user_id: str, role: Role, department_code: str | None) -> UserProfile:
    return UserProfile(
        id=user_id,
        email=f"{user_id}@example.com",
        full_name=user_id.replace("-", " ").title(),
        role=role,
        department_code=department_code,
        is_active=True,
        created_at=START,
        updated_at=START,
    )


USERS = {
    "admin": _profile("admin", Role.SUPER_ADMIN, None),
    "sales_manager": _profile("sales-manager", Role.SALES_MANAGER, "SAL"),
    "salesperson": _profile("salesperson", Role.SALESPERSON, "SAL"),
    "salesperson_two": _profile("salesperson-two", Role.SALESPERSON, "SAL"),
    "marketing_manager": _profile("marketing-manager", Role.MARKETING_MANAGER, "MKT"),
    "marketing_staff": _profile("marketing-staff", Role.MARKETING_STAFF, "MKT"),
    "exim_manager": _profile("exim-manager", Role.EXIM_OPS_MANAGER, "EXI"),
}


@pytest.fixture
def users() -> dict[str, UserProfile]:
    return dict(USERS)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def calendar() -> BusinessCalendar:
    return UTC_CALENDAR


@pytest.fixture
def rfq_data() -> dict:
    return {
        "customer_name": "PT Nusantara Cargo",
        "customer_email": "ops@nusantara.example",
        "service_type": "Sea Freight FCL",
        "cargo_category": "Genco",
        "cargo_description": "Machine spare parts",
        "origin_address": "Jl. Raya Cakung 12",
        "origin_city": "Jakarta",
        "origin_country": "Indonesia",
        "destination_address": "22 Harbour Road",
        "destination_city": "Singapore",
        "destination_country": "Singapore",
        "quantity": 10,
        "unit_of_measure": "pallet",
        "weight_per_unit": 120.0,
        "length": 120.0,
        "width": 100.0,
        "height": 150.0,
        "scope_of_work": "Door to port",
    }


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ticketing.db'}",
        connect_args={"timeout": 30},
    )

    # Writers take the database lock at BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine, users):
    factory = create_session_factory(engine)
    await seed_departments(factory)
    async with factory() as session:
        async with session.begin():
            for profile in users.values():
                session.add(
                    UserTable(
                        id=profile.id,
                        email=profile.email,
                        full_name=profile.full_name,
                        role=profile.role.value,
                        department_code=profile.department_code,
                        is_active=profile.is_active,
                        created_at=profile.created_at,
                        updated_at=profile.updated_at,
                    )
                )
    return factory


@pytest.fixture
def audit(session_factory, clock) -> AuditLogger:
    return AuditLogger(session_factory, clock=clock)


@pytest.fixture
def sla_tracker(session_factory, calendar) -> SLATracker:
    return SLATracker(session_factory, calendar=calendar, policy=SLAPolicy(), repository=TicketRepository())


@pytest.fixture
def event_bus() -> TicketEventBus:
    return TicketEventBus()


@pytest.fixture
def ticket_service(session_factory, sla_tracker, audit, event_bus, calendar, clock) -> TicketService:
    return TicketService(
        session_factory,
        sla_tracker=sla_tracker,
        audit=audit,
        event_bus=event_bus,
        calendar=calendar,
        clock=clock,
    )


@pytest.fixture
def analyzer(session_factory, calendar) -> ResponseTimeAnalyzer:
    return ResponseTimeAnalyzer(session_factory, calendar=calendar)
