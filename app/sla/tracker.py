"""SLA targets, milestone recording, live status and compliance reporting."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.access.models import Department
from app.core.config import Settings
from app.core.database import read_session, transaction
from app.core.errors import NotFoundError
from app.tickets.models import SLARecord, Ticket
from app.tickets.repository import TicketRepository
from packages.db.models import SLARecordTable, TicketTable

from .calendar import DEFAULT_CALENDAR, BusinessCalendar, TimeWindow, add_business_hours, as_utc, business_hours_elapsed

logger = logging.getLogger(__name__)

# Pending milestones beyond target but within this factor are "warning", beyond it "at_risk".
WARNING_FACTOR = 1.5


class SLAMilestone(str, Enum):
    FIRST_RESPONSE = "first_response"
    RESOLVED = "resolved"


class SLAState(str, Enum):
    ON_TRACK = "on_track"
    WARNING = "warning"
    AT_RISK = "at_risk"
    MET = "met"
    BREACHED = "breached"


@dataclass(frozen=True, slots=True)
class SLATargets:
    first_response_hours: float
    resolution_hours: float


class SLAPolicy:
    """Resolve SLA targets from department values and per ticket-type overrides."""

    def __init__(
        self,
        *,
        default_first_response_hours: float = 4.0,
        default_resolution_hours: float = 48.0,
        type_overrides: Mapping[str, Mapping[str, float]] | None = None,
    ) -> None:
        self._default = SLATargets(default_first_response_hours, default_resolution_hours)
        self._overrides = {key.upper(): dict(value) for key, value in (type_overrides or {}).items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SLAPolicy":
        return cls(
            default_first_response_hours=settings.sla_first_response_hours,
            default_resolution_hours=settings.sla_resolution_hours,
            type_overrides=settings.sla_type_overrides,
        )

    def targets_for(self, ticket_type: str, department: Department | None = None) -> SLATargets:
        first_response = self._default.first_response_hours
        resolution = self._default.resolution_hours
        if department is not None:
            first_response = department.first_response_sla_hours or first_response
            resolution = department.default_sla_hours or resolution
        override = self._overrides.get(str(getattr(ticket_type, "value", ticket_type)).upper(), {})
        return SLATargets(
            first_response_hours=float(override.get("first_response", first_response)),
            resolution_hours=float(override.get("resolution", resolution)),
        )


def classify(elapsed_hours: float, target_hours: float, *, completed: bool) -> SLAState:
    if completed:
        return SLAState.MET if elapsed_hours <= target_hours else SLAState.BREACHED
    if elapsed_hours <= target_hours:
        return SLAState.ON_TRACK
    if elapsed_hours <= target_hours * WARNING_FACTOR:
        return SLAState.WARNING
    return SLAState.AT_RISK


@dataclass(slots=True)
class MilestoneStatus:
    milestone: SLAMilestone
    target_hours: float
    elapsed_hours: float
    remaining_hours: float
    state: SLAState
    due_at: datetime
    completed_at: datetime | None = None


@dataclass(slots=True)
class TicketSLAStatus:
    ticket_id: str
    first_response: MilestoneStatus
    resolution: MilestoneStatus


@dataclass(slots=True)
class MilestoneCompliance:
    met: int = 0
    breached: int = 0
    pending: int = 0

    @property
    def decided(self) -> int:
        return self.met + self.breached

    @property
    def compliance_pct(self) -> float | None:
        if self.decided == 0:
            return None
        return round(self.met / self.decided * 100, 2)

    def add(self, met: bool | None) -> None:
        if met is None:
            self.pending += 1
        elif met:
            self.met += 1
        else:
            self.breached += 1


@dataclass(slots=True)
class DepartmentCompliance:
    department_code: str
    total_tickets: int = 0
    first_response: MilestoneCompliance = field(default_factory=MilestoneCompliance)
    resolution: MilestoneCompliance = field(default_factory=MilestoneCompliance)


class SLATracker:
    """Write SLA milestones and report on SLA health."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        calendar: BusinessCalendar = DEFAULT_CALENDAR,
        policy: SLAPolicy | None = None,
        repository: TicketRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._calendar = calendar
        self._policy = policy or SLAPolicy()
        self._repository = repository or TicketRepository()

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    @property
    def policy(self) -> SLAPolicy:
        return self._policy

    async def create_record(
        self, session: AsyncSession, ticket: Ticket, department: Department | None
    ) -> SLARecord:
        targets = self._policy.targets_for(ticket.type, department)
        record = SLARecord(
            ticket_id=ticket.id,
            first_response_target_hours=targets.first_response_hours,
            resolution_target_hours=targets.resolution_hours,
        )
        session.add(
            SLARecordTable(
                ticket_id=record.ticket_id,
                first_response_target_hours=record.first_response_target_hours,
                resolution_target_hours=record.resolution_target_hours,
                created_at=ticket.created_at,
                updated_at=ticket.created_at,
            )
        )
        await session.flush()
        return record

    async def record_milestone(
        self,
        ticket_id: str,
        milestone: SLAMilestone,
        *,
        at: datetime,
        session: AsyncSession | None = None,
    ) -> SLARecord:
        """Stamp ``milestone`` on the ticket once; later calls leave it unchanged."""

        if session is not None:
            return await self._record_milestone(session, ticket_id, SLAMilestone(milestone), as_utc(at))
        async with transaction(self._session_factory) as own_session:
            return await self._record_milestone(own_session, ticket_id, SLAMilestone(milestone), as_utc(at))

    async def _record_milestone(
        self, session: AsyncSession, ticket_id: str, milestone: SLAMilestone, at: datetime
    ) -> SLARecord:
        ticket_row = await session.get(TicketTable, ticket_id)
        if ticket_row is None:
            raise NotFoundError.for_resource("Ticket", ticket_id)
        record_row = await session.get(SLARecordTable, ticket_id)
        if record_row is None:
            raise NotFoundError.for_resource("SLA record", ticket_id)

        created_at = as_utc(ticket_row.created_at)
        elapsed = business_hours_elapsed(created_at, at, self._calendar)
        hours = round(elapsed, 2)
        if milestone is SLAMilestone.FIRST_RESPONSE:
            if ticket_row.first_response_at is not None:
                return TicketRepository.to_sla_record(record_row)
            ticket_row.first_response_at = at
            record_row.first_response_hours = hours
            record_row.first_response_met = elapsed <= record_row.first_response_target_hours
        else:
            if ticket_row.resolved_at is not None:
                return TicketRepository.to_sla_record(record_row)
            ticket_row.resolved_at = at
            record_row.resolution_hours = hours
            record_row.resolution_met = elapsed <= record_row.resolution_target_hours
        record_row.updated_at = at
        session.add(ticket_row)
        session.add(record_row)
        await session.flush()
        logger.debug("SLA milestone %s recorded for ticket %s after %.2f business hours", milestone.value, ticket_id, hours)
        return TicketRepository.to_sla_record(record_row)

    def evaluate(self, ticket: Ticket, record: SLARecord, now: datetime) -> TicketSLAStatus:
        return TicketSLAStatus(
            ticket_id=ticket.id,
            first_response=self._milestone_status(
                SLAMilestone.FIRST_RESPONSE,
                ticket.created_at,
                record.first_response_target_hours,
                ticket.first_response_at,
                record.first_response_hours,
                record.first_response_met,
                now,
            ),
            resolution=self._milestone_status(
                SLAMilestone.RESOLVED,
                ticket.created_at,
                record.resolution_target_hours,
                ticket.resolved_at,
                record.resolution_hours,
                record.resolution_met,
                now,
            ),
        )

    async def get_status(self, ticket_id: str, *, now: datetime | None = None) -> TicketSLAStatus:
        async with read_session(self._session_factory) as session:
            ticket = await self._repository.get_ticket(session, ticket_id)
            if ticket is None:
                raise NotFoundError.for_resource("Ticket", ticket_id)
            record = await self._repository.get_sla_record(session, ticket_id)
        if record is None:
            raise NotFoundError.for_resource("SLA record", ticket_id)
        return self.evaluate(ticket, record, now or datetime.now(timezone.utc))

    async def compliance_report(
        self, window: TimeWindow, department_code: str | None = None
    ) -> list[DepartmentCompliance]:
        statement = select(
            TicketTable.department_code,
            SLARecordTable.first_response_met,
            SLARecordTable.resolution_met,
        ).join(SLARecordTable, SLARecordTable.ticket_id == TicketTable.id)
        if window.start is not None:
            statement = statement.where(TicketTable.created_at >= as_utc(window.start))
        if window.end is not None:
            statement = statement.where(TicketTable.created_at < as_utc(window.end))
        if department_code is not None:
            statement = statement.where(TicketTable.department_code == department_code)

        async with read_session(self._session_factory) as session:
            rows = (await session.execute(statement)).all()

        report: dict[str, DepartmentCompliance] = defaultdict(lambda: DepartmentCompliance(department_code=""))
        for code, first_response_met, resolution_met in rows:
            entry = report[code]
            entry.department_code = code
            entry.total_tickets += 1
            entry.first_response.add(first_response_met)
            entry.resolution.add(resolution_met)
        return [report[code] for code in sorted(report)]

    def _milestone_status(
        self,
        milestone: SLAMilestone,
        created_at: datetime,
        target_hours: float,
        completed_at: datetime | None,
        recorded_hours: float | None,
        recorded_met: bool | None,
        now: datetime,
    ) -> MilestoneStatus:
        # State is decided on exact hours; only the reported figures are rounded.
        exact = business_hours_elapsed(created_at, completed_at or now, self._calendar)
        state = classify(exact, target_hours, completed=completed_at is not None)
        if completed_at is not None and recorded_met is not None:
            state = SLAState.MET if recorded_met else SLAState.BREACHED
        elapsed = recorded_hours if completed_at is not None and recorded_hours is not None else round(exact, 2)
        return MilestoneStatus(
            milestone=milestone,
            target_hours=target_hours,
            elapsed_hours=elapsed,
            remaining_hours=round(target_hours - exact, 2),
            state=state,
            due_at=add_business_hours(created_at, target_hours, self._calendar),
            completed_at=completed_at,
        )


__all__ = [
    "DepartmentCompliance",
    "MilestoneCompliance",
    "MilestoneStatus",
    "SLAMilestone",
    "SLAPolicy",
    "SLAState",
    "SLATargets",
    "SLATracker",
    "TicketSLAStatus",
    "WARNING_FACTOR",
    "classify",
]
