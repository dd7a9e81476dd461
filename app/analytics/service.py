from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.access.models import UserProfile
from app.core.database import read_session, transaction
from app.core.errors import NotFoundError
from app.sla.calendar import DEFAULT_CALENDAR, BusinessCalendar, TimeWindow, as_utc
from app.tickets.models import ResponseDirection, Ticket
from app.tickets.repository import TicketRepository
from app.tickets.state import TicketStatus
from packages.db.models import TicketEventTable, TicketTable

from .attribution import attribute_history
from .stats import ResponseStats, compute_stats

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DepartmentPerformance:
    department_code: str
    response: ResponseStats
    first_response: ResponseStats
    requester_replies: ResponseStats


@dataclass(slots=True)
class UserPerformance:
    user_id: str
    response: ResponseStats


@dataclass(slots=True)
class TicketSummary:
    total: int = 0
    open: int = 0
    closed: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    by_department: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class _Sample:
    author_id: str
    department_code: str
    direction: ResponseDirection | None
    seconds: float
    is_first_response: bool


class ResponseTimeAnalyzer:
    """Read-side aggregation of attributed response times."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        calendar: BusinessCalendar = DEFAULT_CALENDAR,
        repository: TicketRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._calendar = calendar
        self._repository = repository or TicketRepository()

    async def compute_user_stats(
        self,
        user_id: str,
        window: TimeWindow,
        *,
        direction: ResponseDirection | None = None,
    ) -> ResponseStats:
        samples = await self._load_samples(window, TicketEventTable.author_id == user_id)
        return compute_stats(sample.seconds for sample in _by_direction(samples, direction))

    async def compute_department_stats(
        self,
        department_code: str,
        window: TimeWindow,
        *,
        direction: ResponseDirection | None = ResponseDirection.TO_REQUESTER,
    ) -> ResponseStats:
        samples = await self._load_samples(window, TicketTable.department_code == department_code)
        return compute_stats(sample.seconds for sample in _by_direction(samples, direction))

    async def compute_ticket_stats(
        self,
        ticket_id: str,
        window: TimeWindow | None = None,
        *,
        direction: ResponseDirection | None = None,
    ) -> ResponseStats:
        samples = await self._load_samples(window or TimeWindow(), TicketEventTable.ticket_id == ticket_id)
        return compute_stats(sample.seconds for sample in _by_direction(samples, direction))

    async def department_breakdown(self, window: TimeWindow) -> list[DepartmentPerformance]:
        grouped: dict[str, list[_Sample]] = defaultdict(list)
        for sample in await self._load_samples(window):
            grouped[sample.department_code].append(sample)
        return [
            DepartmentPerformance(
                department_code=code,
                response=compute_stats(
                    s.seconds for s in _by_direction(grouped[code], ResponseDirection.TO_REQUESTER)
                ),
                first_response=compute_stats(s.seconds for s in grouped[code] if s.is_first_response),
                requester_replies=compute_stats(
                    s.seconds for s in _by_direction(grouped[code], ResponseDirection.TO_DEPARTMENT)
                ),
            )
            for code in sorted(grouped)
        ]

    async def user_breakdown(self, window: TimeWindow, department_code: str | None = None) -> list[UserPerformance]:
        conditions = [] if department_code is None else [TicketTable.department_code == department_code]
        grouped: dict[str, list[float]] = defaultdict(list)
        for sample in await self._load_samples(window, *conditions):
            grouped[sample.author_id].append(sample.seconds)
        return [UserPerformance(user_id=user_id, response=compute_stats(grouped[user_id])) for user_id in sorted(grouped)]

    @staticmethod
    def ticket_summary(tickets: Iterable[Ticket]) -> TicketSummary:
        statuses: Counter[str] = Counter()
        priorities: Counter[str] = Counter()
        departments: Counter[str] = Counter()
        types: Counter[str] = Counter()
        for ticket in tickets:
            statuses[ticket.status.value] += 1
            priorities[ticket.priority.value] += 1
            departments[ticket.department_code] += 1
            types[ticket.type.value] += 1
        total = sum(statuses.values())
        closed = statuses.get(TicketStatus.CLOSED.value, 0)
        return TicketSummary(
            total=total,
            open=total - closed,
            closed=closed,
            by_status=dict(statuses),
            by_priority=dict(priorities),
            by_department=dict(departments),
            by_type=dict(types),
        )

    async def summarize(
        self,
        window: TimeWindow,
        department_code: str | None = None,
        *,
        visible_to: UserProfile | None = None,
    ) -> TicketSummary:
        async with read_session(self._session_factory) as session:
            tickets = await self._repository.list_in_window(
                session,
                start=window.start,
                end=window.end,
                department_code=department_code,
                visible_to=visible_to,
            )
        return self.ticket_summary(tickets)

    async def backfill_ticket(self, ticket_id: str) -> int:
        """Recompute attribution for every event of a ticket; returns the number of rows changed."""

        changed = 0
        async with transaction(self._session_factory) as session:
            row = await self._repository.get_row(session, ticket_id)
            if row is None:
                raise NotFoundError.for_resource("Ticket", ticket_id)
            ticket = self._repository.to_ticket(row)
            event_rows = await self._repository.list_event_rows(session, ticket_id)
            events = [self._repository.to_event(event_row) for event_row in event_rows]
            by_id = {event_row.id: event_row for event_row in event_rows}
            for event in attribute_history(ticket, events, self._calendar):
                target = by_id[event.id]
                direction = event.response_direction.value if event.response_direction else None
                if (
                    target.response_direction != direction
                    or target.response_time_seconds != event.response_time_seconds
                    or target.is_first_response != event.is_first_response
                ):
                    target.response_direction = direction
                    target.response_time_seconds = event.response_time_seconds
                    target.is_first_response = event.is_first_response
                    session.add(target)
                    changed += 1
        logger.info("Backfilled response attribution for ticket %s (%d events changed)", ticket_id, changed)
        return changed

    async def _load_samples(self, window: TimeWindow, *conditions: Any) -> list[_Sample]:
        statement = (
            select(
                TicketEventTable.author_id,
                TicketTable.department_code,
                TicketEventTable.response_direction,
                TicketEventTable.response_time_seconds,
                TicketEventTable.is_first_response,
            )
            .join(TicketTable, TicketTable.id == TicketEventTable.ticket_id)
            .where(TicketEventTable.response_time_seconds.is_not(None), *conditions)
        )
        if window.start is not None:
            statement = statement.where(TicketEventTable.created_at >= as_utc(window.start))
        if window.end is not None:
            statement = statement.where(TicketEventTable.created_at < as_utc(window.end))

        async with read_session(self._session_factory) as session:
            rows = (await session.execute(statement)).all()
        return [
            _Sample(
                author_id=author_id,
                department_code=department_code,
                direction=ResponseDirection(direction) if direction else None,
                seconds=float(seconds),
                is_first_response=bool(is_first),
            )
            for author_id, department_code, direction, seconds, is_first in rows
        ]


def _by_direction(samples: Iterable[_Sample], direction: ResponseDirection | None) -> list[_Sample]:
    if direction is None:
        return list(samples)
    return [sample for sample in samples if sample.direction is direction]


__all__ = ["DepartmentPerformance", "ResponseTimeAnalyzer", "TicketSummary", "UserPerformance"]
