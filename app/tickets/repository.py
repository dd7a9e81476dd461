from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.access.models import UserProfile
from app.sla.calendar import as_utc
from packages.db.models import (
    AssignmentTable,
    AttachmentTable,
    QuoteTable,
    SLARecordTable,
    TicketEventTable,
    TicketTable,
)

from .models import (
    Assignment,
    Attachment,
    EventKind,
    Quote,
    QuoteStatus,
    ResponseDirection,
    SLARecord,
    Ticket,
    TicketEvent,
    TicketPriority,
    TicketType,
    dump_type_data,
    parse_type_data,
)
from .state import CloseOutcome, LostReason, TicketStatus, normalize_status


@dataclass(slots=True)
class TicketFilters:
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    ticket_type: TicketType | None = None
    department_code: str | None = None
    assigned_to: str | None = None
    search: str | None = None
    limit: int = 50
    offset: int = 0


class TicketRepository:
    """Persistence helper for tickets and their child records.

    Every method works inside the session handed in by the caller so a service
    can group several writes into one transaction.
    """

    async def add_ticket(self, session: AsyncSession, ticket: Ticket) -> None:
        session.add(
            TicketTable(
                id=ticket.id,
                ticket_code=ticket.code,
                ticket_type=ticket.type.value,
                status=ticket.status.value,
                priority=ticket.priority.value,
                subject=ticket.subject,
                description=ticket.description,
                department_code=ticket.department_code,
                created_by=ticket.created_by,
                assigned_to=ticket.assigned_to,
                type_data=dump_type_data(ticket.type_data),
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
            )
        )
        await session.flush()

    async def get_row(self, session: AsyncSession, ticket_id: str, *, for_update: bool = False) -> TicketTable | None:
        statement = select(TicketTable).where(TicketTable.id == ticket_id)
        if for_update:
            statement = statement.with_for_update()
        result = await session.execute(statement)
        return result.scalars().first()

    async def get_row_by_code(self, session: AsyncSession, code: str) -> TicketTable | None:
        result = await session.execute(select(TicketTable).where(TicketTable.ticket_code == code))
        return result.scalars().first()

    async def get_ticket(self, session: AsyncSession, ticket_id: str) -> Ticket | None:
        row = await self.get_row(session, ticket_id)
        return None if row is None else self.to_ticket(row)

    async def list_tickets(
        self,
        session: AsyncSession,
        filters: TicketFilters,
        *,
        visible_to: UserProfile | None = None,
    ) -> tuple[list[Ticket], int]:
        conditions = self._filter_conditions(filters)
        if visible_to is not None:
            conditions.extend(self._visibility_conditions(visible_to))

        count_statement = select(func.count()).select_from(TicketTable).where(*conditions)
        total = (await session.execute(count_statement)).scalar_one()

        statement = (
            select(TicketTable)
            .where(*conditions)
            .order_by(TicketTable.created_at.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await session.execute(statement)
        return [self.to_ticket(row) for row in result.scalars().all()], int(total)

    async def list_in_window(
        self,
        session: AsyncSession,
        *,
        start: datetime | None,
        end: datetime | None,
        department_code: str | None = None,
        visible_to: UserProfile | None = None,
    ) -> list[Ticket]:
        statement = select(TicketTable)
        if visible_to is not None:
            statement = statement.where(*self._visibility_conditions(visible_to))
        if start is not None:
            statement = statement.where(TicketTable.created_at >= as_utc(start))
        if end is not None:
            statement = statement.where(TicketTable.created_at < as_utc(end))
        if department_code is not None:
            statement = statement.where(TicketTable.department_code == department_code)
        result = await session.execute(statement.order_by(TicketTable.created_at.asc()))
        return [self.to_ticket(row) for row in result.scalars().all()]

    async def delete_ticket(self, session: AsyncSession, row: TicketTable) -> None:
        for table in (TicketEventTable, QuoteTable, AttachmentTable, AssignmentTable):
            children = await session.execute(select(table).where(table.ticket_id == row.id))
            for child in children.scalars().all():
                await session.delete(child)
        record = await session.get(SLARecordTable, row.id)
        if record is not None:
            await session.delete(record)
        await session.flush()
        await session.delete(row)
        await session.flush()

    async def add_event(self, session: AsyncSession, event: TicketEvent) -> None:
        session.add(
            TicketEventTable(
                id=event.id,
                ticket_id=event.ticket_id,
                author_id=event.author_id,
                kind=event.kind.value,
                content=event.content,
                is_internal=event.is_internal,
                from_status=event.from_status.value if event.from_status else None,
                to_status=event.to_status.value if event.to_status else None,
                response_direction=event.response_direction.value if event.response_direction else None,
                response_time_seconds=event.response_time_seconds,
                is_first_response=event.is_first_response,
                created_at=as_utc(event.created_at),
            )
        )
        await session.flush()

    async def list_events(self, session: AsyncSession, ticket_id: str) -> list[TicketEvent]:
        result = await session.execute(
            select(TicketEventTable)
            .where(TicketEventTable.ticket_id == ticket_id)
            .order_by(TicketEventTable.created_at.asc(), TicketEventTable.id.asc())
        )
        return [self.to_event(row) for row in result.scalars().all()]

    async def list_event_rows(self, session: AsyncSession, ticket_id: str) -> list[TicketEventTable]:
        result = await session.execute(
            select(TicketEventTable)
            .where(TicketEventTable.ticket_id == ticket_id)
            .order_by(TicketEventTable.created_at.asc(), TicketEventTable.id.asc())
        )
        return list(result.scalars().all())

    async def add_quote(self, session: AsyncSession, quote: Quote) -> None:
        session.add(
            QuoteTable(
                id=quote.id,
                ticket_id=quote.ticket_id,
                quote_number=quote.quote_number,
                amount=quote.amount,
                currency=quote.currency,
                valid_until=quote.valid_until,
                terms=quote.terms,
                status=quote.status.value,
                created_by=quote.created_by,
                created_at=quote.created_at,
                updated_at=quote.updated_at,
            )
        )
        await session.flush()

    async def count_quotes(self, session: AsyncSession, ticket_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(QuoteTable).where(QuoteTable.ticket_id == ticket_id)
        )
        return int(result.scalar_one())

    async def get_quote_row(self, session: AsyncSession, quote_id: str) -> QuoteTable | None:
        return await session.get(QuoteTable, quote_id)

    async def list_quotes(self, session: AsyncSession, ticket_id: str) -> list[Quote]:
        result = await session.execute(
            select(QuoteTable).where(QuoteTable.ticket_id == ticket_id).order_by(QuoteTable.created_at.asc())
        )
        return [self.to_quote(row) for row in result.scalars().all()]

    async def add_attachment(self, session: AsyncSession, attachment: Attachment) -> None:
        session.add(
            AttachmentTable(
                id=attachment.id,
                ticket_id=attachment.ticket_id,
                file_name=attachment.file_name,
                file_type=attachment.file_type,
                file_size=attachment.file_size,
                storage_key=attachment.storage_key,
                uploaded_by=attachment.uploaded_by,
                created_at=attachment.created_at,
            )
        )
        await session.flush()

    async def get_attachment_row(self, session: AsyncSession, attachment_id: str) -> AttachmentTable | None:
        return await session.get(AttachmentTable, attachment_id)

    async def list_attachments(self, session: AsyncSession, ticket_id: str) -> list[Attachment]:
        result = await session.execute(
            select(AttachmentTable)
            .where(AttachmentTable.ticket_id == ticket_id)
            .order_by(AttachmentTable.created_at.asc())
        )
        return [self.to_attachment(row) for row in result.scalars().all()]

    async def add_assignment(self, session: AsyncSession, assignment: Assignment) -> None:
        session.add(
            AssignmentTable(
                id=assignment.id,
                ticket_id=assignment.ticket_id,
                assigned_to=assignment.assigned_to,
                assigned_by=assignment.assigned_by,
                notes=assignment.notes,
                assigned_at=assignment.assigned_at,
            )
        )
        await session.flush()

    async def list_assignments(self, session: AsyncSession, ticket_id: str) -> list[Assignment]:
        result = await session.execute(
            select(AssignmentTable)
            .where(AssignmentTable.ticket_id == ticket_id)
            .order_by(AssignmentTable.assigned_at.asc())
        )
        return [self.to_assignment(row) for row in result.scalars().all()]

    async def get_sla_record(self, session: AsyncSession, ticket_id: str) -> SLARecord | None:
        row = await session.get(SLARecordTable, ticket_id)
        return None if row is None else self.to_sla_record(row)

    @staticmethod
    def _filter_conditions(filters: TicketFilters) -> list[Any]:
        conditions: list[Any] = []
        if filters.status is not None:
            conditions.append(TicketTable.status == filters.status.value)
        if filters.priority is not None:
            conditions.append(TicketTable.priority == filters.priority.value)
        if filters.ticket_type is not None:
            conditions.append(TicketTable.ticket_type == filters.ticket_type.value)
        if filters.department_code is not None:
            conditions.append(TicketTable.department_code == filters.department_code)
        if filters.assigned_to is not None:
            conditions.append(TicketTable.assigned_to == filters.assigned_to)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            conditions.append(or_(TicketTable.subject.ilike(pattern), TicketTable.ticket_code.ilike(pattern)))
        return conditions

    @staticmethod
    def _visibility_conditions(actor: UserProfile) -> Sequence[Any]:
        """SQL counterpart of the ``ticket.view`` rule."""

        if actor.is_admin:
            return []
        related = [TicketTable.created_by == actor.id, TicketTable.assigned_to == actor.id]
        if actor.is_manager and actor.department_code is not None:
            related.append(TicketTable.department_code == actor.department_code)
        return [or_(*related)]

    @staticmethod
    def to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            code=row.ticket_code,
            type=TicketType(row.ticket_type),
            status=normalize_status(row.status),
            priority=TicketPriority(row.priority),
            subject=row.subject,
            description=row.description,
            department_code=row.department_code,
            created_by=row.created_by,
            assigned_to=row.assigned_to,
            type_data=parse_type_data(row.type_data),
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            close_outcome=CloseOutcome(row.close_outcome) if row.close_outcome else None,
            close_reason=LostReason(row.close_reason) if row.close_reason else None,
            project_date=row.project_date,
            competitor_name=row.competitor_name,
            competitor_cost=_to_decimal(row.competitor_cost),
            first_response_at=_optional_datetime(row.first_response_at),
            resolved_at=_optional_datetime(row.resolved_at),
            closed_at=_optional_datetime(row.closed_at),
        )

    @staticmethod
    def to_event(row: TicketEventTable) -> TicketEvent:
        return TicketEvent(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            kind=EventKind(row.kind),
            created_at=_ensure_datetime(row.created_at),
            content=row.content,
            is_internal=bool(row.is_internal),
            from_status=normalize_status(row.from_status) if row.from_status else None,
            to_status=normalize_status(row.to_status) if row.to_status else None,
            response_direction=ResponseDirection(row.response_direction) if row.response_direction else None,
            response_time_seconds=row.response_time_seconds,
            is_first_response=bool(row.is_first_response),
        )

    @staticmethod
    def to_quote(row: QuoteTable) -> Quote:
        return Quote(
            id=row.id,
            ticket_id=row.ticket_id,
            quote_number=row.quote_number,
            amount=_to_decimal(row.amount) or Decimal("0"),
            currency=row.currency,
            valid_until=row.valid_until,
            terms=row.terms,
            status=QuoteStatus(row.status),
            created_by=row.created_by,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def to_attachment(row: AttachmentTable) -> Attachment:
        return Attachment(
            id=row.id,
            ticket_id=row.ticket_id,
            file_name=row.file_name,
            file_type=row.file_type,
            file_size=row.file_size,
            storage_key=row.storage_key,
            uploaded_by=row.uploaded_by,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def to_assignment(row: AssignmentTable) -> Assignment:
        return Assignment(
            id=row.id,
            ticket_id=row.ticket_id,
            assigned_to=row.assigned_to,
            assigned_by=row.assigned_by,
            notes=row.notes,
            assigned_at=_ensure_datetime(row.assigned_at),
        )

    @staticmethod
    def to_sla_record(row: SLARecordTable) -> SLARecord:
        return SLARecord(
            ticket_id=row.ticket_id,
            first_response_target_hours=row.first_response_target_hours,
            resolution_target_hours=row.resolution_target_hours,
            first_response_met=row.first_response_met,
            first_response_hours=row.first_response_hours,
            resolution_met=row.resolution_met,
            resolution_hours=row.resolution_hours,
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else _ensure_datetime(value)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
