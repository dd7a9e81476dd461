from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.access.models import UserProfile
from app.access.permissions import Operation, PermissionEngine
from app.access.users import UserService
from app.analytics.attribution import attribute_response, is_attributable
from app.audit.logger import AuditAction, AuditLogEntry, AuditLogger, snapshot
from app.core.config import Settings
from app.core.database import read_session, transaction
from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.sla.calendar import DEFAULT_CALENDAR, BusinessCalendar
from app.sla.tracker import SLAMilestone, SLATracker, TicketSLAStatus
from packages.db.models import TicketTable, UserTable

from .codes import TicketCodeGenerator, parse_ticket_code
from .events import (
    TicketAssigned,
    TicketCommented,
    TicketCreated,
    TicketEventBus,
    TicketNotification,
    TicketStatusChanged,
)
from .models import (
    Assignment,
    Attachment,
    EventKind,
    GenData,
    Quote,
    QuoteStatus,
    RFQData,
    Ticket,
    TicketAggregate,
    TicketEvent,
    TicketPriority,
    TicketType,
    dump_type_data,
    parse_type_data,
)
from .repository import TicketFilters, TicketRepository
from .state import TicketStateMachine, TicketStatus, TransitionPayload, normalize_status

logger = logging.getLogger(__name__)

_CURRENCY = re.compile(r"^[A-Z]{3}$")

_QUOTE_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT, QuoteStatus.REJECTED}),
    QuoteStatus.SENT: frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED}),
    QuoteStatus.ACCEPTED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
}

_DEFAULT_ALLOWED_TYPES = Settings.model_fields["attachment_allowed_types"].default


class TicketService:
    """Ticket lifecycle orchestration: every mutation is one audited transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        sla_tracker: SLATracker | None = None,
        audit: AuditLogger | None = None,
        permissions: PermissionEngine | None = None,
        event_bus: TicketEventBus | None = None,
        repository: TicketRepository | None = None,
        code_generator: TicketCodeGenerator | None = None,
        calendar: BusinessCalendar | None = None,
        auto_status_on_reply: bool = True,
        attachment_max_bytes: int = 10 * 1024 * 1024,
        attachment_allowed_types: tuple[str, ...] = _DEFAULT_ALLOWED_TYPES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or TicketRepository()
        self._calendar = calendar or (sla_tracker.calendar if sla_tracker else DEFAULT_CALENDAR)
        self._sla = sla_tracker or SLATracker(session_factory, calendar=self._calendar, repository=self._repository)
        self._audit = audit or AuditLogger(session_factory)
        self._permissions = permissions or PermissionEngine()
        self._events = event_bus or TicketEventBus()
        self._codes = code_generator or TicketCodeGenerator()
        self._auto_status_on_reply = auto_status_on_reply
        self._attachment_max_bytes = attachment_max_bytes
        self._attachment_allowed_types = frozenset(attachment_allowed_types)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def event_bus(self) -> TicketEventBus:
        return self._events

    # Tickets

    async def create_ticket(
        self,
        actor: UserProfile,
        *,
        ticket_type: TicketType,
        subject: str,
        department_code: str,
        description: str | None = None,
        priority: TicketPriority = TicketPriority.MEDIUM,
        type_data: RFQData | GenData | Mapping[str, Any] | None = None,
    ) -> Ticket:
        self._permissions.ensure(actor, Operation.TICKET_CREATE)
        ticket_type = TicketType(ticket_type)
        subject = _clean_subject(subject)
        data = _coerce_type_data(ticket_type, type_data)

        now = self._clock()
        async with transaction(self._session_factory) as session:
            department = await UserService.get_department(session, department_code)
            if department is None:
                raise NotFoundError.for_resource("Department", department_code)
            code = await self._codes.generate(
                ticket_type, department.code, self._calendar.local_date(now), session=session
            )
            ticket = Ticket(
                id=str(uuid.uuid4()),
                code=code,
                type=ticket_type,
                status=TicketStateMachine.initial_state(),
                priority=TicketPriority(priority),
                subject=subject,
                description=description,
                department_code=department.code,
                created_by=actor.id,
                assigned_to=None,
                type_data=data,
                created_at=now,
                updated_at=now,
            )
            await self._repository.add_ticket(session, ticket)
            await self._sla.create_record(session, ticket, department)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="tickets",
                record_id=ticket.id,
                action=AuditAction.CREATE,
                after=ticket,
            )

        logger.info("Ticket %s created by %s", ticket.code, actor.id)
        await self._events.publish(TicketCreated(ticket.id, ticket.code, ticket.department_code, actor.id, now))
        return ticket

    async def get_ticket(self, actor: UserProfile, ticket_id: str) -> TicketAggregate:
        async with read_session(self._session_factory) as session:
            ticket = await self._repository.get_ticket(session, ticket_id)
            if ticket is None:
                raise NotFoundError.for_resource("Ticket", ticket_id)
            self._permissions.ensure(actor, Operation.TICKET_VIEW, ticket)
            events = await self._repository.list_events(session, ticket_id)
            quotes = await self._repository.list_quotes(session, ticket_id)
            attachments = await self._repository.list_attachments(session, ticket_id)
            assignments = await self._repository.list_assignments(session, ticket_id)
            sla = await self._repository.get_sla_record(session, ticket_id)

        if not self._permissions.can_perform(actor, Operation.COMMENT_INTERNAL, ticket):
            events = [event for event in events if not event.is_internal]
        return TicketAggregate(
            ticket=ticket,
            events=events,
            quotes=quotes,
            attachments=attachments,
            assignments=assignments,
            sla=sla,
        )

    async def get_ticket_by_code(self, actor: UserProfile, code: str) -> TicketAggregate:
        """Resolve a human readable code such as ``RFQSAL040324001``; malformed codes are a ``ValidationError``."""

        normalized = code.strip().upper()
        parse_ticket_code(normalized)
        async with read_session(self._session_factory) as session:
            row = await self._repository.get_row_by_code(session, normalized)
        if row is None:
            raise NotFoundError.for_resource("Ticket", normalized)
        return await self.get_ticket(actor, row.id)

    async def list_tickets(self, actor: UserProfile, filters: TicketFilters | None = None) -> tuple[list[Ticket], int]:
        if not self._permissions.has_capability(actor, Operation.TICKET_VIEW):
            raise ForbiddenError("You do not have permission to view tickets", details={"operation": "ticket.view"})
        async with read_session(self._session_factory) as session:
            return await self._repository.list_tickets(session, filters or TicketFilters(), visible_to=actor)

    async def update_ticket(
        self,
        actor: UserProfile,
        ticket_id: str,
        *,
        subject: str | None = None,
        description: str | None = None,
        priority: TicketPriority | None = None,
        type_data: RFQData | GenData | Mapping[str, Any] | None = None,
    ) -> Ticket:
        now = self._clock()
        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            before = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.TICKET_UPDATE, before)

            if subject is not None:
                row.subject = _clean_subject(subject)
            if description is not None:
                row.description = description
            if priority is not None:
                row.priority = TicketPriority(priority).value
            if type_data is not None:
                row.type_data = dump_type_data(_coerce_type_data(before.type, type_data))
            row.updated_at = now
            session.add(row)
            await session.flush()

            after = self._repository.to_ticket(row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="tickets",
                record_id=ticket_id,
                action=AuditAction.UPDATE,
                before=before,
                after=after,
            )
        return after

    async def delete_ticket(self, actor: UserProfile, ticket_id: str) -> None:
        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            before = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.TICKET_DELETE, before)
            await self._repository.delete_ticket(session, row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="tickets",
                record_id=ticket_id,
                action=AuditAction.DELETE,
                before=before,
            )
        logger.info("Ticket %s deleted by %s", before.code, actor.id)

    # Lifecycle

    async def transition(
        self,
        actor: UserProfile,
        ticket_id: str,
        target_status: TicketStatus | str,
        payload: TransitionPayload | None = None,
    ) -> Ticket:
        """Move a ticket along the lifecycle table.

        Checks run in a fixed order: existence, visibility, edge validity,
        update permission, then the close payload. The status write, history event, SLA milestone and
        audit entry commit together; observers are notified afterwards.
        """

        target = normalize_status(target_status)
        payload = payload or TransitionPayload()
        now = self._clock()

        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            ticket = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.TICKET_VIEW, ticket)
            TicketStateMachine.assert_transition(ticket.status, target)
            self._permissions.ensure(actor, Operation.TICKET_UPDATE, ticket)
            TicketStateMachine.validate_payload(ticket.type.value, target, payload)

            notification = await self._apply_status(session, row, actor.id, target, now, payload=payload)
            updated = self._repository.to_ticket(row)

        logger.info("Ticket %s moved %s -> %s by %s", updated.code, ticket.status.value, target.value, actor.id)
        await self._events.publish(notification)
        return updated

    async def assign(
        self,
        actor: UserProfile,
        ticket_id: str,
        assignee_id: str,
        *,
        notes: str | None = None,
    ) -> Ticket:
        now = self._clock()
        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            before = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.TICKET_ASSIGN, before)
            if before.status is TicketStatus.CLOSED:
                raise ValidationError.for_field("ticket", "Closed tickets cannot be reassigned")
            assignee = await session.get(UserTable, assignee_id)
            if assignee is None:
                raise NotFoundError.for_resource("User", assignee_id)
            if not assignee.is_active:
                raise ValidationError.for_field("assigned_to", "Cannot assign a ticket to an inactive user")

            row.assigned_to = assignee_id
            row.updated_at = now
            session.add(row)
            assignment = Assignment(
                id=str(uuid.uuid4()),
                ticket_id=ticket_id,
                assigned_to=assignee_id,
                assigned_by=actor.id,
                notes=notes,
                assigned_at=now,
            )
            await self._repository.add_assignment(session, assignment)
            await self._repository.add_event(
                session,
                TicketEvent(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket_id,
                    author_id=actor.id,
                    kind=EventKind.ASSIGNMENT,
                    created_at=now,
                    content=notes,
                ),
            )
            after = self._repository.to_ticket(row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="tickets",
                record_id=ticket_id,
                action=AuditAction.UPDATE,
                before={"assigned_to": before.assigned_to},
                after={"assigned_to": assignee_id, "notes": notes},
            )

        await self._events.publish(TicketAssigned(ticket_id, after.code, assignee_id, actor.id, now))
        return after

    # Conversation

    async def add_comment(
        self,
        actor: UserProfile,
        ticket_id: str,
        content: str,
        *,
        is_internal: bool = False,
    ) -> TicketEvent:
        if not content or not content.strip():
            raise ValidationError.for_field("content", "Comment content is required")

        now = self._clock()
        notifications: list[TicketNotification] = []
        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            ticket = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.COMMENT_CREATE, ticket)
            if is_internal:
                self._permissions.ensure(actor, Operation.COMMENT_INTERNAL, ticket)
            if ticket.status is TicketStatus.CLOSED:
                raise ValidationError.for_field("ticket", "Closed tickets do not accept comments")

            event = await self._append_reply(session, ticket, actor.id, EventKind.COMMENT, content.strip(), is_internal, now)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="ticket_events",
                record_id=event.id,
                action=AuditAction.CREATE,
                after=event,
            )
            notifications.append(TicketCommented(ticket_id, ticket.code, event.id, actor.id, is_internal, now))

            if self._auto_status_on_reply and not is_internal:
                target = TicketStateMachine.reply_transition(
                    ticket.status, from_requester=actor.id == ticket.created_by
                )
                if target is not None:
                    notifications.append(
                        await self._apply_status(session, row, actor.id, target, now, automated=True)
                    )

        await self._events.publish_all(notifications)
        return event

    async def create_quote(
        self,
        actor: UserProfile,
        ticket_id: str,
        *,
        amount: Decimal | float | str,
        valid_until: date,
        currency: str = "IDR",
        terms: str | None = None,
    ) -> Quote:
        amount = _positive_amount(amount)
        currency = currency.strip().upper()
        if not _CURRENCY.match(currency):
            raise ValidationError.for_field("currency", "Currency must be a three letter ISO code")

        now = self._clock()
        if valid_until < self._calendar.local_date(now):
            raise ValidationError.for_field("valid_until", "Quote validity must not be in the past")

        async with transaction(self._session_factory) as session:
            row = await self._load_row(session, ticket_id, for_update=True)
            ticket = self._repository.to_ticket(row)
            self._permissions.ensure(actor, Operation.QUOTE_CREATE, ticket)
            if ticket.type is not TicketType.RFQ:
                raise ValidationError.for_field("ticket_type", "Quotes can only be created for RFQ tickets")
            if ticket.status is TicketStatus.CLOSED:
                raise ValidationError.for_field("ticket", "Closed tickets do not accept quotes")

            sequence = await self._repository.count_quotes(session, ticket_id) + 1
            quote = Quote(
                id=str(uuid.uuid4()),
                ticket_id=ticket_id,
                quote_number=f"Q-{ticket.code}-{sequence:02d}",
                amount=amount,
                currency=currency,
                valid_until=valid_until,
                terms=terms,
                status=QuoteStatus.DRAFT,
                created_by=actor.id,
                created_at=now,
                updated_at=now,
            )
            await self._repository.add_quote(session, quote)
            await self._append_reply(
                session,
                ticket,
                actor.id,
                EventKind.QUOTE,
                f"Quote {quote.quote_number}: {quote.currency} {quote.amount}",
                False,
                now,
            )
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="rate_quotes",
                record_id=quote.id,
                action=AuditAction.CREATE,
                after=quote,
            )
        return quote

    async def update_quote_status(
        self, actor: UserProfile, ticket_id: str, quote_id: str, status: QuoteStatus | str
    ) -> Quote:
        target = QuoteStatus(status)
        now = self._clock()
        async with transaction(self._session_factory) as session:
            quote_row = await self._repository.get_quote_row(session, quote_id)
            if quote_row is None or quote_row.ticket_id != ticket_id:
                raise NotFoundError.for_resource("Quote", quote_id)
            before = self._repository.to_quote(quote_row)
            self._permissions.ensure(actor, Operation.QUOTE_UPDATE, before)
            if target not in _QUOTE_TRANSITIONS[before.status]:
                raise ValidationError.for_field(
                    "status", f"Quote cannot move from {before.status.value} to {target.value}"
                )
            quote_row.status = target.value
            quote_row.updated_at = now
            session.add(quote_row)
            await session.flush()
            after = self._repository.to_quote(quote_row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="rate_quotes",
                record_id=quote_id,
                action=AuditAction.UPDATE,
                before={"status": before.status},
                after={"status": after.status},
            )
        return after

    # Attachments

    async def add_attachment(
        self,
        actor: UserProfile,
        ticket_id: str,
        *,
        file_name: str,
        file_type: str,
        file_size: int,
        storage_key: str,
    ) -> Attachment:
        if not file_name.strip():
            raise ValidationError.for_field("file_name", "File name is required")
        if file_size <= 0 or file_size > self._attachment_max_bytes:
            raise ValidationError.for_field(
                "file_size", f"File size must be between 1 byte and {self._attachment_max_bytes} bytes"
            )
        if file_type not in self._attachment_allowed_types:
            raise ValidationError.for_field("file_type", f"File type '{file_type}' is not allowed")

        now = self._clock()
        async with transaction(self._session_factory) as session:
            ticket = self._repository.to_ticket(await self._load_row(session, ticket_id))
            self._permissions.ensure(actor, Operation.ATTACHMENT_UPLOAD, ticket)
            attachment = Attachment(
                id=str(uuid.uuid4()),
                ticket_id=ticket_id,
                file_name=file_name.strip(),
                file_type=file_type,
                file_size=file_size,
                storage_key=storage_key,
                uploaded_by=actor.id,
                created_at=now,
            )
            await self._repository.add_attachment(session, attachment)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="ticket_attachments",
                record_id=attachment.id,
                action=AuditAction.CREATE,
                after=attachment,
            )
        return attachment

    async def delete_attachment(self, actor: UserProfile, ticket_id: str, attachment_id: str) -> None:
        async with transaction(self._session_factory) as session:
            row = await self._repository.get_attachment_row(session, attachment_id)
            if row is None or row.ticket_id != ticket_id:
                raise NotFoundError.for_resource("Attachment", attachment_id)
            attachment = self._repository.to_attachment(row)
            self._permissions.ensure(actor, Operation.ATTACHMENT_DELETE, attachment)
            await session.delete(row)
            await session.flush()
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="ticket_attachments",
                record_id=attachment_id,
                action=AuditAction.DELETE,
                before=attachment,
            )

    # Read side

    async def sla_status(self, actor: UserProfile, ticket_id: str) -> TicketSLAStatus:
        async with read_session(self._session_factory) as session:
            ticket = await self._repository.get_ticket(session, ticket_id)
            if ticket is None:
                raise NotFoundError.for_resource("Ticket", ticket_id)
            self._permissions.ensure(actor, Operation.TICKET_VIEW, ticket)
            record = await self._repository.get_sla_record(session, ticket_id)
        if record is None:
            raise NotFoundError.for_resource("SLA record", ticket_id)
        return self._sla.evaluate(ticket, record, self._clock())

    async def audit_trail(self, actor: UserProfile, ticket_id: str) -> list[AuditLogEntry]:
        async with read_session(self._session_factory) as session:
            ticket = await self._repository.get_ticket(session, ticket_id)
        if ticket is None:
            raise NotFoundError.for_resource("Ticket", ticket_id)
        self._permissions.ensure(actor, Operation.TICKET_VIEW, ticket)
        return await self._audit.list_entries(table_name="tickets", record_id=ticket_id)

    # Internals

    async def _load_row(self, session: AsyncSession, ticket_id: str, *, for_update: bool = False) -> TicketTable:
        row = await self._repository.get_row(session, ticket_id, for_update=for_update)
        if row is None:
            raise NotFoundError.for_resource("Ticket", ticket_id)
        return row

    async def _append_reply(
        self,
        session: AsyncSession,
        ticket: Ticket,
        author_id: str,
        kind: EventKind,
        content: str,
        is_internal: bool,
        now: datetime,
    ) -> TicketEvent:
        event = TicketEvent(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            author_id=author_id,
            kind=kind,
            created_at=now,
            content=content,
            is_internal=is_internal,
        )
        if is_attributable(kind, is_internal):
            history = await self._repository.list_events(session, ticket.id)
            attribution = attribute_response(ticket, history, author_id, now, self._calendar)
            event = replace(
                event,
                response_direction=attribution.response_direction,
                response_time_seconds=attribution.response_time_seconds,
                is_first_response=attribution.is_first_response,
            )
        await self._repository.add_event(session, event)
        if event.is_first_response:
            await self._sla.record_milestone(ticket.id, SLAMilestone.FIRST_RESPONSE, at=now, session=session)
        return event

    async def _apply_status(
        self,
        session: AsyncSession,
        row: TicketTable,
        actor_id: str,
        target: TicketStatus,
        now: datetime,
        *,
        payload: TransitionPayload | None = None,
        automated: bool = False,
    ) -> TicketStatusChanged:
        before = _status_snapshot(self._repository.to_ticket(row))
        current = normalize_status(row.status)

        row.status = target.value
        row.updated_at = now
        if target is TicketStatus.CLOSED:
            if row.closed_at is None:
                row.closed_at = now
            if payload is not None and payload.close_outcome is not None:
                row.close_outcome = payload.close_outcome.value
                row.close_reason = payload.close_reason.value if payload.close_reason else None
                row.project_date = payload.project_date
                row.competitor_name = payload.competitor_name
                row.competitor_cost = payload.competitor_cost
        session.add(row)
        await session.flush()

        if target is TicketStatus.CLOSED:
            await self._sla.record_milestone(row.id, SLAMilestone.RESOLVED, at=now, session=session)

        await self._repository.add_event(
            session,
            TicketEvent(
                id=str(uuid.uuid4()),
                ticket_id=row.id,
                author_id=actor_id,
                kind=EventKind.STATUS_CHANGE,
                created_at=now,
                content=payload.note if payload is not None else None,
                from_status=current,
                to_status=target,
            ),
        )
        after = _status_snapshot(self._repository.to_ticket(row))
        if automated:
            after["automated"] = True
        await self._audit.record(
            session,
            actor_id=actor_id,
            table_name="tickets",
            record_id=row.id,
            action=AuditAction.UPDATE,
            before=before,
            after=after,
        )
        return TicketStatusChanged(
            ticket_id=row.id,
            ticket_code=row.ticket_code,
            from_status=current,
            to_status=target,
            actor_id=actor_id,
            occurred_at=now,
            automated=automated,
        )


def _status_snapshot(ticket: Ticket) -> dict[str, Any]:
    fields = (
        "status",
        "close_outcome",
        "close_reason",
        "project_date",
        "competitor_name",
        "competitor_cost",
        "resolved_at",
        "closed_at",
    )
    return {name: snapshot(getattr(ticket, name)) for name in fields}


def _clean_subject(subject: str) -> str:
    cleaned = (subject or "").strip()
    if not cleaned:
        raise ValidationError.for_field("subject", "Subject is required")
    if len(cleaned) > 255:
        raise ValidationError.for_field("subject", "Subject must be at most 255 characters")
    return cleaned


def _coerce_type_data(
    ticket_type: TicketType, raw: RFQData | GenData | Mapping[str, Any] | None
) -> RFQData | GenData | None:
    if raw is None:
        data = None
    elif isinstance(raw, (RFQData, GenData)):
        data = raw
    else:
        payload = dict(raw)
        payload.setdefault("kind", "rfq" if ticket_type is TicketType.RFQ else "gen")
        try:
            data = parse_type_data(payload)
        except PydanticValidationError as exc:
            details: dict[str, list[str]] = {}
            for error in exc.errors():
                location = ".".join(str(part) for part in error["loc"] if part not in ("rfq", "gen"))
                details.setdefault(f"type_data.{location}" if location else "type_data", []).append(error["msg"])
            raise ValidationError("Invalid ticket type data", details=details) from None

    if ticket_type is TicketType.RFQ and not isinstance(data, RFQData):
        raise ValidationError.for_field("type_data", "RFQ tickets require RFQ details")
    if ticket_type is TicketType.GEN and isinstance(data, RFQData):
        raise ValidationError.for_field("type_data", "General inquiries cannot carry RFQ details")
    return data


def _positive_amount(value: Decimal | float | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError.for_field("amount", "Amount must be a number") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError.for_field("amount", "Amount must be greater than zero")
    return amount.quantize(Decimal("0.01"))


__all__ = ["TicketService"]
