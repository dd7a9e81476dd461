from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.audit.logger import AuditAction, AuditLogger
from app.core.database import transaction
from app.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.tickets.events import TicketCommented, TicketCreated, TicketStatusChanged
from app.tickets.models import EventKind, QuoteStatus, TicketPriority, TicketType
from app.tickets.repository import TicketFilters
from app.tickets.service import TicketService
from app.tickets.state import CloseOutcome, LostReason, TicketStatus, TransitionPayload
from packages.db.models import UserTable


async def _gen_ticket(service, actor, *, subject="Warehouse slot", department="SAL"):
    return await service.create_ticket(
        actor, ticket_type=TicketType.GEN, subject=subject, department_code=department
    )


async def _rfq_ticket(service, actor, rfq_data, *, department="SAL"):
    return await service.create_ticket(
        actor,
        ticket_type=TicketType.RFQ,
        subject="Jakarta to Singapore FCL",
        department_code=department,
        priority=TicketPriority.HIGH,
        type_data=rfq_data,
    )


@pytest.mark.asyncio
async def test_create_ticket_records_code_sla_audit_and_notification(ticket_service, users, rfq_data, event_bus):
    received = []
    event_bus.subscribe(received.append)

    ticket = await _rfq_ticket(ticket_service, users["salesperson"], rfq_data)

    assert ticket.code == "RFQSAL040324001"
    assert ticket.status is TicketStatus.OPEN
    assert ticket.type_data.chargeable_weight == pytest.approx(3006.0)

    aggregate = await ticket_service.get_ticket(users["salesperson"], ticket.id)
    assert aggregate.sla.first_response_target_hours == 4.0
    assert aggregate.sla.resolution_target_hours == 48.0
    assert aggregate.ticket.type_data.customer_name == "PT Nusantara Cargo"

    trail = await ticket_service.audit_trail(users["salesperson"], ticket.id)
    assert [entry.action for entry in trail] == [AuditAction.CREATE]
    assert trail[0].after["code"] == ticket.code

    assert len(received) == 1
    assert isinstance(received[0], TicketCreated)
    assert received[0].ticket_code == ticket.code


@pytest.mark.asyncio
async def test_create_ticket_validates_input(ticket_service, users, rfq_data):
    actor = users["salesperson"]
    with pytest.raises(ValidationError):
        await ticket_service.create_ticket(actor, ticket_type=TicketType.RFQ, subject="No data", department_code="SAL")

    with pytest.raises(ValidationError) as excinfo:
        await ticket_service.create_ticket(
            actor,
            ticket_type=TicketType.RFQ,
            subject="Bad quantity",
            department_code="SAL",
            type_data={**rfq_data, "quantity": 0},
        )
    assert "type_data.quantity" in excinfo.value.details

    with pytest.raises(ValidationError):
        await ticket_service.create_ticket(actor, ticket_type=TicketType.GEN, subject="   ", department_code="SAL")

    with pytest.raises(NotFoundError):
        await ticket_service.create_ticket(actor, ticket_type=TicketType.GEN, subject="Lost", department_code="XYZ")


@pytest.mark.asyncio
async def test_get_ticket_by_code(ticket_service, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])

    found = await ticket_service.get_ticket_by_code(users["sales_manager"], ticket.code.lower())
    assert found.ticket.id == ticket.id

    with pytest.raises(ValidationError) as excinfo:
        await ticket_service.get_ticket_by_code(users["sales_manager"], "TKT-42")
    assert "ticket_code" in excinfo.value.details
    with pytest.raises(NotFoundError):
        await ticket_service.get_ticket_by_code(users["sales_manager"], "GENSAL040324999")
    with pytest.raises(ForbiddenError):
        await ticket_service.get_ticket_by_code(users["marketing_staff"], ticket.code)


@pytest.mark.asyncio
async def test_transition_checks_run_in_order(ticket_service, users, rfq_data):
    ticket = await _rfq_ticket(ticket_service, users["salesperson"], rfq_data)
    outsider = users["marketing_manager"]

    with pytest.raises(NotFoundError):
        await ticket_service.transition(users["sales_manager"], "missing", TicketStatus.IN_PROGRESS)
    with pytest.raises(ForbiddenError) as denied:
        await ticket_service.transition(outsider, ticket.id, TicketStatus.WAITING_CUSTOMER)
    assert "current" not in denied.value.details
    with pytest.raises(InvalidTransitionError):
        await ticket_service.transition(users["salesperson"], ticket.id, TicketStatus.WAITING_CUSTOMER)
    with pytest.raises(ForbiddenError):
        await ticket_service.transition(outsider, ticket.id, TicketStatus.IN_PROGRESS)
    with pytest.raises(ValidationError) as excinfo:
        await ticket_service.transition(users["sales_manager"], ticket.id, TicketStatus.CLOSED)
    assert "close_outcome" in excinfo.value.details

    unchanged = await ticket_service.get_ticket(users["sales_manager"], ticket.id)
    assert unchanged.ticket.status is TicketStatus.OPEN


@pytest.mark.asyncio
async def test_close_lost_rfq_persists_outcome(ticket_service, users, rfq_data, clock, event_bus):
    received = []
    event_bus.subscribe(received.append)
    ticket = await _rfq_ticket(ticket_service, users["salesperson"], rfq_data)

    await ticket_service.transition(users["sales_manager"], ticket.id, "pending")
    clock.advance(hours=1)
    closed = await ticket_service.transition(
        users["sales_manager"],
        ticket.id,
        TicketStatus.CLOSED,
        TransitionPayload(
            close_outcome=CloseOutcome.LOST,
            close_reason=LostReason.PRICE_NOT_COMPETITIVE,
            competitor_name="Rival Logistics",
            competitor_cost=Decimal("12500000.00"),
        ),
    )

    assert closed.status is TicketStatus.CLOSED
    assert closed.closed_at == clock()
    assert closed.resolved_at == clock()
    assert closed.close_outcome is CloseOutcome.LOST
    assert closed.close_reason is LostReason.PRICE_NOT_COMPETITIVE
    assert closed.competitor_cost == Decimal("12500000.00")

    aggregate = await ticket_service.get_ticket(users["sales_manager"], ticket.id)
    changes = [(event.from_status, event.to_status) for event in aggregate.events if event.kind is EventKind.STATUS_CHANGE]
    assert changes == [
        (TicketStatus.OPEN, TicketStatus.IN_PROGRESS),
        (TicketStatus.IN_PROGRESS, TicketStatus.CLOSED),
    ]
    assert [type(item) for item in received] == [TicketCreated, TicketStatusChanged, TicketStatusChanged]

    with pytest.raises(InvalidTransitionError):
        await ticket_service.transition(users["admin"], ticket.id, TicketStatus.IN_PROGRESS)


class FailingStatusAudit(AuditLogger):
    async def record(self, session, **kwargs):
        if kwargs["table_name"] == "tickets" and AuditAction(kwargs["action"]) is AuditAction.UPDATE:
            raise PersistenceError("audit store unavailable")
        return await super().record(session, **kwargs)


@pytest.mark.asyncio
async def test_audit_failure_rolls_back_transition(
    session_factory, ticket_service, sla_tracker, calendar, clock, users, event_bus
):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])
    received = []
    event_bus.subscribe(received.append)
    failing = TicketService(
        session_factory,
        sla_tracker=sla_tracker,
        audit=FailingStatusAudit(session_factory, clock=clock),
        event_bus=event_bus,
        calendar=calendar,
        clock=clock,
    )

    with pytest.raises(PersistenceError):
        await failing.transition(users["sales_manager"], ticket.id, TicketStatus.CLOSED)

    aggregate = await ticket_service.get_ticket(users["sales_manager"], ticket.id)
    assert aggregate.ticket.status is TicketStatus.OPEN
    assert aggregate.ticket.closed_at is None
    assert aggregate.ticket.resolved_at is None
    assert aggregate.sla.resolution_hours is None
    assert [event for event in aggregate.events if event.kind is EventKind.STATUS_CHANGE] == []
    assert received == []


@pytest.mark.asyncio
async def test_replies_drive_status_automatically(ticket_service, users, clock, event_bus):
    received = []
    event_bus.subscribe(received.append)
    ticket = await _gen_ticket(ticket_service, users["salesperson"])

    clock.advance(minutes=30)
    reply = await ticket_service.add_comment(users["sales_manager"], ticket.id, "Checking availability")
    assert reply.is_first_response
    assert reply.response_time_seconds == pytest.approx(1800)

    clock.advance(minutes=30)
    await ticket_service.add_comment(users["sales_manager"], ticket.id, "Slot confirmed, please send documents")
    clock.advance(minutes=30)
    requester_reply = await ticket_service.add_comment(users["salesperson"], ticket.id, "Documents attached")
    assert requester_reply.response_time_seconds == pytest.approx(1800)

    aggregate = await ticket_service.get_ticket(users["salesperson"], ticket.id)
    assert aggregate.ticket.status is TicketStatus.NEED_RESPONSE
    statuses = [event.to_status for event in aggregate.events if event.kind is EventKind.STATUS_CHANGE]
    assert statuses == [TicketStatus.IN_PROGRESS, TicketStatus.WAITING_CUSTOMER, TicketStatus.NEED_RESPONSE]

    automated = [item for item in received if isinstance(item, TicketStatusChanged)]
    assert len(automated) == 3 and all(item.automated for item in automated)
    assert sum(isinstance(item, TicketCommented) for item in received) == 3

    trail = await ticket_service.audit_trail(users["salesperson"], ticket.id)
    assert sum(1 for entry in trail if entry.after and entry.after.get("automated")) == 3


@pytest.mark.asyncio
async def test_reply_automation_can_be_disabled(session_factory, sla_tracker, calendar, clock, users):
    service = TicketService(
        session_factory, sla_tracker=sla_tracker, calendar=calendar, clock=clock, auto_status_on_reply=False
    )
    ticket = await _gen_ticket(service, users["salesperson"])
    await service.add_comment(users["sales_manager"], ticket.id, "Noted")

    aggregate = await service.get_ticket(users["sales_manager"], ticket.id)
    assert aggregate.ticket.status is TicketStatus.OPEN


@pytest.mark.asyncio
async def test_internal_comments(ticket_service, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])

    with pytest.raises(ForbiddenError):
        await ticket_service.add_comment(users["salesperson"], ticket.id, "note", is_internal=True)

    note = await ticket_service.add_comment(users["sales_manager"], ticket.id, "Check credit limit", is_internal=True)
    assert note.response_direction is None
    assert not note.is_first_response

    staff_view = await ticket_service.get_ticket(users["salesperson"], ticket.id)
    manager_view = await ticket_service.get_ticket(users["sales_manager"], ticket.id)
    assert staff_view.ticket.status is TicketStatus.OPEN
    assert all(not event.is_internal for event in staff_view.events)
    assert any(event.is_internal for event in manager_view.events)


@pytest.mark.asyncio
async def test_closed_ticket_rejects_comments_and_staff_updates(ticket_service, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])
    await ticket_service.transition(users["sales_manager"], ticket.id, TicketStatus.CLOSED)

    with pytest.raises(ValidationError):
        await ticket_service.add_comment(users["sales_manager"], ticket.id, "Too late")
    with pytest.raises(ForbiddenError):
        await ticket_service.update_ticket(users["salesperson"], ticket.id, subject="Renamed")


@pytest.mark.asyncio
async def test_assign_ticket(ticket_service, session_factory, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])
    assignee = users["salesperson_two"]

    with pytest.raises(ForbiddenError):
        await ticket_service.get_ticket(assignee, ticket.id)
    with pytest.raises(ForbiddenError):
        await ticket_service.assign(users["salesperson"], ticket.id, assignee.id)
    with pytest.raises(NotFoundError):
        await ticket_service.assign(users["sales_manager"], ticket.id, "nobody")

    async with transaction(session_factory) as session:
        session.add(
            UserTable(id="retired", email="retired@example.com", full_name="Retired", role="salesperson",
                      department_code="SAL", is_active=False)
        )
    with pytest.raises(ValidationError):
        await ticket_service.assign(users["sales_manager"], ticket.id, "retired")

    updated = await ticket_service.assign(users["sales_manager"], ticket.id, assignee.id, notes="Handle today")
    assert updated.assigned_to == assignee.id

    aggregate = await ticket_service.get_ticket(assignee, ticket.id)
    assert [item.assigned_to for item in aggregate.assignments] == [assignee.id]
    assert any(event.kind is EventKind.ASSIGNMENT for event in aggregate.events)


@pytest.mark.asyncio
async def test_quotes(ticket_service, users, rfq_data, clock):
    ticket = await _rfq_ticket(ticket_service, users["salesperson"], rfq_data)
    gen = await _gen_ticket(ticket_service, users["salesperson"])
    manager = users["sales_manager"]
    valid_until = clock().date() + timedelta(days=14)

    with pytest.raises(ForbiddenError):
        await ticket_service.create_quote(users["salesperson"], ticket.id, amount="100", valid_until=valid_until)
    with pytest.raises(ValidationError):
        await ticket_service.create_quote(manager, gen.id, amount="100", valid_until=valid_until)
    with pytest.raises(ValidationError):
        await ticket_service.create_quote(manager, ticket.id, amount="0", valid_until=valid_until)
    with pytest.raises(ValidationError):
        await ticket_service.create_quote(manager, ticket.id, amount="10", valid_until=date(2024, 1, 1))

    clock.advance(hours=1)
    first = await ticket_service.create_quote(manager, ticket.id, amount="15000000", currency="idr", valid_until=valid_until)
    second = await ticket_service.create_quote(manager, ticket.id, amount=Decimal("14250000.50"), valid_until=valid_until)
    assert first.quote_number == f"Q-{ticket.code}-01"
    assert second.quote_number == f"Q-{ticket.code}-02"
    assert first.currency == "IDR"
    assert first.status is QuoteStatus.DRAFT

    aggregate = await ticket_service.get_ticket(manager, ticket.id)
    quote_events = [event for event in aggregate.events if event.kind is EventKind.QUOTE]
    assert quote_events[0].is_first_response
    assert aggregate.ticket.first_response_at == clock()
    assert aggregate.ticket.status is TicketStatus.OPEN

    sent = await ticket_service.update_quote_status(manager, ticket.id, first.id, QuoteStatus.SENT)
    assert sent.status is QuoteStatus.SENT
    accepted = await ticket_service.update_quote_status(manager, ticket.id, first.id, "accepted")
    assert accepted.status is QuoteStatus.ACCEPTED
    with pytest.raises(ValidationError):
        await ticket_service.update_quote_status(manager, ticket.id, first.id, QuoteStatus.REJECTED)
    with pytest.raises(ForbiddenError):
        await ticket_service.update_quote_status(users["marketing_manager"], ticket.id, second.id, QuoteStatus.SENT)
    with pytest.raises(NotFoundError):
        await ticket_service.update_quote_status(manager, gen.id, second.id, QuoteStatus.SENT)


@pytest.mark.asyncio
async def test_attachments(ticket_service, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])
    owner = users["salesperson"]

    with pytest.raises(ValidationError):
        await ticket_service.add_attachment(
            owner, ticket.id, file_name="setup.exe", file_type="application/x-msdownload", file_size=10,
            storage_key="k",
        )
    with pytest.raises(ValidationError):
        await ticket_service.add_attachment(
            owner, ticket.id, file_name="huge.pdf", file_type="application/pdf", file_size=50 * 1024 * 1024,
            storage_key="k",
        )
    with pytest.raises(ForbiddenError):
        await ticket_service.add_attachment(
            users["marketing_staff"], ticket.id, file_name="x.pdf", file_type="application/pdf", file_size=10,
            storage_key="k",
        )

    attachment = await ticket_service.add_attachment(
        owner, ticket.id, file_name="packing-list.pdf", file_type="application/pdf", file_size=2048,
        storage_key=f"tickets/{ticket.id}/packing-list.pdf",
    )
    with pytest.raises(ForbiddenError):
        await ticket_service.delete_attachment(users["sales_manager"], ticket.id, attachment.id)

    await ticket_service.delete_attachment(owner, ticket.id, attachment.id)
    aggregate = await ticket_service.get_ticket(owner, ticket.id)
    assert aggregate.attachments == []


@pytest.mark.asyncio
async def test_list_tickets_respects_visibility(ticket_service, users):
    await _gen_ticket(ticket_service, users["salesperson"], subject="Mine")
    await _gen_ticket(ticket_service, users["salesperson_two"], subject="Colleague")
    await _gen_ticket(ticket_service, users["marketing_staff"], subject="Campaign shipment", department="MKT")

    own, own_total = await ticket_service.list_tickets(users["salesperson"])
    department, department_total = await ticket_service.list_tickets(users["sales_manager"])
    everything, everything_total = await ticket_service.list_tickets(users["admin"])
    searched, _ = await ticket_service.list_tickets(users["admin"], TicketFilters(search="campaign"))

    assert [ticket.subject for ticket in own] == ["Mine"] and own_total == 1
    assert {ticket.subject for ticket in department} == {"Mine", "Colleague"} and department_total == 2
    assert everything_total == 3 and len(everything) == 3
    assert [ticket.subject for ticket in searched] == ["Campaign shipment"]


@pytest.mark.asyncio
async def test_update_and_delete_ticket(ticket_service, audit, users):
    ticket = await _gen_ticket(ticket_service, users["salesperson"])

    updated = await ticket_service.update_ticket(
        users["salesperson"], ticket.id, subject="Warehouse slot for March", priority=TicketPriority.URGENT
    )
    assert updated.subject == "Warehouse slot for March"
    assert updated.priority is TicketPriority.URGENT

    with pytest.raises(ForbiddenError):
        await ticket_service.delete_ticket(users["salesperson_two"], ticket.id)

    await ticket_service.delete_ticket(users["salesperson"], ticket.id)
    with pytest.raises(NotFoundError):
        await ticket_service.get_ticket(users["admin"], ticket.id)

    trail = await audit.list_entries(table_name="tickets", record_id=ticket.id)
    assert {entry.action for entry in trail} == {AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE}
