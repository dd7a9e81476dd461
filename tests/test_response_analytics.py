from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.core.database import transaction
from app.sla.calendar import TimeWindow
from app.tickets.models import ResponseDirection, TicketType
from packages.db.models import TicketEventTable

WINDOW = TimeWindow(datetime(2024, 3, 1, tzinfo=timezone.utc), datetime(2024, 4, 1, tzinfo=timezone.utc))


async def _conversation(ticket_service, users, clock, *, requester="salesperson", agent="sales_manager",
                        department="SAL", subject="Inquiry"):
    ticket = await ticket_service.create_ticket(
        users[requester], ticket_type=TicketType.GEN, subject=subject, department_code=department
    )
    clock.advance(minutes=20)
    await ticket_service.add_comment(users[agent], ticket.id, "Looking into it")
    clock.advance(minutes=40)
    await ticket_service.add_comment(users[requester], ticket.id, "Thanks, any ETA?")
    clock.advance(minutes=60)
    await ticket_service.add_comment(users[agent], ticket.id, "Tomorrow morning")
    return ticket


@pytest.mark.asyncio
async def test_user_and_ticket_stats(ticket_service, analyzer, users, clock):
    ticket = await _conversation(ticket_service, users, clock)

    manager = await analyzer.compute_user_stats("sales-manager", WINDOW)
    assert manager.count == 2
    assert manager.mean == pytest.approx((20 * 60 + 60 * 60) / 2)
    assert manager.p90 == pytest.approx(3600)

    requester = await analyzer.compute_user_stats("salesperson", WINDOW)
    assert requester.count == 1
    assert requester.median == pytest.approx(40 * 60)

    everything = await analyzer.compute_ticket_stats(ticket.id)
    to_department = await analyzer.compute_ticket_stats(ticket.id, direction=ResponseDirection.TO_DEPARTMENT)
    assert everything.count == 3
    assert to_department.count == 1


@pytest.mark.asyncio
async def test_department_stats_and_breakdowns(ticket_service, analyzer, users, clock):
    await _conversation(ticket_service, users, clock)
    await _conversation(
        ticket_service, users, clock, requester="marketing_staff", agent="marketing_manager", department="MKT"
    )

    sales = await analyzer.compute_department_stats("SAL", WINDOW)
    assert sales.count == 2
    sales_all = await analyzer.compute_department_stats("SAL", WINDOW, direction=None)
    assert sales_all.count == 3

    breakdown = await analyzer.department_breakdown(WINDOW)
    assert [entry.department_code for entry in breakdown] == ["MKT", "SAL"]
    assert breakdown[1].first_response.count == 1
    assert breakdown[1].first_response.mean == pytest.approx(1200)
    assert breakdown[1].requester_replies.count == 1

    per_user = await analyzer.user_breakdown(WINDOW, department_code="MKT")
    assert [entry.user_id for entry in per_user] == ["marketing-manager", "marketing-staff"]


@pytest.mark.asyncio
async def test_window_excludes_out_of_range_events(ticket_service, analyzer, users, clock):
    await _conversation(ticket_service, users, clock)
    april = TimeWindow(datetime(2024, 4, 1, tzinfo=timezone.utc), datetime(2024, 5, 1, tzinfo=timezone.utc))

    stats = await analyzer.compute_user_stats("sales-manager", april)
    assert stats.count == 0
    assert stats.mean is None


@pytest.mark.asyncio
async def test_summary_counts_visible_tickets(ticket_service, analyzer, users, clock):
    await _conversation(ticket_service, users, clock, subject="One")
    await _conversation(ticket_service, users, clock, requester="salesperson_two", subject="Two")

    summary = await analyzer.summarize(WINDOW, visible_to=users["salesperson"])
    assert summary.total == 1
    assert summary.by_status == {"waiting_customer": 1}

    department = await analyzer.summarize(WINDOW, department_code="SAL")
    assert department.total == 2
    assert department.open == 2
    assert department.by_type == {"GEN": 2}


@pytest.mark.asyncio
async def test_backfill_restores_attribution(ticket_service, analyzer, session_factory, users, clock):
    ticket = await _conversation(ticket_service, users, clock)

    async with transaction(session_factory) as session:
        await session.execute(
            TicketEventTable.__table__.update()
            .where(TicketEventTable.ticket_id == ticket.id)
            .values(response_direction=None, response_time_seconds=None, is_first_response=False)
        )

    changed = await analyzer.backfill_ticket(ticket.id)
    assert changed == 3

    stats = await analyzer.compute_ticket_stats(ticket.id)
    assert stats.count == 3
    assert await analyzer.backfill_ticket(ticket.id) == 0
