"""Attribute each reply to a direction and a business-hours response time."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Sequence

from app.sla.calendar import DEFAULT_CALENDAR, BusinessCalendar, as_utc, business_seconds_elapsed
from app.tickets.models import EventKind, ResponseDirection, Ticket, TicketEvent

_CONVERSATION_KINDS = frozenset({EventKind.COMMENT, EventKind.QUOTE})


@dataclass(frozen=True, slots=True)
class Attribution:
    response_direction: ResponseDirection
    response_time_seconds: float | None
    is_first_response: bool


def is_attributable(kind: EventKind, is_internal: bool) -> bool:
    """Only customer-visible comments and quotes take part in response timing."""

    return kind in _CONVERSATION_KINDS and not is_internal


def attribute_response(
    ticket: Ticket,
    prior_events: Sequence[TicketEvent],
    author_id: str,
    at: datetime,
    calendar: BusinessCalendar = DEFAULT_CALENDAR,
) -> Attribution:
    """Attribution of a new reply by ``author_id`` at ``at`` given the earlier history."""

    at = as_utc(at)
    from_requester = author_id == ticket.created_by
    conversation = [
        event
        for event in prior_events
        if is_attributable(event.kind, event.is_internal) and as_utc(event.created_at) <= at
    ]

    if from_requester:
        other_side = [as_utc(event.created_at) for event in conversation if event.author_id != ticket.created_by]
    else:
        # Ticket creation is the requester's opening message.
        other_side = [as_utc(ticket.created_at)]
        other_side.extend(as_utc(event.created_at) for event in conversation if event.author_id == ticket.created_by)

    last_other = max(other_side) if other_side else None
    response_time = None if last_other is None else business_seconds_elapsed(last_other, at, calendar)

    is_first = (
        not from_requester
        and ticket.first_response_at is None
        and not any(event.author_id != ticket.created_by for event in conversation)
    )
    return Attribution(
        response_direction=ResponseDirection.TO_DEPARTMENT if from_requester else ResponseDirection.TO_REQUESTER,
        response_time_seconds=response_time,
        is_first_response=is_first,
    )


def attribute_history(
    ticket: Ticket,
    events: Sequence[TicketEvent],
    calendar: BusinessCalendar = DEFAULT_CALENDAR,
) -> list[TicketEvent]:
    """Recompute attribution for a whole conversation, oldest event first."""

    ordered = sorted(events, key=lambda event: (as_utc(event.created_at), event.id))
    baseline = replace(ticket, first_response_at=None)
    attributed: list[TicketEvent] = []
    for index, event in enumerate(ordered):
        if not is_attributable(event.kind, event.is_internal):
            attributed.append(
                replace(event, response_direction=None, response_time_seconds=None, is_first_response=False)
            )
            continue
        result = attribute_response(baseline, ordered[:index], event.author_id, event.created_at, calendar)
        attributed.append(
            replace(
                event,
                response_direction=result.response_direction,
                response_time_seconds=result.response_time_seconds,
                is_first_response=result.is_first_response,
            )
        )
    return attributed


__all__ = ["Attribution", "attribute_history", "attribute_response", "is_attributable"]
