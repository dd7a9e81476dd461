from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from app.core.errors import InvalidTransitionError, ValidationError


class TicketStatus(str, Enum):
    """Canonical states of a ticket's lifecycle."""

    OPEN = "open"
    NEED_RESPONSE = "need_response"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    CLOSED = "closed"


class CloseOutcome(str, Enum):
    WON = "won"
    LOST = "lost"


class LostReason(str, Enum):
    PRICE_NOT_COMPETITIVE = "price_not_competitive"
    CUSTOMER_CANCEL = "customer_cancel"
    COMPETITOR_WON = "competitor_won"
    SERVICE_NOT_MATCH = "service_not_match"
    TIMING_ISSUE = "timing_issue"
    OTHER = "other"


# Values found in older rows and clients, folded into the five-state model.
LEGACY_STATUS_ALIASES: dict[str, TicketStatus] = {
    "pending": TicketStatus.IN_PROGRESS,
    "resolved": TicketStatus.IN_PROGRESS,
    "need_adjustment": TicketStatus.NEED_RESPONSE,
}


def normalize_status(value: TicketStatus | str) -> TicketStatus:
    """Map a stored or requested status string onto :class:`TicketStatus`."""

    if isinstance(value, TicketStatus):
        return value
    raw = str(value).strip().lower()
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    try:
        return TicketStatus(raw)
    except ValueError:
        raise ValidationError.for_field("status", f"Unknown ticket status '{value}'") from None


@dataclass(slots=True)
class TransitionPayload:
    """Optional data accompanying a status change; close fields apply to RFQ tickets."""

    close_outcome: CloseOutcome | None = None
    close_reason: LostReason | None = None
    project_date: date | None = None
    competitor_name: str | None = None
    competitor_cost: Decimal | None = None
    note: str | None = None

    @property
    def has_close_fields(self) -> bool:
        return any(
            value is not None
            for value in (
                self.close_outcome,
                self.close_reason,
                self.project_date,
                self.competitor_name,
                self.competitor_cost,
            )
        )


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.OPEN: frozenset(
            {TicketStatus.NEED_RESPONSE, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}
        ),
        TicketStatus.NEED_RESPONSE: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.WAITING_CUSTOMER, TicketStatus.CLOSED}
        ),
        TicketStatus.IN_PROGRESS: frozenset(
            {TicketStatus.NEED_RESPONSE, TicketStatus.WAITING_CUSTOMER, TicketStatus.CLOSED}
        ),
        TicketStatus.WAITING_CUSTOMER: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.NEED_RESPONSE, TicketStatus.CLOSED}
        ),
        TicketStatus.CLOSED: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def allowed_targets(cls, current: TicketStatus) -> frozenset[TicketStatus]:
        return cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls.allowed_targets(current)

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise InvalidTransitionError(current, new)

    @classmethod
    def validate_payload(cls, ticket_type: str, target: TicketStatus, payload: TransitionPayload) -> None:
        """Check close-outcome rules; raises ``ValidationError`` with per-field messages."""

        errors: dict[str, list[str]] = {}

        def add(field: str, message: str) -> None:
            errors.setdefault(field, []).append(message)

        is_rfq = ticket_type == "RFQ"
        if target is not TicketStatus.CLOSED:
            if payload.has_close_fields:
                add("close_outcome", "Close details are only accepted when closing a ticket")
        elif not is_rfq:
            if payload.has_close_fields:
                add("close_outcome", "Only RFQ tickets carry a close outcome")
        elif payload.close_outcome is None:
            add("close_outcome", "RFQ tickets require a close outcome (won or lost)")
        elif payload.close_outcome is CloseOutcome.WON:
            if payload.project_date is None:
                add("project_date", "Won tickets require a project date")
            if payload.close_reason is not None:
                add("close_reason", "Close reason only applies to lost tickets")
        else:
            if payload.close_reason is None:
                add("close_reason", "Lost tickets require a close reason")
            if payload.project_date is not None:
                add("project_date", "Project date only applies to won tickets")
            if payload.competitor_cost is not None and payload.competitor_cost < 0:
                add("competitor_cost", "Competitor cost cannot be negative")

        if errors:
            first = next(iter(errors.values()))[0]
            raise ValidationError(first, details=errors)

    @classmethod
    def reply_transition(cls, current: TicketStatus, *, from_requester: bool) -> TicketStatus | None:
        """Status a non-internal reply moves the ticket to, or ``None`` to leave it."""

        if from_requester:
            target = TicketStatus.NEED_RESPONSE if current is TicketStatus.WAITING_CUSTOMER else None
        elif current is TicketStatus.OPEN:
            target = TicketStatus.IN_PROGRESS
        elif current in (TicketStatus.NEED_RESPONSE, TicketStatus.IN_PROGRESS):
            target = TicketStatus.WAITING_CUSTOMER
        else:
            target = None
        if target is not None and not cls.can_transition(current, target):
            return None
        return target


__all__ = [
    "CloseOutcome",
    "LEGACY_STATUS_ALIASES",
    "LostReason",
    "TicketStateMachine",
    "TicketStatus",
    "TransitionPayload",
    "normalize_status",
]
