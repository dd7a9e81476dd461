"""Ticket domain models, lifecycle rules and code generation."""

from .models import Ticket, TicketEvent, TicketPriority, TicketType
from .state import TicketStateMachine, TicketStatus, TransitionPayload

__all__ = [
    "Ticket",
    "TicketEvent",
    "TicketPriority",
    "TicketStateMachine",
    "TicketStatus",
    "TicketType",
    "TransitionPayload",
]
