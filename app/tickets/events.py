"""Post-commit notifications for ticket observers (mailers, UI refreshers)."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Union

from .state import TicketStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TicketCreated:
    ticket_id: str
    ticket_code: str
    department_code: str
    actor_id: str
    occurred_at: datetime


@dataclass(frozen=True, slots=True)
class TicketStatusChanged:
    ticket_id: str
    ticket_code: str
    from_status: TicketStatus
    to_status: TicketStatus
    actor_id: str
    occurred_at: datetime
    automated: bool = False


@dataclass(frozen=True, slots=True)
class TicketAssigned:
    ticket_id: str
    ticket_code: str
    assigned_to: str
    actor_id: str
    occurred_at: datetime


@dataclass(frozen=True, slots=True)
class TicketCommented:
    ticket_id: str
    ticket_code: str
    event_id: str
    actor_id: str
    is_internal: bool
    occurred_at: datetime


TicketNotification = Union[TicketCreated, TicketStatusChanged, TicketAssigned, TicketCommented]
Subscriber = Callable[[TicketNotification], Union[Awaitable[None], None]]


class TicketEventBus:
    """Explicit observer list; subscribers are called after the write has committed."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register ``subscriber`` and return a callable that removes it again."""

        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            self.unsubscribe(subscriber)

        return unsubscribe

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, notification: TicketNotification) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # The write has already committed at this point.
                logger.exception("Ticket subscriber %r failed for %s", subscriber, type(notification).__name__)

    async def publish_all(self, notifications: list[TicketNotification]) -> None:
        for notification in notifications:
            await self.publish(notification)


__all__ = [
    "Subscriber",
    "TicketAssigned",
    "TicketCommented",
    "TicketCreated",
    "TicketEventBus",
    "TicketNotification",
    "TicketStatusChanged",
]
