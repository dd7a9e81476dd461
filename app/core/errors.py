"""Error taxonomy shared by the ticketing engine and its HTTP boundary."""

from __future__ import annotations

from typing import Any, Mapping


class TicketingError(RuntimeError):
    """Base error for every failure surfaced by the engine."""

    status_code: int = 500

    def __init__(self, message: str, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "error": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TicketingError):
    """Malformed or missing input; ``details`` maps field names to messages."""

    status_code = 422

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details={field: [message]})


class ForbiddenError(TicketingError):
    """The permission engine denied the operation."""

    status_code = 403


class NotFoundError(TicketingError):
    """A referenced ticket, user, department or child record does not exist."""

    status_code = 404

    @classmethod
    def for_resource(cls, resource: str, identifier: Any) -> "NotFoundError":
        return cls(f"{resource} {identifier} not found", details={"resource": resource, "id": str(identifier)})


class InvalidTransitionError(TicketingError):
    """Requested status change is not an edge of the lifecycle table."""

    status_code = 409

    def __init__(self, current: Any, target: Any) -> None:
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot transition ticket from {current_value} to {target_value}",
            details={"current": current_value, "target": target_value},
        )
        self.current = current
        self.target = target


class ConflictError(TicketingError):
    """Concurrent write collision; the caller should retry the whole operation once."""

    status_code = 409


class PersistenceError(TicketingError):
    """Underlying store failure. Never retried by the engine."""

    status_code = 503


__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InvalidTransitionError",
    "NotFoundError",
    "PersistenceError",
    "TicketingError",
    "ValidationError",
]
