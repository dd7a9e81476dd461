"""Central authorization decisions for tickets, attachments, quotes and users."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from app.core.errors import ForbiddenError

from .models import UserProfile
from .roles import Capability, RoleClassification

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    TICKET_CREATE = "ticket.create"
    TICKET_VIEW = "ticket.view"
    TICKET_UPDATE = "ticket.update"
    TICKET_DELETE = "ticket.delete"
    TICKET_ASSIGN = "ticket.assign"
    QUOTE_CREATE = "quote.create"
    QUOTE_UPDATE = "quote.update"
    COMMENT_CREATE = "comment.create"
    COMMENT_INTERNAL = "comment.internal"
    ATTACHMENT_UPLOAD = "attachment.upload"
    ATTACHMENT_DELETE = "attachment.delete"
    ANALYTICS_VIEW = "analytics.view"
    USER_MANAGE = "user.manage"


_REQUIRED_CAPABILITY: dict[Operation, Capability] = {
    Operation.TICKET_CREATE: Capability.TICKET_CREATE,
    Operation.TICKET_VIEW: Capability.TICKET_VIEW,
    Operation.TICKET_UPDATE: Capability.TICKET_UPDATE,
    Operation.TICKET_DELETE: Capability.TICKET_DELETE,
    Operation.TICKET_ASSIGN: Capability.TICKET_ASSIGN,
    Operation.QUOTE_CREATE: Capability.QUOTE_CREATE,
    Operation.QUOTE_UPDATE: Capability.QUOTE_UPDATE,
    Operation.COMMENT_CREATE: Capability.COMMENT_CREATE,
    Operation.COMMENT_INTERNAL: Capability.COMMENT_INTERNAL,
    Operation.ATTACHMENT_UPLOAD: Capability.ATTACHMENT_UPLOAD,
    Operation.ATTACHMENT_DELETE: Capability.ATTACHMENT_DELETE,
    Operation.ANALYTICS_VIEW: Capability.DASHBOARD_VIEW,
    Operation.USER_MANAGE: Capability.USERS_MANAGE,
}


class TicketResource(Protocol):
    created_by: str
    assigned_to: str | None
    department_code: str
    status: Any


class AttachmentResource(Protocol):
    uploaded_by: str


class QuoteResource(Protocol):
    created_by: str


@dataclass(frozen=True, slots=True)
class AnalyticsScope:
    """Subject of an analytics request: a single user, a department, or both."""

    user_id: str | None = None
    department_code: str | None = None


class PermissionEngine:
    """Evaluate ``actor`` × ``operation`` × ``resource`` without side effects."""

    def can_perform(self, actor: UserProfile | None, operation: Operation, resource: Any = None) -> bool:
        if actor is None or not actor.is_active:
            return False
        if not actor.definition.grants(_REQUIRED_CAPABILITY[operation]):
            return False
        if actor.is_admin:
            return True

        if operation is Operation.TICKET_CREATE:
            return True
        if operation is Operation.TICKET_VIEW:
            return self._is_related(actor, resource)
        if operation is Operation.TICKET_UPDATE:
            return self._is_related(actor, resource) and not _is_closed(resource)
        if operation is Operation.TICKET_DELETE:
            if not self.can_perform(actor, Operation.TICKET_UPDATE, resource):
                return False
            return not actor.is_staff or actor.id == resource.created_by
        if operation in (Operation.TICKET_ASSIGN, Operation.QUOTE_CREATE):
            return actor.classification in (RoleClassification.ADMIN, RoleClassification.MANAGER)
        if operation in (Operation.ATTACHMENT_UPLOAD, Operation.COMMENT_CREATE):
            return self.can_perform(actor, Operation.TICKET_VIEW, resource)
        if operation is Operation.COMMENT_INTERNAL:
            return actor.is_manager and self.can_perform(actor, Operation.TICKET_VIEW, resource)
        if operation is Operation.ATTACHMENT_DELETE:
            return resource is not None and resource.uploaded_by == actor.id
        if operation is Operation.QUOTE_UPDATE:
            return resource is not None and resource.created_by == actor.id
        if operation is Operation.ANALYTICS_VIEW:
            return self._can_view_analytics(actor, resource)
        # user.manage: admin only
        return False

    def has_capability(self, actor: UserProfile | None, operation: Operation) -> bool:
        """Role-level check without any resource context, e.g. for listings."""

        return actor is not None and actor.is_active and actor.definition.grants(_REQUIRED_CAPABILITY[operation])

    def ensure(self, actor: UserProfile | None, operation: Operation, resource: Any = None) -> None:
        """Raise :class:`ForbiddenError` when ``can_perform`` denies the request."""

        if self.can_perform(actor, operation, resource):
            return
        actor_id = actor.id if actor is not None else None
        logger.info("Permission denied: actor=%s operation=%s", actor_id, operation.value)
        raise ForbiddenError(
            "You do not have permission to perform this action",
            details={"operation": operation.value},
        )

    @staticmethod
    def _is_related(actor: UserProfile, ticket: TicketResource | None) -> bool:
        if ticket is None:
            return False
        if ticket.created_by == actor.id or ticket.assigned_to == actor.id:
            return True
        return actor.is_manager and actor.department_code is not None and (
            actor.department_code == ticket.department_code
        )

    @staticmethod
    def _can_view_analytics(actor: UserProfile, scope: AnalyticsScope | None) -> bool:
        if scope is None:
            return False
        if actor.is_manager:
            return scope.department_code is not None and scope.department_code == actor.department_code
        return scope.user_id == actor.id and scope.department_code in (None, actor.department_code)


def _is_closed(ticket: TicketResource | None) -> bool:
    return ticket is not None and getattr(ticket.status, "value", ticket.status) == "closed"


__all__ = ["AnalyticsScope", "Operation", "PermissionEngine"]
