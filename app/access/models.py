from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .roles import Role, RoleClassification, RoleDefinition, get_role


@dataclass(slots=True)
class Department:
    """Department reference data keyed by its three letter code."""

    code: str
    name: str
    default_sla_hours: float
    first_response_sla_hours: float


@dataclass(slots=True)
class UserProfile:
    """A user as seen by the permission engine."""

    id: str
    email: str
    full_name: str
    role: Role
    department_code: str | None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def definition(self) -> RoleDefinition:
        return get_role(self.role)

    @property
    def classification(self) -> RoleClassification:
        return self.definition.classification

    @property
    def is_admin(self) -> bool:
        return self.classification is RoleClassification.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.classification is RoleClassification.MANAGER

    @property
    def is_staff(self) -> bool:
        return self.classification is RoleClassification.STAFF


# Requests act on behalf of a resolved profile.
Actor = UserProfile

__all__ = ["Actor", "Department", "UserProfile"]
