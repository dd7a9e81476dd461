"""Static role catalog: role names, classifications and granted capabilities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class Role(str, Enum):
    """The fixed set of roles a user profile can hold."""

    SUPER_ADMIN = "super_admin"
    MARKETING_MANAGER = "marketing_manager"
    MARKETING_STAFF = "marketing_staff"
    SALES_MANAGER = "sales_manager"
    SALESPERSON = "salesperson"
    DOMESTICS_OPS_MANAGER = "domestics_ops_manager"
    EXIM_OPS_MANAGER = "exim_ops_manager"
    IMPORT_DTD_OPS_MANAGER = "import_dtd_ops_manager"
    WAREHOUSE_TRAFFIC_OPS_MANAGER = "warehouse_traffic_ops_manager"


class RoleClassification(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class Capability(str, Enum):
    """Capability strings consumed by the permission engine."""

    TICKET_CREATE = "ticket:create"
    TICKET_VIEW = "ticket:view"
    TICKET_UPDATE = "ticket:update"
    TICKET_DELETE = "ticket:delete"
    TICKET_ASSIGN = "ticket:assign"
    QUOTE_CREATE = "quote:create"
    QUOTE_UPDATE = "quote:update"
    COMMENT_CREATE = "comment:create"
    COMMENT_INTERNAL = "comment:internal"
    ATTACHMENT_UPLOAD = "attachment:upload"
    ATTACHMENT_DELETE = "attachment:delete"
    DASHBOARD_VIEW = "dashboard:view"
    USERS_MANAGE = "users:manage"


@dataclass(frozen=True, slots=True)
class RoleDefinition:
    name: Role
    display_name: str
    classification: RoleClassification
    capabilities: frozenset[Capability]

    def grants(self, capability: Capability) -> bool:
        return capability in self.capabilities


_STAFF_CAPABILITIES = frozenset(
    {
        Capability.TICKET_CREATE,
        Capability.TICKET_VIEW,
        Capability.TICKET_UPDATE,
        Capability.TICKET_DELETE,
        Capability.COMMENT_CREATE,
        Capability.ATTACHMENT_UPLOAD,
        Capability.ATTACHMENT_DELETE,
        Capability.DASHBOARD_VIEW,
    }
)

_MANAGER_CAPABILITIES = _STAFF_CAPABILITIES | {
    Capability.TICKET_ASSIGN,
    Capability.QUOTE_CREATE,
    Capability.QUOTE_UPDATE,
    Capability.COMMENT_INTERNAL,
}

_ADMIN_CAPABILITIES = frozenset(Capability)


def _manager(role: Role, display_name: str) -> RoleDefinition:
    return RoleDefinition(role, display_name, RoleClassification.MANAGER, _MANAGER_CAPABILITIES)


def _staff(role: Role, display_name: str) -> RoleDefinition:
    return RoleDefinition(role, display_name, RoleClassification.STAFF, _STAFF_CAPABILITIES)


ROLE_CATALOG: Mapping[Role, RoleDefinition] = {
    Role.SUPER_ADMIN: RoleDefinition(
        Role.SUPER_ADMIN, "Super Admin", RoleClassification.ADMIN, _ADMIN_CAPABILITIES
    ),
    Role.MARKETING_MANAGER: _manager(Role.MARKETING_MANAGER, "Marketing Manager"),
    Role.MARKETING_STAFF: _staff(Role.MARKETING_STAFF, "Marketing Staff"),
    Role.SALES_MANAGER: _manager(Role.SALES_MANAGER, "Sales Manager"),
    Role.SALESPERSON: _staff(Role.SALESPERSON, "Salesperson"),
    Role.DOMESTICS_OPS_MANAGER: _manager(Role.DOMESTICS_OPS_MANAGER, "Domestics Ops Manager"),
    Role.EXIM_OPS_MANAGER: _manager(Role.EXIM_OPS_MANAGER, "Exim Ops Manager"),
    Role.IMPORT_DTD_OPS_MANAGER: _manager(Role.IMPORT_DTD_OPS_MANAGER, "Import DTD Ops Manager"),
    Role.WAREHOUSE_TRAFFIC_OPS_MANAGER: _manager(
        Role.WAREHOUSE_TRAFFIC_OPS_MANAGER, "Warehouse & Traffic Ops Manager"
    ),
}


def get_role(role: Role | str) -> RoleDefinition:
    """Look up a role definition; unknown names raise ``ValueError``."""

    return ROLE_CATALOG[Role(role)]


def classification_of(role: Role | str) -> RoleClassification:
    return get_role(role).classification


__all__ = [
    "Capability",
    "ROLE_CATALOG",
    "Role",
    "RoleClassification",
    "RoleDefinition",
    "classification_of",
    "get_role",
]
