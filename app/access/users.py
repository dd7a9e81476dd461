from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.audit.logger import AuditAction, AuditLogger
from app.core.database import read_session, transaction
from app.core.errors import ConflictError, NotFoundError, ValidationError
from packages.db.models import DepartmentTable, UserTable

from .models import Department, UserProfile
from .permissions import Operation, PermissionEngine
from .roles import Role, RoleClassification, classification_of

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class UserService:
    """User profile and department administration."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        permissions: PermissionEngine | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._permissions = permissions or PermissionEngine()
        self._audit = audit or AuditLogger(session_factory)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_profile(self, user_id: str) -> UserProfile | None:
        async with read_session(self._session_factory) as session:
            row = await session.get(UserTable, user_id)
        return None if row is None else self._table_to_profile(row)

    async def list_users(
        self, actor: UserProfile, *, department_code: str | None = None, include_inactive: bool = True
    ) -> list[UserProfile]:
        self._permissions.ensure(actor, Operation.USER_MANAGE)
        statement = select(UserTable).order_by(UserTable.full_name.asc())
        if department_code is not None:
            statement = statement.where(UserTable.department_code == department_code)
        if not include_inactive:
            statement = statement.where(UserTable.is_active.is_(True))
        async with read_session(self._session_factory) as session:
            rows = (await session.execute(statement)).scalars().all()
        return [self._table_to_profile(row) for row in rows]

    async def create_user(
        self,
        actor: UserProfile,
        *,
        email: str,
        full_name: str,
        role: Role,
        department_code: str | None = None,
        user_id: str | None = None,
    ) -> UserProfile:
        self._permissions.ensure(actor, Operation.USER_MANAGE)
        email = email.strip().lower()
        if "@" not in email:
            raise ValidationError.for_field("email", "A valid email address is required")
        if not full_name.strip():
            raise ValidationError.for_field("full_name", "Full name is required")

        now = self._clock()
        async with transaction(self._session_factory) as session:
            await self._check_department(session, Role(role), department_code)
            existing = await session.execute(select(func.count()).select_from(UserTable).where(UserTable.email == email))
            if existing.scalar_one():
                raise ConflictError("A user with this email already exists", details={"email": email})
            profile = UserProfile(
                id=user_id or str(uuid.uuid4()),
                email=email,
                full_name=full_name.strip(),
                role=Role(role),
                department_code=department_code,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            session.add(
                UserTable(
                    id=profile.id,
                    email=profile.email,
                    full_name=profile.full_name,
                    role=profile.role.value,
                    department_code=profile.department_code,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="users",
                record_id=profile.id,
                action=AuditAction.CREATE,
                after=profile,
            )
        logger.info("User %s created with role %s", profile.id, profile.role.value)
        return profile

    async def update_user(
        self,
        actor: UserProfile,
        user_id: str,
        *,
        full_name: str | None = None,
        role: Role | None = None,
        department_code: str | None = _UNSET,
        is_active: bool | None = None,
    ) -> UserProfile:
        self._permissions.ensure(actor, Operation.USER_MANAGE)
        async with transaction(self._session_factory) as session:
            row = await session.get(UserTable, user_id)
            if row is None:
                raise NotFoundError.for_resource("User", user_id)
            before = self._table_to_profile(row)

            if full_name is not None:
                if not full_name.strip():
                    raise ValidationError.for_field("full_name", "Full name is required")
                row.full_name = full_name.strip()
            if role is not None:
                row.role = Role(role).value
            if department_code is not _UNSET:
                row.department_code = department_code
            if is_active is not None:
                if user_id == actor.id and not is_active:
                    raise ValidationError.for_field("is_active", "You cannot deactivate your own account")
                row.is_active = is_active
            await self._check_department(session, Role(row.role), row.department_code)
            row.updated_at = self._clock()
            session.add(row)
            await session.flush()

            after = self._table_to_profile(row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="users",
                record_id=user_id,
                action=AuditAction.UPDATE,
                before=before,
                after=after,
            )
        return after

    async def list_departments(self) -> list[Department]:
        async with read_session(self._session_factory) as session:
            rows = (await session.execute(select(DepartmentTable).order_by(DepartmentTable.code))).scalars().all()
        return [self._table_to_department(row) for row in rows]

    async def update_department(
        self,
        actor: UserProfile,
        code: str,
        *,
        name: str | None = None,
        default_sla_hours: float | None = None,
        first_response_sla_hours: float | None = None,
    ) -> Department:
        self._permissions.ensure(actor, Operation.USER_MANAGE)
        for field_name, value in (
            ("default_sla_hours", default_sla_hours),
            ("first_response_sla_hours", first_response_sla_hours),
        ):
            if value is not None and value <= 0:
                raise ValidationError.for_field(field_name, "SLA hours must be positive")

        async with transaction(self._session_factory) as session:
            row = await session.get(DepartmentTable, code)
            if row is None:
                raise NotFoundError.for_resource("Department", code)
            before = self._table_to_department(row)
            if name is not None:
                row.name = name
            if default_sla_hours is not None:
                row.default_sla_hours = default_sla_hours
            if first_response_sla_hours is not None:
                row.first_response_sla_hours = first_response_sla_hours
            session.add(row)
            await session.flush()
            after = self._table_to_department(row)
            await self._audit.record(
                session,
                actor_id=actor.id,
                table_name="departments",
                record_id=code,
                action=AuditAction.UPDATE,
                before=before,
                after=after,
            )
        return after

    @staticmethod
    async def get_department(session: AsyncSession, code: str) -> Department | None:
        row = await session.get(DepartmentTable, code)
        return None if row is None else UserService._table_to_department(row)

    @staticmethod
    async def _check_department(session: AsyncSession, role: Role, department_code: str | None) -> None:
        if department_code is None:
            if classification_of(role) is not RoleClassification.ADMIN:
                raise ValidationError.for_field("department_code", "Managers and staff must belong to a department")
            return
        if await session.get(DepartmentTable, department_code) is None:
            raise NotFoundError.for_resource("Department", department_code)

    @staticmethod
    def _table_to_profile(row: UserTable) -> UserProfile:
        return UserProfile(
            id=row.id,
            email=row.email,
            full_name=row.full_name,
            role=Role(row.role),
            department_code=row.department_code,
            is_active=bool(row.is_active),
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_department(row: DepartmentTable) -> Department:
        return Department(
            code=row.code,
            name=row.name,
            default_sla_hours=row.default_sla_hours,
            first_response_sla_hours=row.first_response_sla_hours,
        )


def _ensure_datetime(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
