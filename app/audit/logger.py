"""Append-only audit trail written inside the caller's transaction."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping

from pydantic import BaseModel
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from sqlmodel import select

from app.core.database import read_session
from app.core.errors import PersistenceError
from packages.db.models import AuditLogTable

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True)
class AuditLogEntry:
    id: str
    table_name: str
    record_id: str
    action: AuditAction
    actor_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    created_at: datetime


def snapshot(value: Any) -> Any:
    """Convert domain values into JSON-safe structures for the audit columns."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {item.name: snapshot(getattr(value, item.name)) for item in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(key): snapshot(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [snapshot(item) for item in value]
    return str(value)


def _reject_audit_mutation(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.deleted:
        if isinstance(obj, AuditLogTable):
            raise PersistenceError("Audit log entries cannot be deleted", details={"id": obj.id})
    for obj in session.dirty:
        if isinstance(obj, AuditLogTable) and session.is_modified(obj):
            raise PersistenceError("Audit log entries cannot be modified", details={"id": obj.id})


def install_append_only_guard() -> None:
    """Register the ``before_flush`` hook that keeps ``audit_logs`` append-only."""

    if not event.contains(Session, "before_flush", _reject_audit_mutation):
        event.listen(Session, "before_flush", _reject_audit_mutation)


class AuditLogger:
    """Record one audit row per mutation in the same unit of work as the mutation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        install_append_only_guard()

    async def record(
        self,
        session: AsyncSession,
        *,
        actor_id: str,
        table_name: str,
        record_id: str,
        action: AuditAction | str,
        before: Any = None,
        after: Any = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            table_name=table_name,
            record_id=str(record_id),
            action=AuditAction(action),
            actor_id=actor_id,
            before=snapshot(before),
            after=snapshot(after),
            created_at=self._clock(),
        )
        session.add(
            AuditLogTable(
                id=entry.id,
                table_name=entry.table_name,
                record_id=entry.record_id,
                action=entry.action.value,
                actor_id=entry.actor_id,
                before=entry.before,
                after=entry.after,
                created_at=entry.created_at,
            )
        )
        try:
            await session.flush()
        except SQLAlchemyError as exc:
            logger.error("Audit write failed for %s/%s: %s", table_name, record_id, exc)
            raise PersistenceError(
                "Failed to write audit log entry", details={"table": table_name, "record_id": str(record_id)}
            ) from exc
        return entry

    async def list_entries(
        self,
        *,
        table_name: str | None = None,
        record_id: str | None = None,
        actor_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        if self._session_factory is None:
            raise RuntimeError("AuditLogger is not bound to a session factory")
        statement = select(AuditLogTable)
        if table_name is not None:
            statement = statement.where(AuditLogTable.table_name == table_name)
        if record_id is not None:
            statement = statement.where(AuditLogTable.record_id == record_id)
        if actor_id is not None:
            statement = statement.where(AuditLogTable.actor_id == actor_id)
        statement = statement.order_by(AuditLogTable.created_at.desc()).offset(offset).limit(limit)

        async with read_session(self._session_factory) as session:
            result = await session.execute(statement)
            rows = result.scalars().all()
        return [self._table_to_entry(row) for row in rows]

    @staticmethod
    def _table_to_entry(row: AuditLogTable) -> AuditLogEntry:
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return AuditLogEntry(
            id=row.id,
            table_name=row.table_name,
            record_id=row.record_id,
            action=AuditAction(row.action),
            actor_id=row.actor_id,
            before=row.before,
            after=row.after,
            created_at=created_at,
        )


__all__ = ["AuditAction", "AuditLogEntry", "AuditLogger", "install_append_only_guard", "snapshot"]
