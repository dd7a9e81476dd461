"""SQLModel table definitions for the ticketing data layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class DepartmentTable(SQLModel, table=True):
    """Reference data: departments that own tickets."""

    __tablename__ = "departments"

    code: str = Field(sa_column=Column(String(3), primary_key=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    default_sla_hours: float = Field(default=48.0, sa_column=Column(Float, nullable=False))
    first_response_sla_hours: float = Field(default=4.0, sa_column=Column(Float, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserTable(SQLModel, table=True):
    """User profiles; exactly one role and at most one department each."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    full_name: str = Field(sa_column=Column(String(255), nullable=False))
    role: str = Field(sa_column=Column(String(64), nullable=False))
    department_code: str | None = Field(
        default=None, sa_column=Column(String(3), ForeignKey("departments.code"), nullable=True)
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Ticket records (RFQ and general inquiries)."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    ticket_code: str = Field(sa_column=Column(String(15), nullable=False, unique=True))
    ticket_type: str = Field(sa_column=Column(String(3), nullable=False))
    status: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    priority: str = Field(sa_column=Column(String(16), nullable=False))
    subject: str = Field(sa_column=Column(String(255), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    department_code: str = Field(
        sa_column=Column(String(3), ForeignKey("departments.code"), nullable=False, index=True)
    )
    created_by: str = Field(sa_column=Column(String(36), ForeignKey("users.id"), nullable=False, index=True))
    assigned_to: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    )
    type_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    close_outcome: str | None = Field(default=None, sa_column=Column(String(8), nullable=True))
    close_reason: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    project_date: date | None = Field(default=None, sa_column=Column(Date, nullable=True))
    competitor_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    competitor_cost: float | None = Field(default=None, sa_column=Column(Numeric(14, 2), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    first_response_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    resolved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class TicketSequenceTable(SQLModel, table=True):
    """Per (type, department, day) counter behind ticket codes."""

    __tablename__ = "ticket_sequences"

    ticket_type: str = Field(sa_column=Column(String(3), primary_key=True))
    department_code: str = Field(sa_column=Column(String(3), primary_key=True))
    sequence_date: date = Field(sa_column=Column(Date, primary_key=True))
    last_value: int = Field(default=0, sa_column=Column(Integer, nullable=False))


class TicketEventTable(SQLModel, table=True):
    """Append-only conversation and lifecycle history of a ticket."""

    __tablename__ = "ticket_events"
    __table_args__ = (Index("ix_ticket_events_ticket_created", "ticket_id", "created_at"),)

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    author_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    kind: str = Field(sa_column=Column(String(32), nullable=False))
    content: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    is_internal: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    from_status: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    to_status: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    response_direction: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    response_time_seconds: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    is_first_response: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class SLARecordTable(SQLModel, table=True):
    """SLA targets and milestone outcomes, one row per ticket."""

    __tablename__ = "sla_records"

    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
    )
    first_response_target_hours: float = Field(sa_column=Column(Float, nullable=False))
    first_response_met: bool | None = Field(default=None, sa_column=Column(Boolean, nullable=True))
    first_response_hours: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    resolution_target_hours: float = Field(sa_column=Column(Float, nullable=False))
    resolution_met: bool | None = Field(default=None, sa_column=Column(Boolean, nullable=True))
    resolution_hours: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class QuoteTable(SQLModel, table=True):
    """Rate quotes issued against RFQ tickets."""

    __tablename__ = "rate_quotes"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    quote_number: str = Field(sa_column=Column(String(32), nullable=False, unique=True))
    amount: float = Field(sa_column=Column(Numeric(14, 2), nullable=False))
    currency: str = Field(sa_column=Column(String(3), nullable=False))
    valid_until: date = Field(sa_column=Column(Date, nullable=False))
    terms: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(sa_column=Column(String(16), nullable=False))
    created_by: str = Field(sa_column=Column(String(36), ForeignKey("users.id"), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AttachmentTable(SQLModel, table=True):
    """Attachment metadata; file bytes live in external storage."""

    __tablename__ = "ticket_attachments"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    file_type: str = Field(sa_column=Column(String(128), nullable=False))
    file_size: int = Field(sa_column=Column(Integer, nullable=False))
    storage_key: str = Field(sa_column=Column(String(512), nullable=False))
    uploaded_by: str = Field(sa_column=Column(String(36), ForeignKey("users.id"), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AssignmentTable(SQLModel, table=True):
    """Assignment history of a ticket."""

    __tablename__ = "ticket_assignments"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    assigned_to: str = Field(sa_column=Column(String(36), ForeignKey("users.id"), nullable=False))
    assigned_by: str = Field(sa_column=Column(String(36), ForeignKey("users.id"), nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    assigned_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AuditLogTable(SQLModel, table=True):
    """Append-only audit trail of every mutation."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_record", "table_name", "record_id"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    table_name: str = Field(sa_column=Column(String(64), nullable=False))
    record_id: str = Field(sa_column=Column(String(64), nullable=False))
    action: str = Field(sa_column=Column(String(16), nullable=False))
    actor_id: str = Field(sa_column=Column(String(36), nullable=False))
    before: dict[str, Any] | None = Field(default=None, sa_column=Column("before_data", JSON, nullable=True))
    after: dict[str, Any] | None = Field(default=None, sa_column=Column("after_data", JSON, nullable=True))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
