"""Database models and utilities."""

from .models import (
    AssignmentTable,
    AttachmentTable,
    AuditLogTable,
    DepartmentTable,
    QuoteTable,
    SLARecordTable,
    TicketEventTable,
    TicketSequenceTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "AssignmentTable",
    "AttachmentTable",
    "AuditLogTable",
    "DepartmentTable",
    "QuoteTable",
    "SLARecordTable",
    "TicketEventTable",
    "TicketSequenceTable",
    "TicketTable",
    "UserTable",
]
