"""Human readable ticket codes: ``{TYPE}{DEPT}{DDMMYY}{SEQ:03}``."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from packages.db.models import TicketSequenceTable

logger = logging.getLogger(__name__)

TICKET_CODE_PATTERN = re.compile(r"^(RFQ|GEN)([A-Z]{3})(\d{6})(\d{3})$")
MAX_SEQUENCE = 999

_DEPARTMENT_CODE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True, slots=True)
class TicketCodeParts:
    ticket_type: str
    department_code: str
    issued_on: date
    sequence: int


def format_ticket_code(ticket_type: str, department_code: str, on_date: date, sequence: int) -> str:
    ticket_type = str(getattr(ticket_type, "value", ticket_type))
    if ticket_type not in ("RFQ", "GEN"):
        raise ValidationError.for_field("ticket_type", f"Unsupported ticket type '{ticket_type}'")
    if not _DEPARTMENT_CODE.match(department_code):
        raise ValidationError.for_field("department_code", "Department code must be three uppercase letters")
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValidationError.for_field(
            "sequence", f"Daily ticket sequence exhausted for {ticket_type}{department_code} on {on_date:%d%m%y}"
        )
    return f"{ticket_type}{department_code}{on_date:%d%m%y}{sequence:03d}"


def parse_ticket_code(code: str) -> TicketCodeParts:
    match = TICKET_CODE_PATTERN.match(code)
    if match is None:
        raise ValidationError.for_field("ticket_code", f"Malformed ticket code '{code}'")
    ticket_type, department_code, raw_date, raw_sequence = match.groups()
    try:
        issued_on = datetime.strptime(raw_date, "%d%m%y").date()
    except ValueError:
        raise ValidationError.for_field("ticket_code", f"Ticket code '{code}' has an invalid date") from None
    return TicketCodeParts(ticket_type, department_code, issued_on, int(raw_sequence))


class TicketCodeGenerator:
    """Allocate per (type, department, day) sequence numbers inside the caller's transaction."""

    async def generate(
        self,
        ticket_type: str,
        department_code: str,
        on_date: date,
        *,
        session: AsyncSession,
    ) -> str:
        ticket_type = str(getattr(ticket_type, "value", ticket_type))
        sequence = await self._next_sequence(session, ticket_type, department_code, on_date)
        code = format_ticket_code(ticket_type, department_code, on_date, sequence)
        logger.debug("Allocated ticket code %s", code)
        return code

    async def _next_sequence(
        self, session: AsyncSession, ticket_type: str, department_code: str, on_date: date
    ) -> int:
        table = TicketSequenceTable.__table__
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            statement = (
                insert(table)
                .values(
                    ticket_type=ticket_type,
                    department_code=department_code,
                    sequence_date=on_date,
                    last_value=1,
                )
                .on_conflict_do_update(
                    index_elements=[table.c.ticket_type, table.c.department_code, table.c.sequence_date],
                    set_={"last_value": table.c.last_value + 1},
                )
                .returning(table.c.last_value)
            )
            result = await session.execute(statement)
            return int(result.scalar_one())

        key = (
            (table.c.ticket_type == ticket_type)
            & (table.c.department_code == department_code)
            & (table.c.sequence_date == on_date)
        )
        updated = await session.execute(update(table).where(key).values(last_value=table.c.last_value + 1))
        if updated.rowcount == 0:
            await session.execute(
                table.insert().values(
                    ticket_type=ticket_type,
                    department_code=department_code,
                    sequence_date=on_date,
                    last_value=1,
                )
            )
        result = await session.execute(select(table.c.last_value).where(key))
        return int(result.scalar_one())


__all__ = [
    "MAX_SEQUENCE",
    "TICKET_CODE_PATTERN",
    "TicketCodeGenerator",
    "TicketCodeParts",
    "format_ticket_code",
    "parse_ticket_code",
]
