"""Reference data loaded into a fresh database."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import transaction
from packages.db.models import DepartmentTable

from .models import Department

logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS: tuple[Department, ...] = (
    Department("MKT", "Marketing", 48.0, 4.0),
    Department("SAL", "Sales", 48.0, 4.0),
    Department("DOM", "Domestics Operations", 48.0, 4.0),
    Department("EXI", "Exim Operations", 48.0, 4.0),
    Department("DTD", "Import DTD Operations", 48.0, 4.0),
    Department("TRF", "Warehouse & Traffic Operations", 48.0, 4.0),
)


async def seed_departments(
    session_factory: async_sessionmaker[AsyncSession],
    departments: tuple[Department, ...] = DEFAULT_DEPARTMENTS,
) -> int:
    """Insert missing departments; existing rows are left untouched."""

    created = 0
    async with transaction(session_factory) as session:
        for department in departments:
            if await session.get(DepartmentTable, department.code) is not None:
                continue
            session.add(
                DepartmentTable(
                    code=department.code,
                    name=department.name,
                    default_sla_hours=department.default_sla_hours,
                    first_response_sla_hours=department.first_response_sla_hours,
                )
            )
            created += 1
    if created:
        logger.info("Seeded %d departments", created)
    return created
