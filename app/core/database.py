"""Async engine, session factory and the transaction boundary."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from opentelemetry import trace
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import packages.db.models  # noqa: F401  registers every table on SQLModel.metadata

from .config import Settings
from .errors import ConflictError, PersistenceError, TicketingError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# PostgreSQL SQLSTATEs that mean "someone else holds the row / retry".
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure a PostgreSQL DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    return dsn


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(to_asyncpg_dsn(settings.database_url), echo=settings.database_echo, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def ensure_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


def translate_db_error(exc: SQLAlchemyError) -> TicketingError:
    """Map a driver failure onto the engine's error taxonomy."""

    if isinstance(exc, IntegrityError):
        return ConflictError("Concurrent write conflict, retry the operation", details={"reason": "integrity"})
    if isinstance(exc, OperationalError):
        orig = getattr(exc, "orig", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES or "database is locked" in str(exc):
            return ConflictError("Could not obtain a write lock, retry the operation", details={"reason": "lock"})
    return PersistenceError("Persistence layer failure", details={"reason": type(exc).__name__})


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Run the block as one unit of work; any error rolls everything back."""

    with tracer.start_as_current_span("db.transaction") as span:
        try:
            async with session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            translated = translate_db_error(exc)
            span.set_attribute("ticketing.error", type(translated).__name__)
            logger.warning("Transaction rolled back: %s (%s)", translated.message, exc.__class__.__name__)
            raise translated from exc


@asynccontextmanager
async def read_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Session for read-side queries; driver failures become ``PersistenceError``."""

    try:
        async with session_factory() as session:
            yield session
    except SQLAlchemyError as exc:
        raise PersistenceError("Persistence layer failure", details={"reason": type(exc).__name__}) from exc
