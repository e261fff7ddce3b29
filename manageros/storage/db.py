# ==== DATABASE CONNECTION AND SESSION MANAGEMENT ==== #

"""
Database connection and session management for ManagerOS.

This module provides async SQLAlchemy connectivity for PostgreSQL (asyncpg)
and SQLite (aiosqlite), the declarative base for models, and the session
lifecycle helpers used by routes, flows and the CLI.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from sqlalchemy.orm import declarative_base

from manageros.settings import settings
from manageros.observability.metrics import db_sessions_active


# ==== SQLALCHEMY CONFIGURATION ==== #

# SQLAlchemy base for model definitions
Base = declarative_base()

# Global engine and session factory instances
engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


# ==== DATABASE INITIALIZATION ==== #

def init_database(database_url: str | None = None) -> None:
    """
    Initialize database engine and session factory.

    Normalizes PostgreSQL URLs to the asyncpg driver and enables SAVEPOINT
    support for SQLite so per-rule evaluation can roll back independently.

    Args:
        database_url: Override for settings.DATABASE_URL
    """
    global engine, SessionLocal

    if engine is not None:
        return

    # --► DATABASE URL VALIDATION AND DRIVER SETUP
    db_url = database_url or settings.DATABASE_URL
    if db_url.startswith("postgresql") and not db_url.startswith("postgresql+asyncpg://"):
        db_url = db_url.replace("postgresql+psycopg://", "postgresql+asyncpg://")
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")

    # Fix SSL parameter for asyncpg compatibility
    if "sslmode=require" in db_url:
        db_url = db_url.replace("sslmode=require", "ssl=require")

    engine = create_async_engine(db_url, echo=settings.DB_ECHO)

    if db_url.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)

    # Create session factory
    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Let SQLAlchemy own transaction boundaries on SQLite connections.

    The sqlite3 driver opens transactions lazily, which breaks SAVEPOINT.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


async def create_schema() -> None:
    """Create all tables for local development and tests."""
    if engine is None:
        init_database()

    # Import models so they register on Base.metadata
    from manageros.storage import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session with automatic cleanup.

    Commits when the block exits normally and rolls back on error.

    Yields:
        AsyncSession: Database session
    """
    if SessionLocal is None:
        init_database()

    async with SessionLocal() as session:
        try:
            db_sessions_active.inc()
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            db_sessions_active.dec()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Yields:
        AsyncSession: Database session for request handling
    """
    async with get_session() as session:
        yield session


async def close_database() -> None:
    """Close database connections on shutdown."""
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
        engine = None
        SessionLocal = None
