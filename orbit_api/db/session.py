# orbit_api/db/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BaseAPIException, DatabaseError
from orbit_api.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

# Global engine instance
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def _is_postgres() -> bool:
    return settings.database_dialect == "postgresql"


def create_database_engine() -> AsyncEngine:
    """Create and configure the async database engine."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return engine

    if settings.is_testing or not _is_postgres():
        # Use NullPool for tests to ensure clean state
        engine = create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.debug,
        )
    else:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.debug,
            connect_args={
                "command_timeout": 60,
                "server_settings": {
                    "application_name": "orbit_api",
                    "statement_timeout": str(settings.database_statement_timeout * 1000),
                },
            },
        )

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if settings.database_dialect == "sqlite":
        # The driver's implicit BEGIN breaks SAVEPOINT; emit BEGIN ourselves.
        @event.listens_for(engine.sync_engine, "connect")
        def configure_sqlite_connection(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def begin_sqlite_transaction(conn):
            conn.exec_driver_sql("BEGIN")

    logger.info(
        "database.engine.created",
        dialect=settings.database_dialect,
        pool_size=settings.database_pool_size,
        testing=settings.is_testing,
    )

    return engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if AsyncSessionLocal is None:
        create_database_engine()
    return AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection."""
    session = get_sessionmaker()()

    try:
        yield session

    except SQLAlchemyError as e:
        logger.error("database.session_error", error=str(e))
        await session.rollback()
        raise

    except BaseAPIException:
        await session.rollback()
        raise

    finally:
        await session.close()


@asynccontextmanager
async def transaction_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database transactions."""
    session = get_sessionmaker()()

    try:
        yield session
        await session.commit()

    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("database.transaction_error", error=str(e))
        raise DatabaseError(
            message="Database transaction failed",
            details={"error": str(e)},
        ) from e

    except Exception:
        await session.rollback()
        raise

    finally:
        await session.close()


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """Get raw database connection."""
    create_database_engine()

    async with engine.connect() as connection:
        yield connection


async def health_check() -> dict:
    """Check database health."""
    try:
        start_time = datetime.utcnow()
        async with get_connection() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.fetchone()

            version = "unknown"
            if _is_postgres():
                version_row = (await conn.execute(text("SELECT version()"))).fetchone()
                if version_row:
                    version = version_row[0].split()[1]

        response_time = (datetime.utcnow() - start_time).total_seconds() * 1000
        return {
            "status": "healthy" if row and row[0] == 1 else "unhealthy",
            "database": settings.database_dialect,
            "version": version,
            "response_time_ms": f"{response_time:.2f}",
        }

    except Exception as e:
        logger.error("database.health_check_failed", error=str(e))
        return {
            "status": "unhealthy",
            "error": str(e),
        }


# Initialize engine on module import
create_database_engine()
