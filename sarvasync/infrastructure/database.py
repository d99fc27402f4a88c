# sarvasync/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from sarvasync.config import get_settings
from sarvasync.errors import PersistenceError

logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_settings().DATABASE_URL, echo=False, pool_pre_ping=True)
    return _engine


def set_engine(engine: AsyncEngine) -> None:
    """Swap the process engine (used by tests to point at an in-memory database)."""
    global _engine
    _engine = engine


async def init_db() -> None:
    # register every table with SQLModel.metadata
    from sarvasync.UAA import models as _uaa_models  # noqa: F401
    from sarvasync.models import analytics as _analytics  # noqa: F401
    from sarvasync.models import linked_account as _linked_account  # noqa: F401

    async with get_engine().begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    logger.info("db_initialized")


async def close_db() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("db_closed")


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session


async def commit_or_raise(session: AsyncSession) -> None:
    """Commit the unit of work; roll back and raise PersistenceError on failure."""
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("db_commit_failed", error=str(e))
        raise PersistenceError(str(e)) from e
