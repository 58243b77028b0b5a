"""Database connection and session management.

One settlement instruction runs inside one ``atomic()`` scope: it commits
when the instruction returns and rolls back on any exception, together with
the messaging endpoint's own state, so an instruction is applied completely
or not at all.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rfqbridge.config import get_settings
from rfqbridge.ledger.models import Base

if TYPE_CHECKING:
    from rfqbridge.messaging.endpoint import MessagingEndpoint

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine = None
_session_factory = None


def get_engine():
    """Get or create the ledger database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url
        if db_url.startswith("sqlite:///") and "aiosqlite" not in db_url:
            db_url = db_url.replace("sqlite:///", "sqlite+aiosqlite:///")

        _engine = create_async_engine(
            db_url,
            echo=settings.debug and not settings.is_production,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def atomic(
    session: AsyncSession,
    instruction: Optional[str] = None,
    endpoint: Optional["MessagingEndpoint"] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Commit on success; on error roll back the session and restore ``endpoint``.

    Args:
        session: Session the instruction's repository writes through
        instruction: Name used in the rollback log line
        endpoint: Messaging endpoint the instruction may invoke
    """
    checkpoint = endpoint.checkpoint() if endpoint is not None else None
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        if endpoint is not None:
            endpoint.restore(checkpoint)
        if instruction:
            logger.warning(f"{instruction} rolled back: {e}")
        raise


@asynccontextmanager
async def get_db(
    instruction: Optional[str] = None, endpoint: Optional["MessagingEndpoint"] = None
) -> AsyncGenerator[AsyncSession, None]:
    """Session scoped to one instruction: commit on success, roll back on error."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        async with atomic(session, instruction, endpoint):
            yield session


async def init_db() -> None:
    """Create all ledger tables."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
