"""
Engine and session lifecycle for the live document store.

One engine per process, created lazily from settings and disposed on
shutdown. Tests build their own engine and pass it to
``create_session_maker`` instead of touching the process-wide one.
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rcm_core.core.config import RCMSettings, get_settings
from rcm_core.db.models import Base
from rcm_core.utils.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _redacted(url: str) -> str:
    # credentials sit before the last "@"
    return url.rsplit("@", 1)[-1]


def get_engine(settings: Optional[RCMSettings] = None) -> AsyncEngine:
    """Return the process-wide engine, building it on first use."""
    global _engine

    if _engine is not None:
        return _engine

    settings = settings or get_settings()
    _engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )
    logger.info(f"Document store engine bound to {_redacted(settings.DATABASE_URL)}")
    return _engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions that never autoflush and keep rows readable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_maker(settings: Optional[RCMSettings] = None) -> async_sessionmaker[AsyncSession]:
    global _session_maker

    if _session_maker is None:
        _session_maker = create_session_maker(get_engine(settings))
    return _session_maker


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """Create the documents table if it is missing."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Document table ready")


async def close_db_connection() -> None:
    """Dispose the pool and forget the engine so the next call rebuilds it."""
    global _engine, _session_maker

    if _engine is None:
        return

    engine, _engine, _session_maker = _engine, None, None
    await engine.dispose()
    logger.info("Document store engine disposed")


async def check_db_connection() -> bool:
    """Round-trip a trivial query; False when the database is unreachable."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error(f"Document store health check failed: {exc}")
        return False
    return True
