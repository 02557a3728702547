from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from scenetracker.config import settings

log = logging.getLogger(__name__)

# SQL echo follows the app log level.
engine = create_async_engine(settings.database_url, echo=settings.log_level.upper() == "DEBUG")
session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create the store_documents table on first start."""
    from scenetracker.db.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("Store documents kept at %s", engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    await engine.dispose()


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with session_factory() as session:
        yield session
