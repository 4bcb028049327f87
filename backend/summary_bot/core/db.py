import logging
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from summary_bot.core.config import settings

logger = logging.getLogger(__name__)


Base = declarative_base()

_engine: AsyncEngine | None = None
_SessionLocal: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database_url, future=True, echo=False)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _SessionLocal


async def get_session() -> AsyncIterator[AsyncSession]:
    session_maker = get_sessionmaker()
    async with session_maker() as session:
        yield session


async def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _SessionLocal = None


async def init_models(engine: AsyncEngine | None = None) -> None:
    import summary_bot.models.chat_settings  # noqa: F401
    import summary_bot.models.message  # noqa: F401
    import summary_bot.models.schedule  # noqa: F401
    import summary_bot.models.summary_log  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        # Databases created before timezone support lack the column
        await _migrate_chat_settings_table(conn)


async def _migrate_chat_settings_table(conn: AsyncConnection) -> None:
    if conn.dialect.name != "sqlite":
        return

    result = await conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name='chat_settings'")
    )
    if result.scalar() is None:
        return

    result = await conn.execute(text("PRAGMA table_info(chat_settings)"))
    columns = [row[1] for row in result.fetchall()]

    if "timezone" not in columns:
        await conn.execute(text("ALTER TABLE chat_settings ADD COLUMN timezone VARCHAR(64) DEFAULT 'UTC' NOT NULL"))
        logger.info("Added chat_settings.timezone column")
