import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from summary_bot.core.db import init_models


@pytest.mark.asyncio
async def test_init_models_adds_missing_timezone_column(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'old.db'}")
    async with engine.begin() as conn:
        await conn.execute(
            text(
                "CREATE TABLE chat_settings ("
                "id INTEGER PRIMARY KEY, chat_id BIGINT NOT NULL UNIQUE, language VARCHAR(8) NOT NULL, "
                "summary_length INTEGER NOT NULL, created_at DATETIME NOT NULL, updated_at DATETIME NOT NULL)"
            )
        )
        await conn.execute(
            text(
                "INSERT INTO chat_settings (chat_id, language, summary_length, created_at, updated_at) "
                "VALUES (1, 'de', 900, '2024-01-01', '2024-01-01')"
            )
        )

    await init_models(engine)
    # Running twice is harmless
    await init_models(engine)

    async with engine.connect() as conn:
        columns = [row[1] for row in (await conn.execute(text("PRAGMA table_info(chat_settings)"))).fetchall()]
        row = (await conn.execute(text("SELECT language, timezone FROM chat_settings"))).one()
        tables = {
            row[0] for row in (await conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))).fetchall()
        }
    await engine.dispose()

    assert "timezone" in columns
    assert tuple(row) == ("de", "UTC")
    assert {"chat_messages", "chat_settings", "schedules", "summary_logs"} <= tables
