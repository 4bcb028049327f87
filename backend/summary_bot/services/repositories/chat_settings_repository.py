from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summary_bot.core.config import settings
from summary_bot.core.exceptions import StorageError, ValidationError
from summary_bot.models.chat_settings import DEFAULT_LANGUAGE, DEFAULT_TIMEZONE, ChatSettings
from summary_bot.services.prompts import LANGUAGES
from summary_bot.services.time_windows import is_valid_zone

MIN_SUMMARY_LENGTH = 200
MAX_SUMMARY_LENGTH = 5000


@dataclass(frozen=True)
class ChatPreferences:
    chat_id: int
    language: str
    summary_length: int
    timezone: str


class ChatSettingsRepository:
    """Per-chat preferences; a chat without a row gets the defaults."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, chat_id: int) -> ChatPreferences:
        try:
            result = await self._session.execute(select(ChatSettings).where(ChatSettings.chat_id == chat_id))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load settings of chat {chat_id}: {exc}") from exc

        row = result.scalar_one_or_none()
        if row is None:
            return ChatPreferences(
                chat_id=chat_id,
                language=DEFAULT_LANGUAGE,
                summary_length=settings.default_summary_length,
                timezone=DEFAULT_TIMEZONE,
            )
        return ChatPreferences(
            chat_id=chat_id,
            language=row.language,
            summary_length=row.summary_length,
            timezone=row.timezone,
        )

    async def set_language(self, chat_id: int, language: str) -> ChatPreferences:
        code = (language or "").strip().lower()
        if code not in LANGUAGES:
            raise ValidationError(f"Unsupported language: {language}")
        await self._upsert(chat_id, "language", code)
        return await self.get(chat_id)

    async def set_summary_length(self, chat_id: int, summary_length: int) -> ChatPreferences:
        if not MIN_SUMMARY_LENGTH <= summary_length <= MAX_SUMMARY_LENGTH:
            raise ValidationError(
                f"Summary length must be between {MIN_SUMMARY_LENGTH} and {MAX_SUMMARY_LENGTH} characters"
            )
        await self._upsert(chat_id, "summary_length", summary_length)
        return await self.get(chat_id)

    async def set_timezone(self, chat_id: int, timezone: str) -> ChatPreferences:
        name = (timezone or "").strip()
        if not is_valid_zone(name):
            raise ValidationError(f"Unknown timezone: {timezone}")
        await self._upsert(chat_id, "timezone", name)
        return await self.get(chat_id)

    async def _upsert(self, chat_id: int, column: str, value: Any) -> None:
        now = datetime.utcnow()
        values = {
            "chat_id": chat_id,
            "language": DEFAULT_LANGUAGE,
            "summary_length": settings.default_summary_length,
            "timezone": DEFAULT_TIMEZONE,
            "created_at": now,
            "updated_at": now,
        }
        values[column] = value

        # Only the targeted column is touched when the row already exists
        statement = sqlite_insert(ChatSettings).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=[ChatSettings.chat_id],
            set_={column: value, "updated_at": now},
        )
        try:
            await self._session.execute(statement)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to update {column} of chat {chat_id}: {exc}") from exc
