import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summary_bot.core.config import settings
from summary_bot.core.db import get_sessionmaker
from summary_bot.services.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)


class MessageIngestor:
    """Stores the chat's text messages for later summarization."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_age_seconds: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._max_age_seconds = max_age_seconds or settings.max_message_age_seconds

    def should_store(self, text: str | None, timestamp: int, kind: str = "text", now: int | None = None) -> bool:
        if kind != "text" or not text or not text.strip():
            return False
        if text.startswith("/"):
            return False
        if now is None:
            now = int(time.time())
        return now - timestamp <= self._max_age_seconds

    async def ingest(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: str | None,
        timestamp: int,
        sender_id: int | None = None,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        kind: str = "text",
        now: int | None = None,
    ) -> bool:
        """Store one incoming message. Returns True only when a new row was written."""
        if not self.should_store(text, timestamp, kind, now):
            return False

        session_factory = self._session_factory or get_sessionmaker()
        async with session_factory() as session:
            stored = await MessageRepository(session).add_message(
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                timestamp=timestamp,
                sender_id=sender_id,
                username=username,
                first_name=first_name,
                last_name=last_name,
                kind=kind,
            )

        if stored:
            logger.debug(f"Stored message {message_id} of chat {chat_id}")
        return stored
