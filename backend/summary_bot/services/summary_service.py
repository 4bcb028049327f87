"""Summary requests: quota, window, storage fetch, pipeline, delivery."""

import asyncio
import logging
import weakref
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summary_bot.core.config import settings
from summary_bot.core.db import get_sessionmaker
from summary_bot.core.exceptions import QuotaExceededError
from summary_bot.services.repositories.chat_settings_repository import ChatSettingsRepository
from summary_bot.services.repositories.message_repository import MessageRepository
from summary_bot.services.repositories.summary_quota_repository import SummaryQuotaRepository
from summary_bot.services.summary_pipeline import (
    FallbackArtifact,
    SummaryOptions,
    SummaryPipeline,
    SummaryResult,
    SummaryText,
    link_timecodes,
)
from summary_bot.services.telegram_messenger import TelegramMessenger
from summary_bot.services.time_windows import TimeWindow, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryOutcome:
    chat_id: int
    window: TimeWindow
    timezone: str
    message_count: int
    result: SummaryResult


class SummaryService:
    def __init__(
        self,
        pipeline: SummaryPipeline,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        daily_limit: int | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._session_factory = session_factory
        self._daily_limit = daily_limit or settings.daily_summary_limit
        # Entries vanish once no request holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _get_lock(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_sessionmaker()

    async def summarize_on_demand(self, chat_id: int, period: str | None, now: int | None = None) -> SummaryOutcome:
        """
        Count the request against the daily quota, then summarize ``period`` of ``chat_id``.

        Requests for the same chat run one at a time.

        Raises:
            QuotaExceededError: The chat already used its daily summaries; no model call was made
        """
        async with self._get_lock(chat_id):
            async with self._sessions()() as session:
                count = await SummaryQuotaRepository(session).increment_and_get(chat_id)
            if count > self._daily_limit:
                logger.info(f"Chat {chat_id} exceeded the daily summary limit ({count}/{self._daily_limit})")
                raise QuotaExceededError(count, self._daily_limit)

            return await self.summarize(chat_id, period, allow_fallback=True, now=now)

    async def summarize(
        self,
        chat_id: int,
        period: str | None,
        allow_fallback: bool,
        now: int | None = None,
    ) -> SummaryOutcome:
        async with self._sessions()() as session:
            preferences = await ChatSettingsRepository(session).get(chat_id)
            window = resolve(period, now=now, tz=preferences.timezone)
            messages = await MessageRepository(session).list_in_window(chat_id, window.start, window.end)

        logger.info(f"Summarizing {len(messages)} messages of chat {chat_id} ({window.description})")

        options = SummaryOptions(
            max_length=preferences.summary_length,
            language=preferences.language,
            timezone=preferences.timezone,
        )
        result = await self._pipeline.generate(messages, options, allow_fallback=allow_fallback)

        if isinstance(result, SummaryText) and settings.enable_timecode_links:
            result = SummaryText(
                text=link_timecodes(result.text, messages, chat_id, preferences.timezone),
                mode=result.mode,
                chunk_count=result.chunk_count,
            )

        return SummaryOutcome(
            chat_id=chat_id,
            window=window,
            timezone=preferences.timezone,
            message_count=len(messages),
            result=result,
        )


async def deliver(messenger: TelegramMessenger, chat_id: int, result: SummaryResult, header: str) -> bool:
    """Send a summary or a fallback export. Returns False when there was nothing to send."""
    if isinstance(result, SummaryText):
        await messenger.send_message(chat_id, f"{header}\n\n{result.text}")
        return True
    if isinstance(result, FallbackArtifact):
        await messenger.send_file(chat_id, result.path, caption=result.notice())
        return True
    return False
