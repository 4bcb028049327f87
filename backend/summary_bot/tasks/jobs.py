"""Scheduled summary jobs."""

import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summary_bot.core.db import get_sessionmaker
from summary_bot.core.exceptions import CapacityError, PermanentDeliveryError
from summary_bot.models.schedule import Schedule
from summary_bot.services import schedule_clock
from summary_bot.services.repositories.chat_settings_repository import ChatSettingsRepository
from summary_bot.services.repositories.schedule_repository import ScheduleRepository
from summary_bot.services.summary_pipeline import NoContent
from summary_bot.services.summary_service import SummaryService, deliver
from summary_bot.services.telegram_messenger import TelegramMessenger

logger = logging.getLogger(__name__)


def schedule_label(schedule_type: str, interval_hours: int) -> str:
    if schedule_type == "daily":
        return "📅 **Scheduled Summary - Daily**"
    if schedule_type == "weekly":
        return "🗓️ **Scheduled Summary - Weekly**"
    if interval_hours % 24 == 0:
        return f"📆 **Scheduled Summary - Every {interval_hours // 24} Days**"
    return f"⏰ **Scheduled Summary - Every {interval_hours}h**"


class ScheduledSummaryRunner:
    """Runs every due schedule once and moves it to its next firing."""

    def __init__(
        self,
        summary_service: SummaryService,
        messenger: TelegramMessenger,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._summary_service = summary_service
        self._messenger = messenger
        self._session_factory = session_factory

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_sessionmaker()

    async def run_due_schedules(self, now: int | None = None) -> int:
        """Process the schedules due at ``now`` one after another. Returns how many were due."""
        if now is None:
            now = int(time.time())

        async with self._sessions()() as session:
            due = await ScheduleRepository(session).list_due(now)

        if not due:
            return 0

        logger.info(f"Processing {len(due)} due scheduled summaries")
        for schedule in due:
            try:
                await self.process_schedule(schedule, now)
            except Exception as e:
                logger.error(f"Scheduled summary {schedule.id} for chat {schedule.chat_id} aborted: {e}", exc_info=True)
        return len(due)

    async def process_schedule(self, schedule: Schedule, now: int | None = None) -> None:
        chat_id = schedule.chat_id
        period = schedule_clock.schedule_period(schedule.schedule_type, schedule.interval_hours)

        try:
            outcome = await self._summary_service.summarize(chat_id, period, allow_fallback=False, now=now)
            if isinstance(outcome.result, NoContent):
                logger.info(f"No messages for scheduled summary of chat {chat_id}")
            else:
                await deliver(
                    self._messenger,
                    chat_id,
                    outcome.result,
                    schedule_label(schedule.schedule_type, schedule.interval_hours),
                )
                logger.info(f"Sent scheduled {schedule.schedule_type} summary to chat {chat_id}")
        except CapacityError as exc:
            # next_run stays in the past so the next tick retries
            logger.warning(f"Language model unavailable for schedule {schedule.id} of chat {chat_id}: {exc}")
            return
        except PermanentDeliveryError as exc:
            logger.warning(f"Deactivating schedule {schedule.id}: {exc}")
            try:
                async with self._sessions()() as session:
                    await ScheduleRepository(session).deactivate(schedule.id)
            except Exception as e:
                logger.error(f"Failed to deactivate schedule {schedule.id}: {e}", exc_info=True)
            return
        except Exception as e:
            logger.error(f"Scheduled summary {schedule.id} for chat {chat_id} failed: {e}", exc_info=True)

        await self._reschedule(schedule)

    async def _reschedule(self, schedule: Schedule) -> None:
        try:
            async with self._sessions()() as session:
                timezone = (await ChatSettingsRepository(session).get(schedule.chat_id)).timezone
                next_run = schedule_clock.next_run(
                    schedule.schedule_type,
                    timezone,
                    interval_hours=schedule.interval_hours,
                )
                await ScheduleRepository(session).update_next_run(schedule.id, next_run)
            logger.info(f"Schedule {schedule.id} next runs at {next_run}")
        except Exception as e:
            logger.error(f"Failed to reschedule {schedule.id}: {e}", exc_info=True)
