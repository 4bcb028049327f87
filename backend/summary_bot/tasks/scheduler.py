import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from summary_bot.core.config import settings
from summary_bot.tasks.jobs import ScheduledSummaryRunner

logger = logging.getLogger(__name__)


class SchedulerDaemon:
    """Polls for due schedules on a fixed interval while running."""

    def __init__(
        self,
        runner: ScheduledSummaryRunner,
        tick_minutes: int | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._runner = runner
        self._tick_minutes = tick_minutes or settings.scheduler_tick_minutes
        self._scheduler = scheduler or AsyncIOScheduler()
        self._job_id = "scheduled_summaries"
        self._tick_in_progress = False

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self.tick,
            "interval",
            minutes=self._tick_minutes,
            id=self._job_id,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started, checking every {self._tick_minutes} minutes")

    async def stop(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    async def tick(self) -> None:
        if self._tick_in_progress:
            logger.info("Previous scheduler tick still running, skipping")
            return

        self._tick_in_progress = True
        try:
            await self._runner.run_due_schedules()
        except Exception as e:
            logger.error(f"Scheduler tick failed: {e}", exc_info=True)
        finally:
            self._tick_in_progress = False
