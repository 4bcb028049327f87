import time
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summary_bot.core.exceptions import StorageError, ValidationError
from summary_bot.models.schedule import SCHEDULE_TYPES, Schedule
from summary_bot.services import schedule_clock


class ScheduleRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        chat_id: int,
        schedule_type: str,
        interval_hours: int,
        timezone: str = "UTC",
        now: int | None = None,
    ) -> Schedule:
        """Replace any schedule of ``chat_id`` with a new active one."""
        if schedule_type not in SCHEDULE_TYPES:
            raise ValidationError(f"Unknown schedule type: {schedule_type}")
        if interval_hours <= 0:
            raise ValidationError("Schedule interval must be positive")

        next_run = schedule_clock.next_run(schedule_type, timezone, now=now, interval_hours=interval_hours)
        schedule = Schedule(
            chat_id=chat_id,
            schedule_type=schedule_type,
            interval_hours=interval_hours,
            next_run=next_run,
            is_active=True,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )

        try:
            # Delete and insert commit together: a chat never has two active schedules
            await self._session.execute(delete(Schedule).where(Schedule.chat_id == chat_id))
            self._session.add(schedule)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to create schedule for chat {chat_id}: {exc}") from exc

        return schedule

    async def list_active(self, chat_id: int | None = None) -> Sequence[Schedule]:
        query = select(Schedule).where(Schedule.is_active.is_(True)).order_by(Schedule.next_run.asc())
        if chat_id is not None:
            query = query.where(Schedule.chat_id == chat_id)
        return await self._fetch(query)

    async def list_due(self, now: int | None = None) -> Sequence[Schedule]:
        if now is None:
            now = int(time.time())
        query = (
            select(Schedule)
            .where(Schedule.is_active.is_(True))
            .where(Schedule.next_run <= now)
            .order_by(Schedule.next_run.asc())
        )
        return await self._fetch(query)

    async def update_next_run(self, schedule_id: int, next_run: int) -> None:
        await self._update(schedule_id, next_run=next_run)

    async def deactivate(self, schedule_id: int) -> None:
        await self._update(schedule_id, is_active=False)

    async def delete_for_chat(self, chat_id: int) -> int:
        try:
            result = await self._session.execute(delete(Schedule).where(Schedule.chat_id == chat_id))
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to delete schedules of chat {chat_id}: {exc}") from exc
        return result.rowcount or 0

    async def _fetch(self, query) -> Sequence[Schedule]:
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load schedules: {exc}") from exc
        return result.scalars().all()

    async def _update(self, schedule_id: int, **values) -> None:
        try:
            await self._session.execute(
                update(Schedule)
                .where(Schedule.id == schedule_id)
                .values(updated_at=datetime.utcnow(), **values)
            )
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to update schedule {schedule_id}: {exc}") from exc
