from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summary_bot.core.exceptions import StorageError
from summary_bot.models.summary_log import SummaryLog


def utc_today() -> date:
    return datetime.now(tz=timezone.utc).date()


class SummaryQuotaRepository:
    """Daily on-demand summary counter per chat, keyed by UTC date."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def increment_and_get(self, chat_id: int, day: date | None = None) -> int:
        """Atomically add one to today's counter and return the new value."""
        day = day or utc_today()
        now = datetime.utcnow()

        statement = sqlite_insert(SummaryLog).values(
            chat_id=chat_id,
            summary_date=day,
            summary_count=1,
            created_at=now,
            updated_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[SummaryLog.chat_id, SummaryLog.summary_date],
            set_={"summary_count": SummaryLog.summary_count + 1, "updated_at": now},
        ).returning(SummaryLog.summary_count)

        try:
            result = await self._session.execute(statement)
            count = result.scalar_one()
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to update summary quota of chat {chat_id}: {exc}") from exc
        return count

    async def get_count(self, chat_id: int, day: date | None = None) -> int:
        day = day or utc_today()
        try:
            result = await self._session.execute(
                select(SummaryLog.summary_count)
                .where(SummaryLog.chat_id == chat_id)
                .where(SummaryLog.summary_date == day)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load summary quota of chat {chat_id}: {exc}") from exc
        return result.scalar_one_or_none() or 0
