from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summary_bot.core.config import settings
from summary_bot.core.exceptions import StorageError
from summary_bot.models.message import ChatMessage


@dataclass(frozen=True)
class ChatStats:
    total_messages: int
    unique_users: int
    first_message: int | None
    last_message: int | None


class MessageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_message(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: str,
        timestamp: int,
        sender_id: int | None = None,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        kind: str = "text",
    ) -> bool:
        """Store one message. Returns False when ``(chat_id, message_id)`` is already stored."""
        message = ChatMessage(
            chat_id=chat_id,
            message_id=message_id,
            sender_id=sender_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            text=text,
            timestamp=timestamp,
            kind=kind,
            inserted_at=datetime.utcnow(),
        )
        self._session.add(message)
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            return False
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to store message {message_id} of chat {chat_id}: {exc}") from exc
        return True

    async def list_in_window(
        self,
        chat_id: int,
        start: int,
        end: int,
        limit: int | None = None,
    ) -> Sequence[ChatMessage]:
        """
        Messages of ``chat_id`` with ``start <= timestamp <= end``, oldest first.

        When more than ``limit`` messages fall in the window the most recent ones are kept.
        """
        limit = limit or settings.message_fetch_limit
        try:
            result = await self._session.execute(
                select(ChatMessage)
                .where(ChatMessage.chat_id == chat_id)
                .where(ChatMessage.timestamp >= start)
                .where(ChatMessage.timestamp <= end)
                .order_by(ChatMessage.timestamp.desc(), ChatMessage.message_id.desc())
                .limit(limit)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load messages of chat {chat_id}: {exc}") from exc

        return list(reversed(result.scalars().all()))

    async def get_stats(self, chat_id: int) -> ChatStats:
        try:
            result = await self._session.execute(
                select(
                    func.count(ChatMessage.id),
                    func.count(func.distinct(ChatMessage.sender_id)),
                    func.min(ChatMessage.timestamp),
                    func.max(ChatMessage.timestamp),
                ).where(ChatMessage.chat_id == chat_id)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load stats of chat {chat_id}: {exc}") from exc

        total, users, first, last = result.one()
        return ChatStats(
            total_messages=total or 0,
            unique_users=users or 0,
            first_message=first,
            last_message=last,
        )

    async def clear_chat(self, chat_id: int) -> int:
        try:
            result = await self._session.execute(delete(ChatMessage).where(ChatMessage.chat_id == chat_id))
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageError(f"Failed to clear messages of chat {chat_id}: {exc}") from exc
        return result.rowcount or 0
