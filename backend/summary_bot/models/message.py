from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from summary_bot.core.db import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("chat_id", "message_id", name="uq_chat_message"),
        Index("ix_chat_messages_chat_timestamp", "chat_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=False, index=True)
    sender_id = Column(BigInteger, nullable=True)
    username = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    text = Column(Text, nullable=False)
    # Unix seconds, as delivered by Telegram
    timestamp = Column(BigInteger, nullable=False)
    kind = Column(String(32), default="text", nullable=False)
    inserted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or "Unknown"
