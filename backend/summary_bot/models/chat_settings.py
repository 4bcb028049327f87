from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from summary_bot.core.db import Base

DEFAULT_LANGUAGE = "en"
DEFAULT_TIMEZONE = "UTC"


class ChatSettings(Base):
    __tablename__ = "chat_settings"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(BigInteger, nullable=False, unique=True, index=True)
    language = Column(String(8), default=DEFAULT_LANGUAGE, nullable=False)
    summary_length = Column(Integer, nullable=False)
    timezone = Column(String(64), default=DEFAULT_TIMEZONE, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
