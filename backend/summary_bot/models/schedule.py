from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, String

from summary_bot.core.db import Base

SCHEDULE_TYPES = ("daily", "weekly", "custom")


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (Index("ix_schedules_next_run_active", "next_run", "is_active"),)

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    schedule_type = Column(String(16), nullable=False)
    interval_hours = Column(Integer, nullable=False)
    # Unix seconds of the next firing
    next_run = Column(BigInteger, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
