from datetime import datetime

from sqlalchemy import BigInteger, Column, Date, DateTime, Integer, UniqueConstraint

from summary_bot.core.db import Base


class SummaryLog(Base):
    """Per-chat, per-day count of on-demand summaries."""

    __tablename__ = "summary_logs"
    __table_args__ = (UniqueConstraint("chat_id", "summary_date", name="uq_summary_log_chat_date"),)

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    summary_date = Column(Date, nullable=False)
    summary_count = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
