from typing import List

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    status: str
    bot_running: bool
    scheduler_running: bool


class ChatSettingsResponse(BaseModel):
    chat_id: int
    language: str
    summary_length: int
    timezone: str


class ScheduleItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    schedule_type: str
    interval_hours: int
    next_run: int
    is_active: bool


class ScheduleListResponse(BaseModel):
    items: List[ScheduleItem]


class ChatStatsResponse(BaseModel):
    chat_id: int
    total_messages: int
    unique_users: int
    first_message: int | None = None
    last_message: int | None = None
