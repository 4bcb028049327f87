from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from summary_bot.core.db import get_session
from summary_bot.schemas.chat import (
    ChatSettingsResponse,
    ChatStatsResponse,
    HealthResponse,
    ScheduleItem,
    ScheduleListResponse,
)
from summary_bot.services.repositories.chat_settings_repository import ChatSettingsRepository
from summary_bot.services.repositories.message_repository import MessageRepository
from summary_bot.services.repositories.schedule_repository import ScheduleRepository

router = APIRouter(tags=["chats"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    bot = getattr(request.app.state, "bot", None)
    daemon = getattr(request.app.state, "daemon", None)
    return HealthResponse(
        status="ok",
        bot_running=bool(bot and bot.running),
        scheduler_running=bool(daemon and daemon.running),
    )


@router.get("/chats/{chat_id}/settings", response_model=ChatSettingsResponse)
async def get_chat_settings(
    chat_id: int,
    session: AsyncSession = Depends(get_session),
) -> ChatSettingsResponse:
    preferences = await ChatSettingsRepository(session).get(chat_id)
    return ChatSettingsResponse(
        chat_id=preferences.chat_id,
        language=preferences.language,
        summary_length=preferences.summary_length,
        timezone=preferences.timezone,
    )


@router.get("/chats/{chat_id}/schedule", response_model=ScheduleItem | None)
async def get_chat_schedule(
    chat_id: int,
    session: AsyncSession = Depends(get_session),
) -> ScheduleItem | None:
    schedules = await ScheduleRepository(session).list_active(chat_id)
    if not schedules:
        return None
    return ScheduleItem.model_validate(schedules[0])


@router.get("/schedules", response_model=ScheduleListResponse)
async def list_schedules(session: AsyncSession = Depends(get_session)) -> ScheduleListResponse:
    schedules = await ScheduleRepository(session).list_active()
    return ScheduleListResponse(items=[ScheduleItem.model_validate(schedule) for schedule in schedules])


@router.get("/chats/{chat_id}/stats", response_model=ChatStatsResponse)
async def get_chat_stats(
    chat_id: int,
    session: AsyncSession = Depends(get_session),
) -> ChatStatsResponse:
    stats = await MessageRepository(session).get_stats(chat_id)
    return ChatStatsResponse(
        chat_id=chat_id,
        total_messages=stats.total_messages,
        unique_users=stats.unique_users,
        first_message=stats.first_message,
        last_message=stats.last_message,
    )
