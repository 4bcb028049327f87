"""Bot commands: parsing, permission checks and replies."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summary_bot.core.config import settings
from summary_bot.core.db import get_sessionmaker
from summary_bot.core.exceptions import (
    DeliveryError,
    LLMError,
    QuotaExceededError,
    StorageError,
    ValidationError,
)
from summary_bot.services.prompts import LANGUAGES, get_language
from summary_bot.services.repositories.chat_settings_repository import (
    MAX_SUMMARY_LENGTH,
    MIN_SUMMARY_LENGTH,
    ChatSettingsRepository,
)
from summary_bot.services.repositories.message_repository import MessageRepository
from summary_bot.services.repositories.schedule_repository import ScheduleRepository
from summary_bot.services.schedule_clock import SCHEDULE_OPTIONS
from summary_bot.services.summary_pipeline import FallbackArtifact, NoContent
from summary_bot.services.summary_service import SummaryOutcome, SummaryService, deliver
from summary_bot.services.telegram_messenger import ADMIN_ROLES, TelegramMessenger
from summary_bot.services.time_windows import get_zone

logger = logging.getLogger(__name__)

SUGGESTED_TIMEZONES = (
    "UTC",
    "Europe/Kyiv",
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
    "Europe/Moscow",
    "Asia/Tokyo",
    "Asia/Shanghai",
    "Asia/Seoul",
    "Asia/Dubai",
    "Asia/Kolkata",
    "Australia/Sydney",
    "Pacific/Auckland",
)

HELP_TEXT = """🤖 **Chat Summary Bot**

📝 **Summaries**
• /summary - last 24 hours
• /summary 6h - last 6 hours
• /summary today - today so far
• /summary yesterday - the whole of yesterday
• /summary 3d - last 3 days

⚙️ **Settings** (admins only)
• /language [code] - summary language
• /length [number] - summary length in characters
• /timezone [zone] - timezone for times and dates
• /schedule [daily|weekly|3days|off] - automatic summaries

📊 **Information**
• /stats - chat statistics
• /clear - delete stored messages (admins only)

**Supported languages:** """ + ", ".join(LANGUAGES)

START_TEXT = """🤖 **Welcome to Chat Summary Bot!**

I store the text messages of this chat and summarize them on request.

• /summary - summary of the last 24 hours
• /help - all commands
• /language [code] - preferred summary language

Only text is stored, no media."""

NO_MESSAGES_TEXT = "📭 No messages found for the specified time period."
SUMMARY_FAILED_TEXT = "❌ Error generating summary. Please try again later."
ONLY_ADMINS_TEXT = "🚫 Only chat administrators can change bot settings."
STORAGE_FAILED_TEXT = "❌ Something went wrong while saving. Please try again later."

Handler = Callable[[int, int | None, list[str]], Awaitable[None]]


def parse_command(text: str, bot_username: str | None = None) -> tuple[str, list[str]] | None:
    """
    Split ``/command@bot arg ...`` into the command name and its arguments.

    Returns None for non-commands and for commands addressed to another bot.
    """
    if not text or not text.startswith("/"):
        return None

    head, *args = text.split()
    name, _, target = head[1:].partition("@")
    if target and bot_username and target.lower() != bot_username.lower():
        return None
    if not name:
        return None
    return name.lower(), args


def describe_length(length: int) -> str:
    if length <= 800:
        return "shorter and more concise"
    if length <= 1500:
        return "medium length"
    if length <= 2500:
        return "detailed"
    return "very detailed"


def describe_schedule(schedule_type: str, interval_hours: int) -> str:
    if schedule_type == "daily":
        return "daily at 9:00"
    if schedule_type == "weekly":
        return "weekly on Sunday at 9:00"
    return f"every {interval_hours} hours"


class CommandHandler:
    def __init__(
        self,
        messenger: TelegramMessenger,
        summary_service: SummaryService,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        bot_username: str | None = None,
        owner_ids: set[int] | None = None,
    ) -> None:
        self._messenger = messenger
        self._summary_service = summary_service
        self._session_factory = session_factory
        self.bot_username = bot_username
        self._owner_ids = owner_ids if owner_ids is not None else settings.owner_ids
        self._handlers: dict[str, tuple[Handler, bool]] = {
            "start": (self._start, False),
            "help": (self._help, False),
            "summary": (self._summary, False),
            "stats": (self._stats, False),
            "language": (self._language, True),
            "length": (self._length, True),
            "timezone": (self._timezone, True),
            "schedule": (self._schedule, True),
            "clear": (self._clear, True),
        }

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_sessionmaker()

    async def handle(self, chat_id: int, user_id: int | None, text: str) -> bool:
        """Run the command in ``text``. Returns False when it is not a command for this bot."""
        parsed = parse_command(text, self.bot_username)
        if parsed is None:
            return False

        name, args = parsed
        entry = self._handlers.get(name)
        if entry is None:
            return False

        handler, admin_only = entry
        logger.info(f"Command /{name} in chat {chat_id} from user {user_id}")

        try:
            if admin_only and not await self.is_admin(chat_id, user_id):
                await self._reply(chat_id, ONLY_ADMINS_TEXT)
                return True
            await handler(chat_id, user_id, args)
        except StorageError:
            logger.error(f"Command /{name} failed in chat {chat_id}", exc_info=True)
            await self._reply(chat_id, STORAGE_FAILED_TEXT)
        return True

    async def is_admin(self, chat_id: int, user_id: int | None) -> bool:
        if user_id is None:
            return False
        if user_id in self._owner_ids or user_id == chat_id:
            return True
        try:
            role = await self._messenger.resolve_membership(chat_id, user_id)
        except DeliveryError as exc:
            logger.warning(f"Could not resolve membership of {user_id} in chat {chat_id}: {exc}")
            return False
        return role in ADMIN_ROLES

    async def _reply(self, chat_id: int, text: str) -> None:
        try:
            await self._messenger.send_message(chat_id, text)
        except DeliveryError:
            logger.error(f"Failed to reply in chat {chat_id}", exc_info=True)

    async def _start(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        await self._reply(chat_id, START_TEXT)

    async def _help(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        await self._reply(chat_id, HELP_TEXT)

    async def _summary(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        await self._messenger.send_typing(chat_id)
        period = args[0] if args else None

        try:
            outcome = await self._summary_service.summarize_on_demand(chat_id, period)
        except QuotaExceededError as exc:
            await self._reply(
                chat_id,
                f"🚫 Daily summary limit reached!\n\nThis chat has used {min(exc.count, exc.limit)}/{exc.limit} summaries today. "
                "The limit resets at midnight UTC.\n\n💡 Longer periods such as /summary 7d cover more at once.",
            )
            return
        except (LLMError, OSError):
            logger.error(f"Summary generation failed in chat {chat_id}", exc_info=True)
            await self._reply(chat_id, SUMMARY_FAILED_TEXT)
            return

        if isinstance(outcome.result, NoContent):
            await self._reply(chat_id, NO_MESSAGES_TEXT)
            return

        try:
            await deliver(self._messenger, chat_id, outcome.result, self._summary_header(outcome))
        except DeliveryError:
            logger.error(f"Failed to deliver summary to chat {chat_id}", exc_info=True)
            if isinstance(outcome.result, FallbackArtifact):
                await self._reply(chat_id, outcome.result.notice())

    @staticmethod
    def _summary_header(outcome: SummaryOutcome) -> str:
        zone = get_zone(outcome.timezone)
        start = datetime.fromtimestamp(outcome.window.start, tz=zone).strftime("%b %d, %Y %H:%M")
        end = datetime.fromtimestamp(outcome.window.end, tz=zone).strftime("%b %d, %Y %H:%M")
        return (
            f"📝 Chat Summary ({outcome.window.description})\n"
            f"📅 {start} - {end}\n"
            f"💬 {outcome.message_count} messages"
        )

    async def _stats(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            stats = await MessageRepository(session).get_stats(chat_id)
            preferences = await ChatSettingsRepository(session).get(chat_id)

        if stats.total_messages == 0:
            await self._reply(chat_id, "📊 No messages stored yet. Start chatting to see statistics!")
            return

        zone = get_zone(preferences.timezone)
        first = datetime.fromtimestamp(stats.first_message, tz=zone)
        last = datetime.fromtimestamp(stats.last_message, tz=zone)
        days = max(1, (last.date() - first.date()).days + 1)
        await self._reply(
            chat_id,
            "📊 **Chat Statistics**\n\n"
            f"💬 Total messages: {stats.total_messages}\n"
            f"👥 Unique users: {stats.unique_users}\n"
            f"📅 First message: {first.strftime('%Y-%m-%d %H:%M')}\n"
            f"🕐 Last message: {last.strftime('%Y-%m-%d %H:%M')}\n"
            f"📈 Collection period: {days} day(s)",
        )

    async def _clear(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            deleted = await MessageRepository(session).clear_chat(chat_id)
        logger.info(f"Cleared {deleted} messages of chat {chat_id}")
        await self._reply(chat_id, f"🗑️ Cleared {deleted} messages from chat history.")

    async def _language(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            repository = ChatSettingsRepository(session)
            if not args:
                current = get_language((await repository.get(chat_id)).language)
                options = "\n".join(f"• /language {pack.code} - {pack.flag} {pack.name}" for pack in LANGUAGES.values())
                await self._reply(
                    chat_id,
                    f"🌍 **Current language:** {current.flag} {current.name}\n\nAvailable languages:\n{options}",
                )
                return

            try:
                preferences = await repository.set_language(chat_id, args[0])
            except ValidationError:
                await self._reply(
                    chat_id, f'❌ Language "{args[0]}" is not supported. Use /language to see available languages.'
                )
                return

        language = get_language(preferences.language)
        await self._reply(chat_id, f"✅ Language set to {language.name}. Future summaries will be in this language.")

    async def _length(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            repository = ChatSettingsRepository(session)
            if not args:
                current = (await repository.get(chat_id)).summary_length
                await self._reply(
                    chat_id,
                    f"📏 **Current summary length:** {current} characters\n\n"
                    "• /length 800 - short\n"
                    "• /length 1500 - medium (default)\n"
                    "• /length 2500 - long\n"
                    "• /length 4000 - very detailed",
                )
                return

            try:
                preferences = await repository.set_summary_length(chat_id, int(args[0]))
            except (ValueError, ValidationError):
                await self._reply(
                    chat_id,
                    f"❌ Please enter a number between {MIN_SUMMARY_LENGTH} and {MAX_SUMMARY_LENGTH} characters.",
                )
                return

        length = preferences.summary_length
        await self._reply(
            chat_id,
            f"✅ Summary length set to {length} characters. Future summaries will be {describe_length(length)}.",
        )

    async def _timezone(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            repository = ChatSettingsRepository(session)
            if not args:
                current = (await repository.get(chat_id)).timezone
                options = "\n".join(f"• /timezone {name}" for name in SUGGESTED_TIMEZONES)
                await self._reply(
                    chat_id,
                    f"🕐 **Current timezone:** {current}\n\nCommon timezones (any IANA name works):\n{options}",
                )
                return

            try:
                preferences = await repository.set_timezone(chat_id, args[0])
            except ValidationError:
                await self._reply(
                    chat_id, f'❌ Timezone "{args[0]}" is not supported. Use /timezone to see available timezones.'
                )
                return

        await self._reply(
            chat_id, f"✅ Timezone set to {preferences.timezone}. Summaries will use it for times and dates."
        )

    async def _schedule(self, chat_id: int, user_id: int | None, args: list[str]) -> None:
        async with self._sessions()() as session:
            schedules = ScheduleRepository(session)
            timezone = (await ChatSettingsRepository(session).get(chat_id)).timezone

            if not args:
                active = await schedules.list_active(chat_id)
                if active:
                    schedule = active[0]
                    next_run = datetime.fromtimestamp(schedule.next_run, tz=get_zone(timezone))
                    current = (
                        f"{describe_schedule(schedule.schedule_type, schedule.interval_hours)}, "
                        f"next on {next_run.strftime('%Y-%m-%d %H:%M')}"
                    )
                else:
                    current = "not scheduled"
                await self._reply(
                    chat_id,
                    f"⏰ **Current schedule:** {current}\n\n"
                    "• /schedule daily - every day at 9:00\n"
                    "• /schedule 3days - every 3 days\n"
                    "• /schedule weekly - Sundays at 9:00\n"
                    "• /schedule off - cancel scheduled summaries",
                )
                return

            option = args[0].lower()
            if option == "off":
                await schedules.delete_for_chat(chat_id)
                await self._reply(chat_id, "✅ Scheduled summaries have been cancelled.")
                return

            if option not in SCHEDULE_OPTIONS:
                await self._reply(chat_id, "❌ Invalid schedule option. Use /schedule to see available options.")
                return

            schedule_type, interval_hours = SCHEDULE_OPTIONS[option]
            await schedules.create(chat_id, schedule_type, interval_hours, timezone=timezone)

        await self._reply(
            chat_id,
            f"✅ Scheduled {describe_schedule(schedule_type, interval_hours)}. "
            "Summaries will be sent automatically to this chat.",
        )
