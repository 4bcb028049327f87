import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from telethon import TelegramClient, events
from telethon.tl.types import MessageMediaWebPage

from summary_bot.core.config import settings
from summary_bot.services.command_handler import CommandHandler
from summary_bot.services.message_ingestor import MessageIngestor
from summary_bot.services.telegram_messenger import TelegramMessenger

logger = logging.getLogger(__name__)


def build_client() -> TelegramClient:
    data_dir = Path(settings.telegram_data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    return TelegramClient(
        session=str(data_dir / settings.telegram_session_name),
        api_id=settings.telegram_api_id,
        api_hash=settings.telegram_api_hash,
        connection_retries=5,
        retry_delay=1,
        timeout=30,
    )


def message_kind(message) -> str:
    # Link previews arrive as media on plain text messages
    if message.media is None or isinstance(message.media, MessageMediaWebPage):
        return "text"
    return "media"


class TelegramBot:
    """Owns the bot-mode Telethon client and routes incoming messages."""

    def __init__(
        self,
        client: TelegramClient,
        ingestor: MessageIngestor,
        command_handler_factory: Callable[[TelegramMessenger], CommandHandler],
    ) -> None:
        self._client = client
        self._ingestor = ingestor
        self.messenger = TelegramMessenger(client)
        self._commands = command_handler_factory(self.messenger)
        self._lock = asyncio.Lock()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        async with self._lock:
            if self._started:
                return

            if not settings.telegram_bot_token:
                raise RuntimeError("TELEGRAM_BOT_TOKEN is not configured")

            self._client.add_event_handler(self.handle_new_message, events.NewMessage(incoming=True))
            await self._client.start(bot_token=settings.telegram_bot_token)

            me = await self._client.get_me()
            self._commands.bot_username = me.username
            self._started = True
            logger.info(f"Telegram bot started as @{me.username}")

    async def stop(self) -> None:
        async with self._lock:
            if not self._started:
                return
            self._client.remove_event_handler(self.handle_new_message)
            if self._client.is_connected():
                await self._client.disconnect()
            self._started = False
            logger.info("Telegram bot stopped")

    async def handle_new_message(self, event: events.NewMessage.Event) -> None:
        message = event.message
        text = message.message or ""
        chat_id = event.chat_id

        try:
            if text.startswith("/"):
                await self._commands.handle(chat_id, message.sender_id, text)
                return

            sender = await event.get_sender()
            await self._ingestor.ingest(
                chat_id=chat_id,
                message_id=message.id,
                text=text,
                timestamp=int(message.date.timestamp()),
                sender_id=message.sender_id,
                username=getattr(sender, "username", None),
                first_name=getattr(sender, "first_name", None),
                last_name=getattr(sender, "last_name", None),
                kind=message_kind(message),
            )
        except Exception as e:
            logger.error(f"Failed to handle message {message.id} in chat {chat_id}: {e}", exc_info=True)
