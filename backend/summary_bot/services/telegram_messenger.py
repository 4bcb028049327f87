"""Outbound Telegram operations for the bot account.

All Telethon errors leave this module as DeliveryError or PermanentDeliveryError.
"""

import logging
from pathlib import Path

from telethon import TelegramClient, errors, functions, types

from summary_bot.core.exceptions import DeliveryError, PermanentDeliveryError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096

ROLE_CREATOR = "creator"
ROLE_ADMINISTRATOR = "administrator"
ROLE_MEMBER = "member"
ADMIN_ROLES = (ROLE_CREATOR, ROLE_ADMINISTRATOR)

# The chat is gone or the bot can no longer write there; retrying will not help
_PERMANENT_ERRORS = (
    errors.ChannelPrivateError,
    errors.ChannelInvalidError,
    errors.ChatIdInvalidError,
    errors.ChatWriteForbiddenError,
    errors.ChatRestrictedError,
    errors.PeerIdInvalidError,
    errors.UserBannedInChannelError,
    errors.UserIsBlockedError,
    errors.UserDeactivatedError,
    errors.InputUserDeactivatedError,
)


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split ``text`` into parts of at most ``limit`` characters, preferring line breaks."""
    if len(text) <= limit:
        return [text]

    parts = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        parts.append(remaining)
    return parts


def _map_error(chat_id: int, exc: Exception) -> DeliveryError:
    if isinstance(exc, _PERMANENT_ERRORS):
        return PermanentDeliveryError(f"Chat {chat_id} is no longer reachable: {exc}")
    return DeliveryError(f"Telegram request for chat {chat_id} failed: {exc}")


class TelegramMessenger:
    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def send_message(self, chat_id: int, text: str, parse_mode: str | None = "md") -> None:
        parts = split_message(text)
        try:
            for part in parts:
                await self._client.send_message(chat_id, part, parse_mode=parse_mode, link_preview=False)
        except (errors.RPCError, ValueError) as exc:
            raise _map_error(chat_id, exc) from exc
        logger.debug(f"Sent {len(parts)} message part(s) to chat {chat_id}")

    async def send_typing(self, chat_id: int) -> None:
        try:
            peer = await self._client.get_input_entity(chat_id)
            await self._client(
                functions.messages.SetTypingRequest(peer=peer, action=types.SendMessageTypingAction())
            )
        except (errors.RPCError, ValueError) as exc:
            # The indicator is cosmetic
            logger.debug(f"Typing indicator for chat {chat_id} failed: {exc}")

    async def send_file(self, chat_id: int, path: Path, caption: str | None = None) -> None:
        try:
            await self._client.send_file(chat_id, str(path), caption=caption, force_document=True)
        except (errors.RPCError, ValueError) as exc:
            raise _map_error(chat_id, exc) from exc
        logger.info(f"Sent file {Path(path).name} to chat {chat_id}")

    async def resolve_membership(self, chat_id: int, user_id: int) -> str:
        try:
            permissions = await self._client.get_permissions(chat_id, user_id)
        except (errors.RPCError, ValueError) as exc:
            raise _map_error(chat_id, exc) from exc

        if permissions.is_creator:
            return ROLE_CREATOR
        if permissions.is_admin:
            return ROLE_ADMINISTRATOR
        return ROLE_MEMBER
