"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import time
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from summary_bot.core.db import init_models
from summary_bot.models.message import ChatMessage

CHAT_ID = -1001234567890


def make_message(
    message_id: int,
    timestamp: int,
    text: str = "hello",
    username: str | None = "alice",
    chat_id: int = CHAT_ID,
    sender_id: int = 1,
) -> ChatMessage:
    return ChatMessage(
        chat_id=chat_id,
        message_id=message_id,
        sender_id=sender_id,
        username=username,
        text=text,
        timestamp=timestamp,
    )


class FakeLLM:
    """Records every completion request; raises ``error`` on call number ``fail_on_call`` (or every call)."""

    def __init__(self, error: Exception | None = None, fail_on_call: int | None = None) -> None:
        self.calls: list[dict] = []
        self.error = error
        self.fail_on_call = fail_on_call

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.error is not None and (self.fail_on_call is None or len(self.calls) == self.fail_on_call):
            raise self.error
        return f"  summary {len(self.calls)} #ChatSummary  "


class FakeMessenger:
    def __init__(self, roles: dict[int, str] | None = None, send_error: Exception | None = None) -> None:
        self.messages: list[tuple[int, str]] = []
        self.files: list[tuple[int, Path, str | None]] = []
        self.typing: list[int] = []
        self.roles = roles or {}
        self.send_error = send_error

    async def send_message(self, chat_id: int, text: str, parse_mode: str | None = "md") -> None:
        if self.send_error is not None:
            raise self.send_error
        self.messages.append((chat_id, text))

    async def send_typing(self, chat_id: int) -> None:
        self.typing.append(chat_id)

    async def send_file(self, chat_id: int, path: Path, caption: str | None = None) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.files.append((chat_id, path, caption))

    async def resolve_membership(self, chat_id: int, user_id: int) -> str:
        return self.roles.get(user_id, "member")


@pytest_asyncio.fixture
async def session_factory(tmp_path_factory):
    db_dir = tmp_path_factory.mktemp("db")
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_dir / 'test.db'}")
    await init_models(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_messenger():
    return FakeMessenger()


@pytest.fixture
def now() -> int:
    return int(time.time())
