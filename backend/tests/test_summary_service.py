import asyncio

import pytest

from conftest import CHAT_ID, FakeLLM
from summary_bot.core.config import settings
from summary_bot.core.exceptions import CapacityError, QuotaExceededError
from summary_bot.services.repositories.message_repository import MessageRepository
from summary_bot.services.repositories.summary_quota_repository import SummaryQuotaRepository
from summary_bot.services.summary_pipeline import (
    FallbackArtifact,
    NoContent,
    SummaryPipeline,
    SummaryText,
    format_time,
    message_link,
)
from summary_bot.services.summary_service import SummaryService, deliver


async def seed(session_factory, now: int, count: int = 3) -> None:
    async with session_factory() as session:
        repo = MessageRepository(session)
        for i in range(count):
            await repo.add_message(
                chat_id=CHAT_ID,
                message_id=i + 1,
                text=f"hello {i + 1}",
                timestamp=now - 600 + i,
                sender_id=1,
                username="alice",
            )


def build_service(session_factory, llm, tmp_path, daily_limit=10) -> SummaryService:
    return SummaryService(SummaryPipeline(llm, export_dir=tmp_path), session_factory, daily_limit=daily_limit)


@pytest.mark.asyncio
async def test_on_demand_summary(session_factory, fake_llm, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, fake_llm, tmp_path)

    outcome = await service.summarize_on_demand(CHAT_ID, "1h", now=now)

    assert isinstance(outcome.result, SummaryText)
    assert outcome.message_count == 3
    assert outcome.window.description == "Last 1h"
    assert len(fake_llm.calls) == 1


@pytest.mark.asyncio
async def test_eleventh_request_is_rejected_before_the_model(session_factory, fake_llm, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, fake_llm, tmp_path)

    for _ in range(10):
        await service.summarize_on_demand(CHAT_ID, None)

    with pytest.raises(QuotaExceededError) as excinfo:
        await service.summarize_on_demand(CHAT_ID, None)

    assert excinfo.value.limit == 10
    assert len(fake_llm.calls) == 10


@pytest.mark.asyncio
async def test_empty_window_still_counts_against_quota(session_factory, fake_llm, tmp_path):
    service = build_service(session_factory, fake_llm, tmp_path)

    outcome = await service.summarize_on_demand(CHAT_ID, "today")

    assert isinstance(outcome.result, NoContent)
    assert fake_llm.calls == []
    async with session_factory() as session:
        assert await SummaryQuotaRepository(session).get_count(CHAT_ID) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_cannot_pass_the_ceiling(session_factory, fake_llm, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, fake_llm, tmp_path, daily_limit=3)

    results = await asyncio.gather(
        *(service.summarize_on_demand(CHAT_ID, None) for _ in range(6)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, QuotaExceededError) for r in results) == 3
    assert len(fake_llm.calls) == 3


@pytest.mark.asyncio
async def test_on_demand_falls_back_to_export(session_factory, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, FakeLLM(error=CapacityError("429")), tmp_path)

    outcome = await service.summarize_on_demand(CHAT_ID, None)

    assert isinstance(outcome.result, FallbackArtifact)
    assert outcome.result.message_count == 3


@pytest.mark.asyncio
async def test_scheduled_path_does_not_fall_back(session_factory, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, FakeLLM(error=CapacityError("429")), tmp_path)

    with pytest.raises(CapacityError):
        await service.summarize(CHAT_ID, "24h", allow_fallback=False)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_deliver_routes_by_result(fake_messenger, tmp_path):
    export = tmp_path / "chat_export.txt"
    export.write_text("x")

    assert await deliver(fake_messenger, CHAT_ID, SummaryText("text", "direct"), "Header") is True
    assert await deliver(fake_messenger, CHAT_ID, NoContent(), "Header") is False
    artifact = FallbackArtifact(path=export, message_count=2, time_range="a to b", generated_at=None)
    assert await deliver(fake_messenger, CHAT_ID, artifact, "Header") is True

    assert fake_messenger.messages == [(CHAT_ID, "Header\n\ntext")]
    assert fake_messenger.files == [(CHAT_ID, export, artifact.notice())]


class TimecodeLLM:
    def __init__(self, text: str) -> None:
        self.text = text

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        return self.text


@pytest.mark.asyncio
async def test_timecode_links_when_enabled(session_factory, tmp_path, now, monkeypatch):
    await seed(session_factory, now)
    monkeypatch.setattr(settings, "enable_timecode_links", True)
    stamp = format_time(now - 600, "UTC")
    service = build_service(session_factory, TimecodeLLM(f"Alice said hello at {stamp}."), tmp_path)

    outcome = await service.summarize_on_demand(CHAT_ID, "1h", now=now)

    assert f"({message_link(CHAT_ID, 1)})" in outcome.result.text


@pytest.mark.asyncio
async def test_timecode_links_off_leaves_text_as_is(session_factory, tmp_path, now, monkeypatch):
    await seed(session_factory, now)
    monkeypatch.setattr(settings, "enable_timecode_links", False)
    stamp = format_time(now - 600, "UTC")
    service = build_service(session_factory, TimecodeLLM(f"Alice said hello at {stamp}."), tmp_path)

    outcome = await service.summarize_on_demand(CHAT_ID, "1h", now=now)

    assert outcome.result.text == f"Alice said hello at {stamp}."


@pytest.mark.asyncio
async def test_chat_locks_are_released_after_requests(session_factory, fake_llm, tmp_path, now):
    await seed(session_factory, now)
    service = build_service(session_factory, fake_llm, tmp_path)

    await asyncio.gather(*(service.summarize_on_demand(CHAT_ID + i, None, now=now) for i in range(3)))

    assert len(service._locks) == 0
