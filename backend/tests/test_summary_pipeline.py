from datetime import datetime, timezone

import pytest

from conftest import CHAT_ID, FakeLLM, make_message
from summary_bot.core.exceptions import CapacityError, LLMError
from summary_bot.services.summary_pipeline import (
    CHUNK_SEPARATOR,
    FallbackArtifact,
    NoContent,
    SummaryOptions,
    SummaryPipeline,
    SummaryText,
    chunk_messages,
    estimate_tokens,
    format_transcript,
    link_timecodes,
    message_link,
)

BASE = int(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc).timestamp())


def build_messages(count: int, text: str = "message") -> list:
    return [make_message(i + 1, BASE + i * 60, f"{text} {i + 1}") for i in range(count)]


@pytest.fixture
def pipeline(tmp_path, fake_llm):
    return SummaryPipeline(fake_llm, export_dir=tmp_path, max_messages_per_chunk=100, max_tokens_per_request=3000)


def test_format_transcript_filters_and_renders_local_time():
    messages = [
        make_message(1, BASE, "hello"),
        make_message(2, BASE + 60, "   "),
        make_message(3, BASE + 120, "old digest #ChatSummary"),
        make_message(4, BASE + 180, "bye", username=None),
    ]

    transcript = format_transcript(messages, "Europe/Kyiv")

    assert transcript == "[14:00] @alice: hello\n[14:03] @Unknown: bye"


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize("count, size", [(0, 100), (1, 100), (100, 100), (101, 100), (250, 100), (7, 3)])
def test_chunk_partition(count, size):
    messages = build_messages(count)
    chunks = chunk_messages(messages, size)

    assert [m for chunk in chunks for m in chunk] == messages
    assert all(0 < len(chunk) <= size for chunk in chunks)
    assert len(chunks) == -(-count // size)


@pytest.mark.asyncio
async def test_empty_input_returns_no_content(pipeline, fake_llm):
    assert isinstance(await pipeline.generate([], SummaryOptions()), NoContent)
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_filtered_input_returns_no_content(pipeline, fake_llm):
    messages = [make_message(1, BASE, " "), make_message(2, BASE, "done #ChatSummary")]

    assert isinstance(await pipeline.generate(messages, SummaryOptions()), NoContent)
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_direct_mode_makes_one_call(pipeline, fake_llm):
    messages = build_messages(3)

    result = await pipeline.generate(messages, SummaryOptions(max_length=1500, language="es"))

    assert result == SummaryText(text="summary 1 #ChatSummary", mode="direct")
    assert len(fake_llm.calls) == 1
    call = fake_llm.calls[0]
    assert call["max_tokens"] == 2250
    assert call["temperature"] == 0.3
    assert "Spanish" in call["system_prompt"]
    assert "[12:00] @alice: message 1" in call["user_prompt"]
    assert "#ChatSummary" in call["user_prompt"]


@pytest.mark.asyncio
async def test_direct_mode_caps_the_token_budget(pipeline, fake_llm):
    await pipeline.generate(build_messages(2), SummaryOptions(max_length=5000))

    assert fake_llm.calls[0]["max_tokens"] == 3000


@pytest.mark.asyncio
async def test_messages_are_summarized_in_time_order(pipeline, fake_llm):
    messages = list(reversed(build_messages(3)))

    await pipeline.generate(messages, SummaryOptions())

    prompt = fake_llm.calls[0]["user_prompt"]
    assert prompt.index("message 1") < prompt.index("message 2") < prompt.index("message 3")


@pytest.mark.asyncio
async def test_250_messages_use_three_chunks_and_a_synthesis(pipeline, fake_llm):
    result = await pipeline.generate(build_messages(250), SummaryOptions(max_length=1000))

    assert isinstance(result, SummaryText)
    assert result.mode == "chunked"
    assert result.chunk_count == 3
    assert len(fake_llm.calls) == 4

    chunk_calls, synthesis = fake_llm.calls[:3], fake_llm.calls[3]
    for index, call in enumerate(chunk_calls, 1):
        assert f"chunk {index} of 3" in call["user_prompt"]
        assert call["max_tokens"] == 2000
    assert "message 101" in chunk_calls[1]["user_prompt"]
    assert "message 100" not in chunk_calls[1]["user_prompt"]

    expected = CHUNK_SEPARATOR.join(f"summary {i} #ChatSummary" for i in (1, 2, 3))
    assert expected in synthesis["user_prompt"]
    assert synthesis["max_tokens"] == 1500
    assert result.text == "summary 4 #ChatSummary"


@pytest.mark.asyncio
async def test_long_transcript_with_few_messages_is_chunked(pipeline, fake_llm):
    messages = build_messages(10, text="x" * 1500)

    result = await pipeline.generate(messages, SummaryOptions())

    # One chunk: its summary is the result, no synthesis call
    assert result == SummaryText(text="summary 1 #ChatSummary", mode="chunked", chunk_count=1)
    assert len(fake_llm.calls) == 1
    assert "chunk 1 of 1" in fake_llm.calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_capacity_error_exports_every_message(tmp_path):
    llm = FakeLLM(error=CapacityError("rate limited"))
    pipeline = SummaryPipeline(llm, export_dir=tmp_path)
    messages = build_messages(30)
    messages.append(make_message(99, BASE + 3600, "earlier digest #ChatSummary"))

    result = await pipeline.generate(messages, SummaryOptions(timezone="UTC"))

    assert isinstance(result, FallbackArtifact)
    assert result.message_count == len(messages)
    assert result.path.parent == tmp_path
    assert result.filename.startswith("chat_export_") and result.filename.endswith(".txt")
    assert result.time_range == "2024-03-15 12:00 to 2024-03-15 13:00"

    content = result.path.read_text(encoding="utf-8")
    assert content.startswith("=== CHAT EXPORT ===")
    assert f"Total Messages: {len(messages)}" in content
    for message in messages:
        assert message.text in content
    assert "[2024-03-15 12:00:00] alice: message 1" in content
    assert str(len(messages)) in result.notice()


@pytest.mark.asyncio
async def test_capacity_error_mid_chunking_still_falls_back(tmp_path):
    llm = FakeLLM(error=CapacityError("quota"), fail_on_call=2)
    pipeline = SummaryPipeline(llm, export_dir=tmp_path)

    result = await pipeline.generate(build_messages(150), SummaryOptions())

    assert isinstance(result, FallbackArtifact)
    assert result.message_count == 150
    assert len(llm.calls) == 2


@pytest.mark.asyncio
async def test_capacity_error_propagates_without_fallback(tmp_path):
    pipeline = SummaryPipeline(FakeLLM(error=CapacityError("busy")), export_dir=tmp_path)

    with pytest.raises(CapacityError):
        await pipeline.generate(build_messages(5), SummaryOptions(), allow_fallback=False)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_other_model_errors_propagate(tmp_path):
    pipeline = SummaryPipeline(FakeLLM(error=LLMError("bad request")), export_dir=tmp_path)

    with pytest.raises(LLMError):
        await pipeline.generate(build_messages(5), SummaryOptions())
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_fallback_artifacts_are_distinct(pipeline):
    messages = build_messages(5)

    first = await pipeline.export_transcript(messages, SummaryOptions())
    second = await pipeline.export_transcript(messages, SummaryOptions())

    assert first.path != second.path
    assert first.path.exists() and second.path.exists()


def test_export_names_never_collide(pipeline, tmp_path):
    generated_at = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

    first = pipeline._write_export("one", generated_at)
    second = pipeline._write_export("two", generated_at)

    assert first != second
    assert second.name == "chat_export_2024-03-15_12-00-00_000000_1.txt"
    assert first.read_text(encoding="utf-8") == "one"


def test_message_link_strips_supergroup_prefix():
    assert message_link(-1001234567890, 42) == "https://t.me/c/1234567890/42"
    assert message_link(-4242, 7) == "https://t.me/c/4242/7"


def test_link_timecodes_links_the_first_message_of_the_minute():
    messages = [
        make_message(10, BASE + 5, "second"),
        make_message(9, BASE, "first"),
        make_message(11, BASE + 120, "later"),
    ]

    linked = link_timecodes("Alice started at 12:00, then 12:02 and 18:48.", messages, CHAT_ID, "UTC")

    assert "[at 12:00](https://t.me/c/1234567890/9)" in linked
    assert "[12:02](https://t.me/c/1234567890/11)" in linked
    assert "18:48." in linked and "[18:48]" not in linked


def test_link_timecodes_fails_open():
    summary = "Something happened at 12:00"

    assert link_timecodes(summary, [object()], CHAT_ID) == summary
    assert link_timecodes(summary, [], CHAT_ID) == summary
