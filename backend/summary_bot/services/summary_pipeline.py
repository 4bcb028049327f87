"""Adaptive summarization: direct, chunked with synthesis, or transcript export."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Union

from summary_bot.core.config import settings
from summary_bot.core.exceptions import CapacityError
from summary_bot.models.message import ChatMessage
from summary_bot.services.llm_client import CompletionClient
from summary_bot.services.prompts import (
    SUMMARY_MARKER,
    build_chunk_prompt,
    build_summary_prompt,
    build_synthesis_prompt,
    get_language,
)
from summary_bot.services.time_windows import get_zone

logger = logging.getLogger(__name__)

CHUNK_MAX_TOKENS = 2000
TEMPERATURE = 0.3
CHUNK_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class SummaryOptions:
    max_length: int = 1500
    language: str = "en"
    timezone: str = "UTC"


@dataclass(frozen=True)
class NoContent:
    reason: str = "no messages to summarize"


@dataclass(frozen=True)
class SummaryText:
    text: str
    mode: str  # "direct" or "chunked"
    chunk_count: int = 1


@dataclass(frozen=True)
class FallbackArtifact:
    path: Path
    message_count: int
    time_range: str
    generated_at: datetime

    @property
    def filename(self) -> str:
        return self.path.name

    def notice(self) -> str:
        return (
            "📄 Large Chat Export\n\n"
            f"The summary service is unavailable right now, so the {self.message_count} messages "
            "were exported to a text file instead.\n\n"
            f"📁 File: {self.filename}\n"
            f"📊 Messages: {self.message_count}\n"
            f"⏰ Time range: {self.time_range}"
        )


SummaryResult = Union[NoContent, SummaryText, FallbackArtifact]


def estimate_tokens(text: str) -> int:
    # Rough heuristic: ~4 characters per token
    return math.ceil(len(text) / 4)


def chunk_messages(messages: Sequence[ChatMessage], chunk_size: int) -> list[list[ChatMessage]]:
    return [list(messages[i : i + chunk_size]) for i in range(0, len(messages), chunk_size)]


def format_time(timestamp: int, timezone: str, fmt: str = "%H:%M") -> str:
    return datetime.fromtimestamp(timestamp, tz=get_zone(timezone)).strftime(fmt)


def is_summarizable(message: ChatMessage) -> bool:
    text = message.text or ""
    return bool(text.strip()) and SUMMARY_MARKER not in text


def format_transcript(messages: Sequence[ChatMessage], timezone: str = "UTC") -> str:
    """Render messages as ``[HH:MM] @name: text`` lines in the chat's timezone."""
    lines = []
    for message in messages:
        if not is_summarizable(message):
            continue
        lines.append(f"[{format_time(message.timestamp, timezone)}] @{message.display_name}: {message.text}")
    return "\n".join(lines)


def describe_time_range(messages: Sequence[ChatMessage], timezone: str = "UTC") -> str:
    if not messages:
        return "No messages"
    first = format_time(messages[0].timestamp, timezone, "%Y-%m-%d %H:%M")
    last = format_time(messages[-1].timestamp, timezone, "%Y-%m-%d %H:%M")
    return f"{first} to {last}"


class SummaryPipeline:
    """Turns a window of chat messages into a summary using a completion client."""

    def __init__(
        self,
        llm: CompletionClient,
        export_dir: Path | None = None,
        max_messages_per_chunk: int | None = None,
        max_tokens_per_request: int | None = None,
    ) -> None:
        self._llm = llm
        self._export_dir = Path(export_dir or settings.export_dir)
        self._max_messages_per_chunk = max_messages_per_chunk or settings.max_messages_per_chunk
        self._max_tokens_per_request = max_tokens_per_request or settings.max_tokens_per_request

    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: SummaryOptions | None = None,
        allow_fallback: bool = True,
    ) -> SummaryResult:
        """
        Summarize ``messages``.

        Args:
            messages: Messages of one chat; sorted by timestamp here
            options: Length budget, language and timezone of the chat
            allow_fallback: Export a transcript instead of raising CapacityError

        Returns:
            NoContent, SummaryText, or FallbackArtifact when the model is out of capacity
        """
        options = options or SummaryOptions(max_length=settings.default_summary_length)

        if not messages:
            return NoContent()

        ordered = sorted(messages, key=lambda m: (m.timestamp, m.message_id or 0))
        usable = [message for message in ordered if is_summarizable(message)]
        if not usable:
            return NoContent("no text left after filtering")

        logger.info(
            f"Generating summary for {len(usable)} messages "
            f"(language={options.language}, max_length={options.max_length}, timezone={options.timezone})"
        )

        try:
            transcript = format_transcript(usable, options.timezone)
            estimated = estimate_tokens(transcript)

            if len(usable) > self._max_messages_per_chunk or estimated > self._max_tokens_per_request:
                logger.info(f"Using chunked summarization ({len(usable)} messages, ~{estimated} tokens)")
                return await self._summarize_chunked(usable, options)

            return await self._summarize_direct(transcript, options)
        except CapacityError as exc:
            if not allow_fallback:
                raise
            logger.warning(f"Language model unavailable ({exc}), exporting transcript instead")
            return await self.export_transcript(ordered, options)

    def _response_budget(self, max_length: int) -> int:
        return min(int(max_length * 1.5), self._max_tokens_per_request)

    async def _summarize_direct(self, transcript: str, options: SummaryOptions) -> SummaryText:
        language = get_language(options.language)
        summary = await self._llm.complete(
            language.system_prompt,
            build_summary_prompt(transcript, options.max_length, language),
            self._response_budget(options.max_length),
            TEMPERATURE,
        )
        summary = summary.strip()
        logger.info(f"Generated summary length: {len(summary)} characters")
        return SummaryText(text=summary, mode="direct")

    async def _summarize_chunked(self, messages: Sequence[ChatMessage], options: SummaryOptions) -> SummaryText:
        language = get_language(options.language)
        chunks = chunk_messages(messages, self._max_messages_per_chunk)
        logger.info(f"Split {len(messages)} messages into {len(chunks)} chunks")

        chunk_summaries = []
        for index, chunk in enumerate(chunks, 1):
            logger.info(f"Processing chunk {index}/{len(chunks)}")
            summary = await self._llm.complete(
                language.system_prompt,
                build_chunk_prompt(format_transcript(chunk, options.timezone), index, len(chunks)),
                CHUNK_MAX_TOKENS,
                TEMPERATURE,
            )
            chunk_summaries.append(summary.strip())

        if len(chunk_summaries) == 1:
            return SummaryText(text=chunk_summaries[0], mode="chunked", chunk_count=1)

        logger.info("Generating final summary from chunk summaries")
        final = await self._llm.complete(
            language.system_prompt,
            build_synthesis_prompt(CHUNK_SEPARATOR.join(chunk_summaries), options.max_length, language),
            self._response_budget(options.max_length),
            TEMPERATURE,
        )
        return SummaryText(text=final.strip(), mode="chunked", chunk_count=len(chunks))

    async def export_transcript(self, messages: Sequence[ChatMessage], options: SummaryOptions) -> FallbackArtifact:
        """Write every message to a fresh text file under the export directory."""
        ordered = sorted(messages, key=lambda m: (m.timestamp, m.message_id or 0))
        generated_at = datetime.now(tz=get_zone(options.timezone))
        content = self._render_export(ordered, options.timezone, generated_at)

        path = await asyncio.to_thread(self._write_export, content, generated_at)
        logger.info(f"Created transcript export: {path}")

        return FallbackArtifact(
            path=path,
            message_count=len(ordered),
            time_range=describe_time_range(ordered, options.timezone),
            generated_at=generated_at,
        )

    @staticmethod
    def _render_export(messages: Sequence[ChatMessage], timezone: str, generated_at: datetime) -> str:
        header = (
            "=== CHAT EXPORT ===\n"
            f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"Timezone: {timezone}\n"
            f"Total Messages: {len(messages)}\n"
            f"Time Range: {describe_time_range(messages, timezone)}\n"
            "\n=== MESSAGES ===\n\n"
        )
        lines = [
            f"[{format_time(message.timestamp, timezone, '%Y-%m-%d %H:%M:%S')}] {message.display_name}: {message.text}"
            for message in messages
            if message.text and message.text.strip()
        ]
        return header + "\n\n".join(lines) + "\n"

    def _write_export(self, content: str, generated_at: datetime) -> Path:
        self._export_dir.mkdir(parents=True, exist_ok=True)
        stem = f"chat_export_{generated_at.strftime('%Y-%m-%d_%H-%M-%S_%f')}"

        suffix = 0
        while True:
            name = f"{stem}.txt" if suffix == 0 else f"{stem}_{suffix}.txt"
            path = self._export_dir / name
            try:
                # "x" never overwrites an existing export
                with path.open("x", encoding="utf-8") as handle:
                    handle.write(content)
                return path
            except FileExistsError:
                suffix += 1


_TIMECODE_RE = re.compile(r"(?:\bat\s+)?\b(\d{1,2}):(\d{2})\b", re.IGNORECASE)


def message_link(chat_id: int, message_id: int) -> str:
    internal_id = str(chat_id)
    if internal_id.startswith("-100"):
        internal_id = internal_id[4:]
    return f"https://t.me/c/{internal_id.lstrip('-')}/{message_id}"


def link_timecodes(summary: str, messages: Sequence[ChatMessage], chat_id: int, timezone: str = "UTC") -> str:
    """
    Turn ``HH:MM`` mentions into links to the first message sent at that minute.

    Never raises; on any error the summary is returned unchanged.
    """
    if not summary or not messages:
        return summary

    try:
        first_by_minute: dict[str, int] = {}
        for message in sorted(messages, key=lambda m: (m.timestamp, m.message_id or 0)):
            first_by_minute.setdefault(format_time(message.timestamp, timezone), message.message_id)

        def replace(match: re.Match) -> str:
            hour, minute = int(match.group(1)), int(match.group(2))
            message_id = first_by_minute.get(f"{hour:02d}:{minute:02d}")
            if message_id is None:
                return match.group(0)
            return f"[{match.group(0)}]({message_link(chat_id, message_id)})"

        return _TIMECODE_RE.sub(replace, summary)
    except Exception:
        logger.error("Failed to link timecodes, keeping summary as is", exc_info=True)
        return summary
