"""Prompt templates for the summary pipeline, keyed by chat language."""

from dataclasses import dataclass

SUMMARY_MARKER = "#ChatSummary"
DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class LanguagePack:
    code: str
    name: str
    flag: str

    @property
    def system_prompt(self) -> str:
        return (
            "You are a friendly, casual assistant who creates comprehensive and detailed summaries "
            f"of chat conversations in {self.name}. Your summaries should be thorough and capture the "
            "essence of the entire conversation. Use a conversational tone and emojis to make summaries "
            'more readable. IMPORTANT: Include specific timecodes (in 24-hour format like "18:48") and '
            "mention people by name when they speak or are mentioned. Make the summary feel personal "
            f"and chronological. Always respond in {self.name} only."
        )


LANGUAGES: dict[str, LanguagePack] = {
    pack.code: pack
    for pack in (
        LanguagePack("en", "English", "🇺🇸"),
        LanguagePack("es", "Spanish", "🇪🇸"),
        LanguagePack("fr", "French", "🇫🇷"),
        LanguagePack("de", "German", "🇩🇪"),
        LanguagePack("it", "Italian", "🇮🇹"),
        LanguagePack("pt", "Portuguese", "🇵🇹"),
        LanguagePack("ru", "Russian", "🇷🇺"),
        LanguagePack("ja", "Japanese", "🇯🇵"),
        LanguagePack("ko", "Korean", "🇰🇷"),
        LanguagePack("zh", "Chinese", "🇨🇳"),
        LanguagePack("ar", "Arabic", "🇸🇦"),
        LanguagePack("hi", "Hindi", "🇮🇳"),
        LanguagePack("uk", "Ukrainian", "🇺🇦"),
        LanguagePack("pl", "Polish", "🇵🇱"),
        LanguagePack("nl", "Dutch", "🇳🇱"),
        LanguagePack("tr", "Turkish", "🇹🇷"),
    )
}


def get_language(code: str | None) -> LanguagePack:
    return LANGUAGES.get((code or DEFAULT_LANGUAGE).lower(), LANGUAGES[DEFAULT_LANGUAGE])


def build_summary_prompt(transcript: str, max_length: int, language: LanguagePack) -> str:
    """User prompt for a single-pass summary of the whole transcript."""
    return f"""CRITICAL: You MUST respond in {language.name} language only. Do not use any other language.

Create a comprehensive {max_length}-character summary of the following chat conversation in {language.name}.

This should be a DETAILED summary that captures the full scope of the conversation. Provide a thorough overview that someone who missed the conversation can understand completely.

Style guidelines:
- Use friendly, conversational language 🗣️
- Add appropriate emojis to make it more engaging 😊
- Keep it factual but readable and detailed
- Don't add personal opinions, thoughts, or advice
- Focus on what actually happened in the conversation
- Break down different conversation threads or topics clearly
- IMPORTANT: Include timecodes in 24-hour format (like "at 18:48") and mention people by name when they speak

Focus on:
- All main topics discussed (with details and context)
- Important decisions or conclusions reached
- Action items, plans, or commitments made
- Who said what and when (mention names and times)
- Links, resources, or references mentioned

Chat conversation:
{transcript}

End your summary with the hashtag: {SUMMARY_MARKER}

Remember: Your entire response must be in {language.name} language.

Summary:"""


def build_chunk_prompt(transcript: str, chunk_index: int, total_chunks: int) -> str:
    return f"""This is chunk {chunk_index} of {total_chunks} from a large conversation.
Create a detailed summary of this portion of the conversation. Focus on the key points, topics discussed, and important information shared in this segment. Keep the timecodes (HH:MM) and names of the people involved.

Chat conversation segment:
{transcript}

Summary:"""


def build_synthesis_prompt(chunk_summaries: str, max_length: int, language: LanguagePack) -> str:
    return f"""Create a comprehensive final summary of the entire conversation based on these chunk summaries, written in {language.name}.
The chunk summaries are in chronological order. Combine and synthesize them into one coherent summary that keeps that order and captures the full scope of the conversation.

Chunk summaries:
{chunk_summaries}

Create a comprehensive {max_length}-character summary that ties everything together. End it with the hashtag: {SUMMARY_MARKER}"""
