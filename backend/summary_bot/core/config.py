from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Telegram (Telethon client in bot mode)
    telegram_api_id: int = 0
    telegram_api_hash: str = ""
    telegram_bot_token: str = ""
    telegram_session_name: str = "summary_bot"
    telegram_data_dir: str = "./data"
    # Comma-separated user IDs allowed to change settings in any chat
    bot_owner_ids: str = ""

    # Language model (OpenAI-compatible chat completions endpoint)
    llm_api_key: str = ""
    llm_api_url: str = "https://api.openai.com/v1/chat/completions"
    llm_model: str = "gpt-3.5-turbo"
    llm_timeout_seconds: float = 60.0

    database_url: str = "sqlite+aiosqlite:///./summary_bot.db"
    message_fetch_limit: int = 1000

    default_summary_length: int = 1500
    daily_summary_limit: int = 10
    max_messages_per_chunk: int = 100
    max_tokens_per_request: int = 3000
    export_dir: Path = Path("./logs")
    # Clickable timecodes are off by default: Telegram rejects some Markdown they produce
    enable_timecode_links: bool = False

    scheduler_tick_minutes: int = 5

    # Messages older than this are not stored (e.g. backlog delivered after downtime)
    max_message_age_seconds: int = 86400

    log_level: str = "INFO"

    @field_validator("export_dir", mode="after")
    @classmethod
    def _expand_export_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def owner_ids(self) -> set[int]:
        ids = set()
        for part in self.bot_owner_ids.split(","):
            part = part.strip()
            if part.lstrip("-").isdigit():
                ids.add(int(part))
        return ids

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
