import logging

from summary_bot.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = ("httpx", "telethon", "apscheduler", "sqlalchemy.engine")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the app and the scripts."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
