import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from summary_bot.core.config import settings
from summary_bot.core.db import dispose_engine, init_models
from summary_bot.core.logging import configure_logging
from summary_bot.services.command_handler import CommandHandler
from summary_bot.services.llm_client import LLMClient
from summary_bot.services.message_ingestor import MessageIngestor
from summary_bot.services.summary_pipeline import SummaryPipeline
from summary_bot.services.summary_service import SummaryService
from summary_bot.services.telegram_bot import TelegramBot, build_client
from summary_bot.tasks.jobs import ScheduledSummaryRunner
from summary_bot.tasks.scheduler import SchedulerDaemon

from .routers import chats

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Chat Summary Bot API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chats.router, prefix="/api")

    @app.get("/")
    async def read_root():
        return {"message": "Chat Summary Bot API", "docs": "/docs"}

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info("Initializing database...")
        await init_models()
        logger.info(f"Database ready ({settings.database_url})")

        summary_service = SummaryService(SummaryPipeline(LLMClient()))

        try:
            logger.info("Starting Telegram bot...")
            bot = TelegramBot(
                build_client(),
                MessageIngestor(),
                lambda messenger: CommandHandler(messenger, summary_service),
            )
            await bot.start()
        except Exception as e:
            logger.error(f"Telegram bot failed to start: {e}", exc_info=True)
            # The admin API keeps serving without the bot
            logger.warning("Scheduled summaries are disabled without the Telegram bot")
            return

        app.state.bot = bot
        daemon = SchedulerDaemon(ScheduledSummaryRunner(summary_service, bot.messenger))
        app.state.daemon = daemon
        await daemon.start()
        logger.info("Application started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        try:
            daemon = getattr(app.state, "daemon", None)
            if daemon is not None:
                await daemon.stop()
            bot = getattr(app.state, "bot", None)
            if bot is not None:
                await bot.stop()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        finally:
            await dispose_engine()

    return app


app = create_app()
