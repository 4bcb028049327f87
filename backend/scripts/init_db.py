"""Create the bot's tables and apply additive migrations.

Usage, from the backend directory: python -m scripts.init_db
"""

import asyncio
import logging
import sys
from pathlib import Path

backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from summary_bot.core.config import settings
from summary_bot.core.db import dispose_engine, init_models
from summary_bot.core.logging import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


async def main():
    try:
        logger.info("Initializing database...")
        await init_models()
        logger.info(f"Database ready: {settings.database_url}")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
