import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine_for
from core.logging import setup_logging
# Importing models registers every table on Base.metadata
from models import Base

logger = logging.getLogger(__name__)


async def init_database(database_url: str = settings.DATABASE_URL):
    logger.info("Connecting to database...")
    engine = create_engine_for(database_url)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Tables created successfully: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
