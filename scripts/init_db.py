import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import get_engine
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.import_run import ImportRun

logger = logging.getLogger(__name__)


async def init_database():
    """Create the import_runs table on the destination database"""
    logger.info("Connecting to destination database...")
    engine = get_engine(settings.destination_database_url)

    async with engine.begin() as conn:
        logger.info(f"Creating {ImportRun.__tablename__}...")
        await conn.run_sync(Base.metadata.create_all, tables=[ImportRun.__table__])
        logger.info("Tables created successfully.")

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
