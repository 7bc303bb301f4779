"""
Database session management with SQLAlchemy async

Source and destination may live on different servers, so each side gets its
own engine and session factory. Engines are created on first use.
"""

from functools import lru_cache
from sqlalchemy.ext.asyncio import (
    create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
)
from core.config import settings
import logging

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_engine(url: str) -> AsyncEngine:
    """Create (once per URL) an async engine"""
    logger.info("Creating database engine")
    return create_async_engine(
        url,
        echo=settings.ENVIRONMENT == "development",
        pool_size=settings.IMPORT_POOL_SIZE + 1,
        future=True
    )


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory with the options every importer session uses"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def source_session_maker() -> async_sessionmaker:
    return make_session_maker(get_engine(settings.source_database_url))


def destination_session_maker() -> async_sessionmaker:
    return make_session_maker(get_engine(settings.destination_database_url))

