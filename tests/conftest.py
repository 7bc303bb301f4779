"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from core.database import make_session_maker
from models.base import Base
from sample_tables import LegacyPerson, Person, SampleBase


async def _create_engine(path, *metadatas):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )
    async with engine.begin() as conn:
        for metadata in metadatas:
            await conn.run_sync(metadata.create_all)
    return engine


@pytest_asyncio.fixture(scope="function")
async def source_engine(tmp_path):
    """Temporary SQLite database holding the source table"""
    engine = await _create_engine(tmp_path / "source.db", SampleBase.metadata)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def destination_engine(tmp_path):
    """Temporary SQLite database holding the destination and import_runs tables"""
    engine = await _create_engine(tmp_path / "destination.db", SampleBase.metadata, Base.metadata)
    yield engine
    await engine.dispose()


@pytest.fixture
def source_sessions(source_engine):
    return make_session_maker(source_engine)


@pytest.fixture
def destination_sessions(destination_engine):
    return make_session_maker(destination_engine)


@pytest_asyncio.fixture
async def db_session(destination_sessions):
    """Destination session for direct assertions"""
    async with destination_sessions() as session:
        yield session


@pytest.fixture
def seed(source_sessions, destination_sessions):
    """Insert rows: ``await seed(LegacyPerson(...), Person(...))``"""

    async def _seed(*rows):
        for sessions, model in ((source_sessions, LegacyPerson), (destination_sessions, Person)):
            matching = [row for row in rows if isinstance(row, model)]
            if not matching:
                continue
            async with sessions() as session:
                session.add_all(matching)
                await session.commit()

    return _seed

