"""
Shared fixtures: settings and an on-disk SQLite database per test.
"""
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from trainload import models  # noqa: F401
from trainload.core.config import Settings
from trainload.core.database import Base

WEBHOOK_SECRET = "test_secret"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        TERRA_API_KEY="test-api-key",
        TERRA_DEVELOPER_ID="test-dev-id",
        TERRA_WEBHOOK_SECRET=WEBHOOK_SECRET,
        TERRA_BASE_URL="https://terra.test/v2",
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'trainload.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session
