import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TELEGRAM_ENABLED", "false")
os.environ.setdefault("LLM_PROVIDER", "none")

from pathlib import Path
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from paper_trader.domain.services.config_engine import StrategyConfigEngine
from paper_trader.infrastructure.db import models  # noqa: F401
from paper_trader.infrastructure.db.database import Base, session_scope

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture()
async def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture()
def session_factory(session_maker):
    """Drop-in for session_scope bound to the test database"""
    return lambda: session_scope(session_maker)


@pytest.fixture(scope="session")
def config_engine() -> StrategyConfigEngine:
    engine = StrategyConfigEngine(CONFIG_DIR)
    engine.load_all()
    return engine


@pytest.fixture(scope="session")
def live_policy(config_engine):
    return config_engine.get_policy("live")


@pytest.fixture(scope="session")
def backtest_policy(config_engine):
    return config_engine.get_policy("backtest")
