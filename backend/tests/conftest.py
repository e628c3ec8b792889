"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile

# Settings are read at import time, so the environment has to be ready first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "points-economy-test-logs"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from main import app
from core.config import settings
from db.base import initialize_database
from db.models.account import Account, AccountStatus, AccountTier
from db.models.reward import Reward
from db.models.task import Task, VerificationType
from db.session import build_engine, build_sessionmaker, get_db_session

# Initialize Faker for test data generation
fake = Faker()


@pytest.fixture
async def test_engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await initialize_database(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_sessionmaker(test_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async test client; every request gets its own session like in production."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_account(session_factory):
    async def _make(points: int = 0, status: AccountStatus = AccountStatus.NORMAL, tier: AccountTier = AccountTier.FREE) -> str:
        account_id = str(uuid.uuid4())
        async with session_factory() as session:
            session.add(Account(id=account_id, username=fake.unique.user_name(), points=points, status=status, tier=tier))
            await session.commit()
        return account_id
    return _make


@pytest.fixture
def make_task(session_factory):
    async def _make(
        points: int = 25,
        verification_type: VerificationType = VerificationType.MANUAL,
        required_media: bool = False,
        active: bool = True,
        expires_in: timedelta = None,
    ) -> int:
        expires_at = datetime.now(timezone.utc) + expires_in if expires_in is not None else None
        async with session_factory() as session:
            task = Task(
                title=fake.sentence(nb_words=4),
                points=points,
                verification_type=verification_type,
                required_media=required_media,
                active=active,
                expires_at=expires_at,
            )
            session.add(task)
            await session.commit()
            return task.id
    return _make


@pytest.fixture
def make_reward(session_factory):
    async def _make(points_cost: int = 50, quantity: int = None, active: bool = True) -> int:
        async with session_factory() as session:
            reward = Reward(name=fake.word(), points_cost=points_cost, quantity=quantity, active=active)
            session.add(reward)
            await session.commit()
            return reward.id
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, role: str = "user") -> dict:
        # Tokens normally come from the auth service; mint one with the shared secret
        claims = {"sub": user_id, "role": role, "exp": datetime.now(timezone.utc) + timedelta(minutes=30)}
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep economy settings in memory so tests never rewrite config.json."""
    from copy import deepcopy
    from config import config

    monkeypatch.setattr(config, "_config", deepcopy(config._config))
    monkeypatch.setattr(config, "_save_config", lambda: None)
    return config
