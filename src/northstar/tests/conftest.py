"""Test configuration."""
import os
from datetime import datetime, timedelta, UTC
from typing import Callable, Generator, List

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from faker import Faker
from sqlalchemy.orm import sessionmaker

# Import after environment setup
from northstar.models.base import create_db_engine, create_session_factory, init_db
from northstar.services.api_client import APIClient
from northstar.services.notification_service import NotificationService
from northstar.services.progress_store import SqlProgressStore

fake = Faker()


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def user_id() -> str:
    return fake.uuid4()


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Create a fresh in-memory database for each test."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    try:
        yield create_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def store(session_factory: sessionmaker) -> SqlProgressStore:
    return SqlProgressStore(session_factory)


@pytest.fixture
def notifications() -> NotificationService:
    return NotificationService()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(notifications: NotificationService, sleep: RecordingSleep) -> Callable[..., APIClient]:
    """Build an APIClient whose HTTP traffic goes to ``handler``."""

    def _make(handler, **kwargs) -> APIClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return APIClient(
            base_url="http://test/api",
            client=http,
            notifier=notifications,
            sleep=sleep,
            **kwargs,
        )

    return _make
