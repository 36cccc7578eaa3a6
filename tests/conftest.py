"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


ACTOR_HEADERS = {"X-Actor-Id": "coordinator-7", "X-Actor-Name": "Casey Coordinator"}


def _reset_db_modules():
    """Reset database module globals to ensure clean state."""
    import database.async_engine as module
    module._async_engine = None
    module._async_session_factory = None


@pytest.fixture(autouse=True)
def reset_database_globals():
    """Reset database module globals before and after each test."""
    _reset_db_modules()
    yield
    _reset_db_modules()


class StepClock:
    """
    Deterministic clock: every call moves time forward by ``step``.

    Keeps timestamps strictly increasing so ordering assertions do not
    depend on wall-clock resolution.
    """

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0), step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def db_settings(tmp_path):
    from config.database import DatabaseSettings

    return DatabaseSettings(driver="sqlite+aiosqlite", sqlite_path=tmp_path / "care_team.db")


@pytest_asyncio.fixture
async def engine(db_settings):
    """File-backed SQLite engine with the schema created."""
    from database.async_engine import create_engine, create_schema

    engine = create_engine(db_settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    from database.async_engine import get_session_factory

    return get_session_factory(engine)


@pytest.fixture
def event_bus():
    from domain.event_bus import EventBus

    return EventBus()


@pytest.fixture
def uow_factory(session_factory, event_bus):
    from database.unit_of_work import UnitOfWorkFactory

    return UnitOfWorkFactory(session_factory, event_bus=event_bus)


@pytest.fixture
def fast_retry():
    """Stale-write retry policy without sleeps."""
    from domain.exceptions import StaleWriteError
    from resilience import RetryConfig

    return RetryConfig(
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        jitter=0.0,
        retryable_exceptions=(StaleWriteError,),
    )


@pytest.fixture
def service(uow_factory, clock, fast_retry):
    from services.care_team import CareTeamService

    return CareTeamService(uow_factory, clock=clock, retry_config=fast_retry)


@pytest_asyncio.fixture
async def client_id(service):
    """A registered client."""
    client = await service.register_client("Ada Lovelace", actor="admin")
    return client.id


@pytest.fixture
def new_staff(service):
    """Factory registering a staff member and returning its id."""

    async def _new_staff(name: str = "Grace Hopper"):
        staff = await service.register_staff(name, actor="admin")
        return staff.id

    return _new_staff


@pytest_asyncio.fixture
async def api(session_factory, engine, clock, event_bus):
    """HTTP client bound to an app that shares the test database."""
    import httpx

    from config.settings import Settings
    from web.app import create_app

    app = create_app(settings=Settings(), session_factory=session_factory, engine=engine)
    app.state.clock = clock
    app.state.event_bus = event_bus

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def actor_headers():
    return dict(ACTOR_HEADERS)
