"""
Shared pytest fixtures for the job scheduler.
"""

import os
import tempfile
from typing import Callable, Dict, Generator, List

# Tests never touch a local scheduler.db
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/scheduler-test.db"
)
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SENTRY_DSN", "")

import httpx  # noqa: E402
import pytest  # noqa: E402
from dotenv import load_dotenv  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

# Load environment variables from .env file without overriding the above
load_dotenv(override=False)

from app.db.base import Base  # noqa: E402
from app.db.session import build_engine, build_session_factory  # noqa: E402
from app.services.scheduling import (  # noqa: E402
    JobLifecycleManager,
    JobRepository,
    SchedulerEngine,
    TriggerFactory,
)


# Fixture for a throwaway SQLite database for testing
@pytest.fixture(scope="function")
def db_engine(tmp_path) -> Generator[Engine, None, None]:
    """Yield a SQLAlchemy engine for a fresh file-backed SQLite database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine):
    return build_session_factory(db_engine)


@pytest.fixture
def repository(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def trigger_factory() -> TriggerFactory:
    return TriggerFactory("UTC")


@pytest.fixture
def scheduler_engine() -> SchedulerEngine:
    """An engine that has not been started; async tests start and stop it."""
    return SchedulerEngine()


@pytest.fixture
def sent_requests() -> List[httpx.Request]:
    """Outbound requests captured by the mock transport."""
    return []


@pytest.fixture
def target_status() -> Dict[str, int]:
    """Status code the mock target answers with; tests may change it."""
    return {"code": 200}


@pytest.fixture
def http_client(sent_requests, target_status) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent_requests.append(request)
        return httpx.Response(target_status["code"], text="target says hi")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def lifecycle(
    scheduler_engine, repository, trigger_factory, http_client
) -> JobLifecycleManager:
    return JobLifecycleManager(
        engine=scheduler_engine,
        repository=repository,
        trigger_factory=trigger_factory,
        client=http_client,
    )


@pytest.fixture
def job_fields() -> Callable[..., dict]:
    """Build caller job fields, overriding any of the defaults."""

    def _build(**overrides) -> dict:
        fields = {
            "name": "hourly-hook",
            "trigger_type": "interval",
            "expression": "3600",
            "http_method": "POST",
            "http_target_url": "https://example.com/hook?source=scheduler",
            "http_request_body": '{"ping": true}',
            "json_web_token": "",
        }
        fields.update(overrides)
        return fields

    return _build
