"""Shared test fixtures."""

import os

# Settings are read at import time; keep tests off Postgres and Redis.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from interview_scheduler.applications.models import Application, ApplicationStatus  # noqa: E402
from interview_scheduler.database.base import Base  # noqa: E402
from interview_scheduler.integrations.locks import LocalLockService  # noqa: E402
from interview_scheduler.interview.models import Interview, InterviewSlot  # noqa: E402
from interview_scheduler.interview.service import SchedulingService  # noqa: E402
from interview_scheduler.notifications.models import ReminderMarker  # noqa: E402

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [Application, Interview, InterviewSlot, ReminderMarker]


class RecordingDispatcher:
    """Collects dispatched notifications; can be told to fail for some users."""

    def __init__(self) -> None:
        self.sent = []
        self.fail_for: set[uuid.UUID] = set()

    def dispatch(self, notification) -> None:
        if notification.user_id in self.fail_for:
            raise ConnectionError("queue unavailable")
        self.sent.append(notification)

    def kinds(self) -> list[str]:
        return [n.kind for n in self.sent]


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test.

    SQLite drops timezone info and does not enforce every PostgreSQL
    feature, but covers the service logic.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db_session(engine):
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def scheduler(dispatcher):
    return SchedulingService(LocalLockService(blocking_timeout=5), dispatcher)


@pytest.fixture
def interviewer_id():
    return uuid.uuid4()


@pytest.fixture
def make_application(db_session):
    """Factory for applications in a given status."""

    def _make(status: ApplicationStatus = ApplicationStatus.SHORTLISTED) -> Application:
        application = Application(
            id=uuid.uuid4(),
            job_id=uuid.uuid4(),
            candidate_id=uuid.uuid4(),
            status=status,
        )
        db_session.add(application)
        db_session.commit()
        return application

    return _make


@pytest.fixture
def test_application(make_application):
    return make_application()
