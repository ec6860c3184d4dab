"""
Pytest configuration and shared fixtures for the Job Application Tracker tests.
"""
import pytest
import os
from datetime import date, datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from unittest.mock import patch

# Import application components
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("TESTING", "true")

from backend.main import app
from backend.config.settings import Settings
from backend.models.db.database import get_db, Base, build_engine
from backend.models.db import crud
from backend.models.db import application as application_model
from backend import schemas
from backend.services.achievement_catalog import load_catalog
from backend.services.achievement_repository import AchievementRepository
from backend.services.exceptions import NotificationDeliveryError, StoreUnavailableError
from backend.services.metrics import ApplicationFacts
from backend.services.progress_session import ProgressSessionRegistry


class RecordingNotifier:
    """Collects delivered events; fails the first ``failures`` sends."""

    def __init__(self, failures=0):
        self.events = []
        self.failures = failures
        self.calls = 0

    def send(self, event):
        self.calls += 1
        if self.calls <= self.failures:
            raise NotificationDeliveryError("notification service down")
        self.events.append(event)


class FlakyRepository(AchievementRepository):
    """
    Repository whose first ``failures`` unlock writes fail as if the store were
    unreachable. The next ``lost_replies`` writes commit and then fail, like a
    connection dropped after the commit.
    """

    def __init__(self, session_factory, failures=0):
        super().__init__(session_factory)
        self.failures = failures
        self.lost_replies = 0
        self.insert_calls = 0
        self.offline = False

    def insert_unlock(self, user_id, achievement_id, unlocked_at):
        self.insert_calls += 1
        if self.offline or self.insert_calls <= self.failures:
            raise StoreUnavailableError("store unreachable")
        result = super().insert_unlock(user_id, achievement_id, unlocked_at)
        if self.lost_replies > 0:
            self.lost_replies -= 1
            raise StoreUnavailableError("connection lost after commit")
        return result

    def fetch_unlocks(self, user_id):
        if self.offline:
            raise StoreUnavailableError("store unreachable")
        return super().fetch_unlocks(user_id)

    def fetch_stats(self, user_id):
        if self.offline:
            raise StoreUnavailableError("store unreachable")
        return super().fetch_stats(user_id)


class FakeClock:
    def __init__(self, start=datetime(2024, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


# Test Database Setup
@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def test_settings():
    return Settings(testing=True, unlock_retry_base_seconds=2.0, unlock_retry_max_seconds=60.0)


@pytest.fixture
def repository(session_factory, catalog):
    repo = AchievementRepository(session_factory)
    repo.sync_catalog(catalog)
    return repo


@pytest.fixture
def flaky_repository(session_factory, catalog):
    repo = FlakyRepository(session_factory)
    repo.sync_catalog(catalog)
    return repo


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_notifier():
    return RecordingNotifier


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(repository, notifier, catalog, test_settings):
    return ProgressSessionRegistry(repository, notifier, catalog, test_settings)


@pytest.fixture
def test_client(test_db_session, registry):
    """Create a test client with overridden database dependency and progress registry."""
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    original_registry = app.state.progress_registry
    app.dependency_overrides[get_db] = override_get_db
    app.state.progress_registry = registry
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    app.state.progress_registry = original_registry


# User Fixtures
@pytest.fixture
def test_user_data():
    """Sample user data for testing."""
    return {
        "email": "test@example.com",
        "full_name": "Test User"
    }


@pytest.fixture
def test_user(test_db_session, test_user_data):
    """Create a test user in the database."""
    return crud.create_user(test_db_session, schemas.UserCreate(**test_user_data))


@pytest.fixture
def user_headers(test_user):
    return {"X-User-Id": str(test_user.id)}


# Application Fixtures
@pytest.fixture
def sample_application_data():
    return {
        "company": "Tech Innovations Inc",
        "position": "Senior Python Developer",
        "status": "Applied",
        "job_type": "Remote",
        "date_applied": "2024-01-15",
        "notes": "Applied through company website",
        "attachments": [{"name": "resume_2024.pdf", "type": "application/pdf", "size": 1024}],
    }


@pytest.fixture
def add_application(test_db_session, test_user):
    """Insert an application row directly, bypassing the API."""
    def _add(day, company="Acme", status="Applied", job_type="Onsite", notes=None,
             attachments=None, submitted_at=None, user_id=None):
        row = application_model.Application(
            company=company,
            position="Engineer",
            status=status,
            job_type=job_type,
            date_applied=day,
            submitted_at=submitted_at,
            notes=notes,
            attachments=attachments or [],
            user_id=user_id or test_user.id,
        )
        test_db_session.add(row)
        test_db_session.commit()
        test_db_session.refresh(row)
        return row
    return _add


@pytest.fixture
def make_facts():
    """Build ApplicationFacts with sensible defaults."""
    def _make(day=date(2024, 1, 1), **kwargs):
        return ApplicationFacts(company=kwargs.pop("company", "Acme"), date_applied=day, **kwargs)
    return _make


# Environment Variable Mocks
@pytest.fixture(autouse=True)
def mock_environment_variables():
    """Mock environment variables for testing."""
    test_env = {
        "TESTING": "true",
        "LOG_LEVEL": "DEBUG"
    }

    with patch.dict(os.environ, test_env):
        yield test_env
