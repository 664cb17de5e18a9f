"""
Pytest configuration and fixtures for SMAP API tests.
"""
import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smap.clock import utcnow
from smap.database import Base, get_db
from smap.dependencies import get_platform_publisher
from smap.exceptions import PlatformError
from smap.limiter import limiter
from smap.main import app
from smap.models import PlatformConnection, ScheduledPost, User
from smap.auth import get_password_hash, create_access_token
from smap.worker.platform_publish import PlatformPublisher, PublishResult

# Disable rate limiting for tests
limiter.enabled = False

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None


def get_test_db():
    """Get the shared test database session."""
    global _test_session
    try:
        yield _test_session
    finally:
        pass


class FakePublisher(PlatformPublisher):
    """Records publish calls instead of talking to Facebook."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.fail_with = None
        self.next_id = 1

    def publish(self, platform, connection, content):
        self.calls.append((platform, connection, content))
        if self.fail_with is not None:
            raise self.fail_with
        if platform != "facebook":
            raise PlatformError(platform, f"Publishing to {platform} is not supported")
        post_id = f"page_{self.next_id}"
        self.next_id += 1
        return PublishResult(platform=platform, post_id=post_id, url=f"https://facebook.com/{post_id}", response={"id": post_id})


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create a session
    _test_session = TestingSessionLocal()

    # Override the get_db dependency
    app.dependency_overrides[get_db] = get_test_db

    yield _test_session

    # Cleanup
    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None

    # Drop all tables
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def publisher(db):
    """Fake platform publisher wired into the app."""
    fake = FakePublisher()
    app.dependency_overrides[get_platform_publisher] = lambda: fake
    return fake


@pytest.fixture(scope="function")
def client(db, publisher):
    """Create a test client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def test_user(db):
    """Create a test user."""
    user = User(
        email="test@example.com",
        hashed_password=get_password_hash("testpassword123"),
        display_name="Test User",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def other_user(db):
    user = User(
        email="other@example.com",
        hashed_password=get_password_hash("otherpassword123"),
        display_name="Other User",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def auth_token(test_user):
    """Get an auth token for the test user."""
    return create_access_token(test_user.id)


@pytest.fixture(scope="function")
def auth_headers(auth_token):
    """Get auth headers for the test user."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture(scope="function")
def facebook_connection(db, test_user):
    """A connected Facebook page for the test user."""
    connection = PlatformConnection(
        user_id=test_user.id,
        platform="facebook",
        is_connected=True,
        access_token="user-token",
        page_access_token="page-token",
        page_id="12345",
        account_id="12345",
        account_name="Test Page",
        category="Brand",
        connected_at=utcnow(),
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    db.refresh(test_user)
    return connection


@pytest.fixture(scope="function")
def make_post(db, test_user):
    """Factory for scheduled posts stored directly in the database."""
    def _make(**overrides):
        values = dict(
            user_id=test_user.id,
            platform="facebook",
            page_id="12345",
            page_name="Test Page",
            message="Hello world",
            media_urls=[],
            media_type="none",
            scheduled_time=utcnow() - timedelta(minutes=5),
            status="scheduled",
            retry_count=0,
            max_retries=3,
        )
        values.update(overrides)
        post = ScheduledPost(**values)
        db.add(post)
        db.commit()
        db.refresh(post)
        return post
    return _make


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replays queued responses in order."""

    def __init__(self):
        self.responses = []
        self.requests = []

    def queue(self, status_code=200, payload=None):
        self.responses.append(FakeResponse(status_code, payload))
        return self

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


@pytest.fixture(scope="function")
def http():
    return FakeSession()
