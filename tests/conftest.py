"""
Shared pytest fixtures.

Tests run against ``TEST_DATABASE_URL`` (in-memory SQLite by default). The
schema is created before and dropped after every test.
"""
import os

os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from skillconnect.api.app import app
from skillconnect.lib.db import SessionLocal, drop_db, get_db_context, init_db
from skillconnect.lib.metrics import reset_metrics
from skillconnect.lib.realtime import reset_broker
from skillconnect.models.bookings import Booking
from skillconnect.models.service_requests import ServiceRequest
from skillconnect.models.users import User, UserRole
from tests.helpers import build_accepted, build_request, build_user


@pytest.fixture(autouse=True)
def database():
    """Fresh schema, metrics and broker for every test."""
    init_db()
    reset_metrics()
    reset_broker()
    yield
    drop_db()


@pytest.fixture
def db():
    """A session for service-level tests; the test commits explicitly."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client():
    """Test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
def make_user() -> Callable[..., User]:
    """Factory persisting a user in its own committed transaction."""
    def _make(role: UserRole = UserRole.COMMUNITY_MEMBER, **kwargs) -> User:
        user = build_user(role, **kwargs)
        with get_db_context() as session:
            session.add(user)
        return user
    return _make


@pytest.fixture
def make_request() -> Callable[..., ServiceRequest]:
    def _make(requester: User, **kwargs) -> ServiceRequest:
        request = build_request(requester, **kwargs)
        with get_db_context() as session:
            session.add(request)
        return request
    return _make


@pytest.fixture
def make_booking() -> Callable[..., Booking]:
    """Persist a request already accepted by ``provider`` plus its booking."""
    def _make(requester: User, provider: User, completed: bool = False, type_of_work: str = "Plumbing") -> Booking:
        request, booking = build_accepted(requester, provider, completed=completed, type_of_work=type_of_work)
        with get_db_context() as session:
            session.add(request)
            session.flush()
            session.add(booking)
        return booking
    return _make


@pytest.fixture
def member(make_user) -> User:
    return make_user(UserRole.COMMUNITY_MEMBER, first_name="Maria", last_name="Santos")


@pytest.fixture
def provider(make_user) -> User:
    return make_user(UserRole.SERVICE_PROVIDER, first_name="Paolo", last_name="Reyes", skills=["Plumbing", "Carpentry"])


@pytest.fixture
def admin(make_user) -> User:
    return make_user(UserRole.ADMIN, first_name="Ada", last_name="Admin")
