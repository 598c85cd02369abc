"""Pytest fixtures for notification engine tests."""

import os
import threading
import time
from collections.abc import Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db, get_transport
from app.db import models  # noqa: F401  # Imported for side effects
from app.db.base import Base
from app.db.models import PushSubscription, User
from app.main import create_app
from app.services.push_transport import PushResult, PushStatus


class FakeTransport:
    """Stand-in for ``PushTransport`` that records deliveries instead of sending them."""

    def __init__(self, delay: float = 0.0):
        self.is_configured = True
        self.delay = delay
        self.outcomes: dict[str, PushResult] = {}
        self.sent: list[tuple[str, object]] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def send(self, target, payload) -> PushResult:
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
        finally:
            with self._lock:
                self._in_flight -= 1
                self.sent.append((target.endpoint, payload))
        return self.outcomes.get(target.endpoint, PushResult(PushStatus.SENT))

    @property
    def payloads(self) -> list:
        return [payload for _, payload in self.sent]


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        db.close()


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def make_user(db_session):
    counter = {"n": 0}

    def _make(university: str | None = "ARU", study_year: str | None = "4", name: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=name or f"User {counter['n']}",
            university=university,
            study_year=study_year,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_subscription(db_session):
    counter = {"n": 0}

    def _make(user: User, endpoint: str | None = None, is_active: bool = True) -> PushSubscription:
        counter["n"] += 1
        subscription = PushSubscription(
            user_id=user.id,
            endpoint=endpoint or f"https://push.example.com/send/{counter['n']}",
            p256dh=f"p256dh-{counter['n']}",
            auth=f"auth-{counter['n']}",
            is_active=is_active,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


@pytest.fixture()
def client(db_session: Session, fake_transport: FakeTransport) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transport] = lambda: fake_transport
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def transport_factory():
    return FakeTransport
