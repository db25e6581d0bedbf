"""Shared fixtures: in-memory SQLite database, API client and factories.

Settings are read at import time, so the environment is prepared before
anything under ``app`` is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token, hash_password
from app.db.session import Base, get_db
from app.main import app
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.models.floor import Floor
from app.models.transaction import Transaction  # noqa: F401
from app.models.user import User
from app.services import email_service

PASSWORD = "correct-horse-battery"
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP/SendGrid."""
    sent = []

    def _send(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _send)
    return sent


@pytest.fixture
def now():
    return datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_user(db):
    def _make(email=None, wallet=0, due_amount=0, role="user", is_special_pass=False, name="Test Driver"):
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            name=name,
            phone="",
            role=role,
            password_hash=_PASSWORD_HASH,
            is_active=True,
            is_special_pass=is_special_pass,
            wallet=wallet,
            due_amount=due_amount,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_floor(db):
    def _make(name="Level 1", normal_spots=10, disability_spots=2, is_active=True, level=1):
        floor = Floor(
            id=str(uuid.uuid4()),
            name=name,
            level=level,
            normal_spots=normal_spots,
            disability_spots=disability_spots,
            is_active=is_active,
        )
        db.add(floor)
        db.commit()
        return floor

    return _make


@pytest.fixture
def user(make_user):
    return make_user(email="driver@example.com", wallet=100)


@pytest.fixture
def floor(make_floor):
    return make_floor()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin", name="Admin")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}
