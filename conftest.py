"""Root conftest — shared fixtures for all designer tests."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

# Ensure the project root is on sys.path
_root_dir = str(Path(__file__).resolve().parent)
if _root_dir not in sys.path:
    sys.path.insert(0, _root_dir)

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401: register all models with Base

# Use in-memory SQLite for tests: StaticPool ensures all connections share the same DB
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(TEST_ENGINE, "connect")
def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture(autouse=True)
def redis_publish():
    """Keep broadcasts off the network; yields the mock client."""
    client = MagicMock()
    with patch("ws.broadcast.redis_lib.from_url", return_value=client):
        yield client


@pytest.fixture
def db():
    """Yield a test database session."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user_profile(db):
    import bcrypt
    from models.user import UserProfile

    profile = UserProfile(
        username="testuser",
        password_hash=bcrypt.hashpw(b"testpass", bcrypt.gensalt()).decode(),
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def api_key(db, user_profile):
    from models.user import APIKey

    key = APIKey(user_id=user_profile.id)
    db.add(key)
    db.commit()
    db.refresh(key)
    return key


@pytest.fixture
def case(db):
    from models.case import Case

    c = Case(name="Loan Application", description="Apply for a personal loan", model={"stages": []})
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def make_field(db):
    """Factory: ``make_field(case, "email", "Email")``."""
    from models.case import Field

    def _make(case, name, type="Text", **kwargs):
        field = Field(
            case_id=case.id,
            name=name,
            type=type,
            label=kwargs.pop("label", name.replace("_", " ").title()),
            **kwargs,
        )
        db.add(field)
        db.commit()
        db.refresh(field)
        return field

    return _make


@pytest.fixture
def make_view(db):
    """Factory: ``make_view(case, "Applicant Details", [field.id, ...])``."""
    from models.case import View

    def _make(case, name, field_ids=()):
        view = View(
            case_id=case.id,
            name=name,
            model={
                "fields": [
                    {"fieldId": fid, "required": False, "order": i}
                    for i, fid in enumerate(field_ids, start=1)
                ],
                "layout": {"type": "form", "columns": 1},
            },
        )
        db.add(view)
        db.commit()
        db.refresh(view)
        return view

    return _make
