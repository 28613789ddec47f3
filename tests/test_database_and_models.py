"""Tests for database.py helpers and the SQLAlchemy models."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from database import init_db, reset_database
from models.case import Case, Field, View
from models.checkpoint import CaseCheckpoint
from models.user import UserProfile


@pytest.fixture
def scratch_engine():
    engine = create_engine("sqlite:///:memory:", poolclass=StaticPool)
    yield engine
    engine.dispose()


class TestInitAndReset:
    def test_init_db_creates_tables(self, scratch_engine):
        init_db(scratch_engine)
        tables = set(inspect(scratch_engine).get_table_names())
        assert {"user_profiles", "api_keys", "cases", "fields", "views", "case_checkpoints"} <= tables

    def test_reset_keeps_users(self, db, user_profile, case):
        db.close()
        tables = reset_database(db.get_bind())
        assert tables == ["cases", "fields", "views", "case_checkpoints"]
        assert db.query(UserProfile).count() == 1
        assert db.query(Case).count() == 0


class TestModels:
    def test_defaults(self, db, case):
        view = View(case_id=case.id, name="Empty")
        field = Field(case_id=case.id, name="email", type="Email", label="Email")
        db.add_all([view, field])
        db.commit()
        assert view.model == {"fields": [], "layout": {"type": "form", "columns": 1}}
        assert field.options == []
        assert field.required is False
        assert field.default_value is None

    def test_field_name_unique_per_case(self, db, case, make_field):
        make_field(case, "email")
        db.add(Field(case_id=case.id, name="email", type="Text", label="Again"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_case_delete_cascades(self, db, case, make_field, make_view):
        make_field(case, "email")
        make_view(case, "Contact")
        db.add(CaseCheckpoint(case_id=case.id, description="x", model={"stages": []}))
        db.commit()
        db.delete(case)
        db.commit()
        assert db.query(Field).count() == 0
        assert db.query(View).count() == 0
        assert db.query(CaseCheckpoint).count() == 0

    def test_reprs(self, case, make_field):
        assert repr(case) == f"<Case {case.id} 'Loan Application'>"
        assert repr(make_field(case, "email", "Email")) == f"<Field email (Email) case={case.id}>"
