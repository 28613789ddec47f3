"""Tests for the FastAPI case designer REST API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from models.case import Field, View
from models.user import UserProfile
from services.catalog import COLLECT_INFORMATION


# ---------------------------------------------------------------------------
# Override the database dependency for tests
# ---------------------------------------------------------------------------

@pytest.fixture
def app(db):
    """Create a test FastAPI app with DB overridden to use test session."""
    from main import app as _app
    from database import get_db

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    _app.dependency_overrides[get_db] = _override_get_db
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_client(client, api_key):
    client.headers["Authorization"] = f"Bearer {api_key.key}"
    return client


@pytest.fixture
def collect_step(auth_client, case):
    """A stage/process with one "Collect information" step; returns ids."""
    stage = auth_client.post(f"/api/v1/cases/{case.id}/stages/", json={"name": "Intake"}).json()
    process = auth_client.post(
        f"/api/v1/cases/{case.id}/stages/{stage['id']}/processes/", json={"name": "Gather"}
    ).json()
    step = auth_client.post(
        f"/api/v1/cases/{case.id}/stages/{stage['id']}/processes/{process['id']}/steps/",
        json={"name": "Applicant", "type": COLLECT_INFORMATION},
    ).json()
    return {"stage": stage["id"], "process": process["id"], "step": step["id"], "view": step["viewId"]}


# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------

class TestHealthAndAuth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_requires_token(self, client):
        assert client.get("/api/v1/cases/").status_code in (401, 403)

    def test_invalid_token(self, client, api_key):
        client.headers["Authorization"] = "Bearer nope"
        assert client.get("/api/v1/cases/").status_code == 401

    def test_obtain_token(self, client, user_profile):
        resp = client.post("/api/v1/auth/token/", json={"username": "testuser", "password": "testpass"})
        assert resp.status_code == 200
        key = resp.json()["key"]
        client.headers["Authorization"] = f"Bearer {key}"
        assert client.get("/api/v1/auth/me/").json()["username"] == "testuser"

    def test_me_reports_key_usage(self, auth_client, api_key):
        data = auth_client.get("/api/v1/auth/me/").json()
        assert data["display_name"] == "testuser"
        assert data["key_last_used_at"] is not None

    def test_login_rotates_existing_key(self, client, api_key):
        old = api_key.key
        resp = client.post("/api/v1/auth/token/", json={"username": "testuser", "password": "testpass"})
        assert resp.json()["key"] != old
        client.headers["Authorization"] = f"Bearer {old}"
        assert client.get("/api/v1/cases/").status_code == 401

    def test_bad_password(self, client, user_profile):
        resp = client.post("/api/v1/auth/token/", json={"username": "testuser", "password": "wrong"})
        assert resp.status_code == 401

    def test_setup_flow(self, client, db, tmp_path, monkeypatch):
        monkeypatch.setenv("DESIGNER_DIR", str(tmp_path))
        assert client.get("/api/v1/auth/setup-status/").json() == {"needs_setup": True}
        resp = client.post("/api/v1/auth/setup/", json={"username": "admin", "password": "secret"})
        assert resp.status_code == 200
        assert db.query(UserProfile).count() == 1
        assert client.get("/api/v1/auth/setup-status/").json() == {"needs_setup": False}
        again = client.post("/api/v1/auth/setup/", json={"username": "x", "password": "secret"})
        assert again.status_code == 409


# ---------------------------------------------------------------------------
# Catalog / cases
# ---------------------------------------------------------------------------

class TestCases:
    def test_catalog(self, auth_client):
        data = auth_client.get("/api/v1/catalog/").json()
        assert len(data["field_types"]) == 26
        assert any(s["requires_view"] for s in data["step_types"])

    def test_crud(self, auth_client):
        resp = auth_client.post("/api/v1/cases/", json={"name": "Claims", "description": "Insurance claims"})
        assert resp.status_code == 201
        case_id = resp.json()["id"]
        assert resp.json()["model"] == {"stages": []}

        listing = auth_client.get("/api/v1/cases/").json()
        assert listing["total"] == 1

        resp = auth_client.patch(f"/api/v1/cases/{case_id}/", json={"name": "Claims v2"})
        assert resp.json()["name"] == "Claims v2"

        assert auth_client.delete(f"/api/v1/cases/{case_id}/").status_code == 204
        assert auth_client.get(f"/api/v1/cases/{case_id}/").status_code == 404

    def test_description_limit(self, auth_client):
        resp = auth_client.post("/api/v1/cases/", json={"name": "X", "description": "d" * 501})
        assert resp.status_code == 422

    def test_invalid_model_rejected(self, auth_client, case):
        model = {"stages": [{"name": "S", "processes": [{"name": "P", "steps": [
            {"name": "Info", "type": COLLECT_INFORMATION, "viewId": 31},
        ]}]}]}
        resp = auth_client.patch(f"/api/v1/cases/{case.id}/", json={"model": model})
        assert resp.status_code == 422
        assert "31" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Workflow structure
# ---------------------------------------------------------------------------

class TestStructure:
    def test_collect_step_gets_view(self, auth_client, case, collect_step, db):
        view = db.get(View, collect_step["view"])
        assert view.name == "Applicant"
        views = auth_client.get(f"/api/v1/cases/{case.id}/views/").json()
        assert [v["id"] for v in views] == [collect_step["view"]]

    def test_invalid_step_type(self, auth_client, case, collect_step):
        resp = auth_client.post(
            f"/api/v1/cases/{case.id}/stages/{collect_step['stage']}/processes/{collect_step['process']}/steps/",
            json={"name": "X", "type": "Teleport"},
        )
        assert resp.status_code == 422

    def test_rename_and_delete_step(self, auth_client, case, collect_step):
        resp = auth_client.patch(
            f"/api/v1/cases/{case.id}/steps/{collect_step['step']}/", json={"name": "Borrower"}
        )
        assert resp.status_code == 200
        view = auth_client.get(f"/api/v1/views/{collect_step['view']}/").json()
        assert view["name"] == "Borrower"

        resp = auth_client.delete(f"/api/v1/cases/{case.id}/steps/{collect_step['step']}/")
        assert resp.json() == {"deleted_view_ids": [collect_step["view"]]}
        assert auth_client.get(f"/api/v1/views/{collect_step['view']}/").status_code == 404

    def test_reorder_stages(self, auth_client, case, collect_step):
        auth_client.post(f"/api/v1/cases/{case.id}/stages/", json={"name": "Review"})
        resp = auth_client.post(f"/api/v1/cases/{case.id}/stages/reorder/", json={"start": 1, "end": 0})
        assert [s["name"] for s in resp.json()["model"]["stages"]] == ["Review", "Intake"]

    def test_reorder_out_of_range(self, auth_client, case, collect_step):
        resp = auth_client.post(f"/api/v1/cases/{case.id}/stages/reorder/", json={"start": 0, "end": 4})
        assert resp.status_code == 422

    def test_unknown_stage(self, auth_client, case):
        resp = auth_client.patch(f"/api/v1/cases/{case.id}/stages/missing/", json={"name": "X"})
        assert resp.status_code == 422

    def test_step_fields_and_preview(self, auth_client, case, collect_step, make_field):
        make_field(case, "email", "Email")
        resp = auth_client.post(
            f"/api/v1/cases/{case.id}/steps/{collect_step['step']}/fields/",
            json={"field_names": ["email", "ghost"]},
        )
        assert resp.status_code == 200
        assert resp.json()["unresolved"] == ["ghost"]

        preview = auth_client.get(f"/api/v1/cases/{case.id}/preview/").json()
        step = preview["stages"][0]["processes"][0]["steps"][0]
        assert [f["name"] for f in step["fields"]] == ["email"]

    def test_checkpoints_and_restore(self, auth_client, case, collect_step):
        checkpoints = auth_client.get(f"/api/v1/cases/{case.id}/checkpoints/").json()
        assert checkpoints[0]["description"] == "Added step: Applicant"
        stage_only = next(cp for cp in checkpoints if cp["description"] == "Added stage: Intake")

        resp = auth_client.post(f"/api/v1/cases/{case.id}/checkpoints/{stage_only['id']}/restore/")
        assert resp.status_code == 200
        assert resp.json()["case"]["model"]["stages"][0]["processes"] == []

    def test_restore_unknown_checkpoint(self, auth_client, case):
        resp = auth_client.post(f"/api/v1/cases/{case.id}/checkpoints/999/restore/")
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Fields / views
# ---------------------------------------------------------------------------

class TestFields:
    def test_create_and_conflict(self, auth_client, case):
        body = {"case_id": case.id, "label": "Loan Amount", "type": "Currency"}
        resp = auth_client.post("/api/v1/fields/", json=body)
        assert resp.status_code == 201
        assert resp.json()["name"] == "loan_amount"
        assert auth_client.post("/api/v1/fields/", json=body).status_code == 409

    def test_invalid_type(self, auth_client, case):
        resp = auth_client.post("/api/v1/fields/", json={"case_id": case.id, "label": "X", "type": "Str"})
        assert resp.status_code == 422

    def test_list_and_update(self, auth_client, case, make_field):
        field = make_field(case, "color", "Dropdown", options=["Red"])
        resp = auth_client.patch(f"/api/v1/fields/{field.id}/", json={"label": "Colour"})
        assert resp.json()["options"] == ["Red"]
        listing = auth_client.get("/api/v1/fields/", params={"case_id": case.id}).json()
        assert [f["label"] for f in listing] == ["Colour"]

    def test_delete_reports_views(self, auth_client, case, make_field, make_view, db):
        field = make_field(case, "email", "Email")
        make_view(case, "Contact", [field.id])
        resp = auth_client.delete(f"/api/v1/fields/{field.id}/")
        assert resp.json() == {"deleted_id": field.id, "deleted_name": "email", "updated_views_count": 1}
        assert db.query(Field).count() == 0

    def test_reorder(self, auth_client, case, make_field):
        make_field(case, "a_field", order=1)
        make_field(case, "b_field", order=2)
        resp = auth_client.post("/api/v1/fields/reorder/", json={"case_id": case.id, "start": 1, "end": 0})
        assert [f["name"] for f in resp.json()] == ["b_field", "a_field"]


class TestViews:
    def test_create_and_link(self, auth_client, case, make_field):
        field = make_field(case, "email", "Email")
        resp = auth_client.post("/api/v1/views/", json={"case_id": case.id, "name": "Contact"})
        assert resp.status_code == 201
        view_id = resp.json()["id"]

        resp = auth_client.post(f"/api/v1/views/{view_id}/fields/", json={"field_names": ["email"]})
        assert resp.json()["view"]["model"]["fields"][0]["fieldId"] == field.id

        resp = auth_client.patch(f"/api/v1/views/{view_id}/fields/{field.id}/", json={"required": True})
        assert resp.json()["model"]["fields"][0]["required"] is True

        resp = auth_client.delete(f"/api/v1/views/{view_id}/fields/{field.id}/")
        assert resp.json()["model"]["fields"] == []
        assert auth_client.delete(f"/api/v1/views/{view_id}/fields/{field.id}/").status_code == 404

    def test_unknown_field_reference(self, auth_client, case):
        resp = auth_client.post(
            "/api/v1/views/",
            json={"case_id": case.id, "name": "Contact", "model": {"fields": [{"fieldId": 5}]}},
        )
        assert resp.status_code == 422

    def test_delete_unlinks_step(self, auth_client, case, collect_step):
        resp = auth_client.delete(f"/api/v1/views/{collect_step['view']}/")
        assert resp.json()["unlinked_steps"] == [collect_step["step"]]
        case_data = auth_client.get(f"/api/v1/cases/{case.id}/").json()
        assert "viewId" not in case_data["model"]["stages"][0]["processes"][0]["steps"][0]


# ---------------------------------------------------------------------------
# Database panel
# ---------------------------------------------------------------------------

class TestDatabasePanel:
    def test_list_tables(self, auth_client, case, make_field, make_view):
        make_field(case, "email")
        make_view(case, "Contact")
        fields = auth_client.get("/api/v1/database/", params={"table": "fields"}).json()
        assert fields["table"] == "fields"
        assert [r["name"] for r in fields["rows"]] == ["email"]
        views = auth_client.get("/api/v1/database/", params={"table": "views", "case_id": case.id}).json()
        assert [r["name"] for r in views["rows"]] == ["Contact"]

    def test_unknown_table(self, auth_client):
        assert auth_client.get("/api/v1/database/", params={"table": "users"}).status_code == 422

    def test_reset(self, auth_client, case, db):
        resp = auth_client.post("/api/v1/database/reset/")
        assert resp.json() == {"success": True, "tables": ["cases", "fields", "views", "case_checkpoints"]}
        assert db.query(UserProfile).count() == 1
        assert auth_client.get(f"/api/v1/cases/{case.id}/").status_code == 404
