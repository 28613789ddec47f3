"""Tests for services/tools.py — the validated CRUD tool registry."""

from __future__ import annotations

import json

import pytest

from logging_config import case_id_var, tool_name_var
from models.case import Case, Field, View
from services.catalog import COLLECT_INFORMATION
from services.tools import (
    TOOL_REGISTRY,
    ToolError,
    execute_tool,
    get_tool,
    summarize_tool_result,
)


# ── Registry ──────────────────────────────────────────────────────────────────

class TestRegistry:
    def test_all_tools_registered(self):
        assert set(TOOL_REGISTRY) == {
            "saveCase", "deleteCase", "getCase",
            "saveField", "deleteField", "listFields",
            "saveView", "deleteView", "listViews",
        }

    def test_schema_shape(self):
        schema = get_tool("saveField").schema()
        assert schema["name"] == "saveField"
        assert schema["parameters"]["required"] == ["name", "type", "caseID", "label"]
        assert "Text" in schema["parameters"]["properties"]["type"]["enum"]

    def test_unknown_tool(self, db):
        with pytest.raises(KeyError, match="Unknown tool"):
            get_tool("dropTables")
        with pytest.raises(ToolError, match="Tool dropTables not found"):
            execute_tool(db, "dropTables", {})

    def test_params_must_be_object(self, db):
        with pytest.raises(ToolError, match="expects an object"):
            execute_tool(db, "listFields", ["caseID", 1])

    def test_context_vars_reset(self, db, case):
        execute_tool(db, "listFields", {"caseID": case.id})
        assert case_id_var.get() == ""
        assert tool_name_var.get() == ""


# ── Cases ─────────────────────────────────────────────────────────────────────

class TestCaseTools:
    def test_create_case(self, db):
        result = execute_tool(db, "saveCase", {
            "name": "Onboarding", "description": "New hire onboarding", "model": {"stages": []},
        })
        assert result["name"] == "Onboarding"
        assert db.get(Case, result["id"]) is not None

    def test_model_required(self, db):
        with pytest.raises(ToolError, match="model is required for saveCase"):
            execute_tool(db, "saveCase", {"name": "X", "description": "Y"})

    def test_name_must_be_text(self, db):
        with pytest.raises(ToolError, match="name must be a string for saveCase"):
            execute_tool(db, "saveCase", {"name": 5, "description": "Y", "model": {}})

    def test_name_required(self, db):
        with pytest.raises(ToolError, match="name is required for saveCase"):
            execute_tool(db, "saveCase", {"description": "Y", "model": {}})

    def test_update_case_with_view(self, db, case, make_view):
        view = make_view(case, "Applicant")
        model = {"stages": [{"id": "s1", "name": "Intake", "processes": [{"id": "p1", "name": "Gather", "steps": [
            {"id": "st1", "name": "Applicant", "type": COLLECT_INFORMATION, "viewId": view.id},
        ]}]}]}
        result = execute_tool(db, "saveCase", {
            "id": case.id, "name": case.name, "description": case.description, "model": model,
        })
        assert result["model"]["stages"][0]["processes"][0]["steps"][0]["viewId"] == view.id

    def test_update_rejects_step_fields(self, db, case):
        model = {"stages": [{"name": "S", "processes": [{"name": "P", "steps": [
            {"name": "Info", "type": COLLECT_INFORMATION, "fields": [{"fieldId": 1}]},
        ]}]}]}
        with pytest.raises(ToolError, match="fields array"):
            execute_tool(db, "saveCase", {
                "id": case.id, "name": case.name, "description": "d", "model": model,
            })
        db.refresh(case)
        assert case.model == {"stages": []}

    def test_update_rejects_missing_view(self, db, case):
        model = {"stages": [{"name": "S", "processes": [{"name": "P", "steps": [
            {"name": "Info", "type": COLLECT_INFORMATION, "viewId": 404},
        ]}]}]}
        with pytest.raises(ToolError, match="404"):
            execute_tool(db, "saveCase", {"id": case.id, "name": "n", "description": "d", "model": model})

    def test_update_unknown_case(self, db):
        with pytest.raises(ToolError, match="No case found with id 77"):
            execute_tool(db, "saveCase", {"id": 77, "name": "n", "description": "d", "model": {}})

    def test_get_case_includes_steps(self, db, case, make_view):
        view = make_view(case, "Applicant")
        case.model = {"stages": [{"id": 1, "name": "Intake", "processes": [{"id": 2, "name": "Gather", "steps": [
            {"id": 3, "name": "Applicant", "type": COLLECT_INFORMATION, "viewId": view.id},
        ]}]}]}
        db.commit()
        result = execute_tool(db, "getCase", {"id": case.id})
        assert result["steps"] == [{
            "id": 3, "name": "Applicant", "type": COLLECT_INFORMATION,
            "stage": "Intake", "process": "Gather", "viewId": view.id,
        }]

    def test_delete_case(self, db, case):
        result = execute_tool(db, "deleteCase", {"id": case.id})
        assert result == {
            "success": True, "deletedId": case.id, "deletedName": "Loan Application", "type": "case",
        }
        assert db.query(Case).count() == 0


# ── Fields ────────────────────────────────────────────────────────────────────

class TestFieldTools:
    def _save(self, db, case, **overrides):
        params = {"name": "email", "type": "Email", "caseID": case.id, "label": "Email Address"}
        params.update(overrides)
        return execute_tool(db, "saveField", params)

    def test_create(self, db, case):
        result = self._save(db, case, options='["a", "b"]', required=True)
        assert result["caseID"] == case.id
        assert result["options"] == ["a", "b"]
        assert result["required"] is True
        assert result["description"] == "Email Address"

    def test_existing_name_returns_existing(self, db, case, make_field):
        existing = make_field(case, "email", "Email")
        result = self._save(db, case, label="Other Label")
        assert result["id"] == existing.id
        assert db.query(Field).count() == 1

    def test_invalid_type(self, db, case):
        with pytest.raises(ToolError, match='Invalid field type "Str"'):
            self._save(db, case, type="Str")

    def test_invalid_name(self, db, case):
        with pytest.raises(ToolError, match='Invalid field name "Email Address"'):
            self._save(db, case, name="Email Address")

    @pytest.mark.parametrize("overrides, message", [
        ({"name": 123}, "name must be a string for saveField, got int"),
        ({"type": ["Text"]}, "type must be a string for saveField, got list"),
        ({"label": {"en": "Email"}}, "label must be a string for saveField, got dict"),
    ])
    def test_wrong_value_types(self, db, case, overrides, message):
        with pytest.raises(ToolError, match=message):
            self._save(db, case, **overrides)
        assert db.query(Field).count() == 0

    def test_missing_case(self, db):
        with pytest.raises(ToolError, match="No case found with id 9"):
            execute_tool(db, "saveField", {"name": "x", "type": "Text", "caseID": 9, "label": "X"})

    def test_bad_options(self, db, case):
        with pytest.raises(ToolError, match="options"):
            self._save(db, case, options="[not json")

    def test_update(self, db, case, make_field):
        field = make_field(case, "email", "Email", options=["keep"])
        result = self._save(db, case, id=field.id, name="work_email", label="Work Email")
        assert result["name"] == "work_email"
        assert result["options"] == ["keep"]

    def test_update_rename_clash(self, db, case, make_field):
        make_field(case, "email", "Email")
        phone = make_field(case, "phone", "Phone")
        with pytest.raises(ToolError, match='Field "email" already exists'):
            self._save(db, case, id=phone.id, type="Phone")

    def test_update_other_case(self, db, case, make_field):
        other = Case(name="Other", description="x", model={"stages": []})
        db.add(other)
        db.commit()
        foreign = make_field(other, "phone", "Phone")
        with pytest.raises(ToolError, match=f"Field {foreign.id} does not belong to case {case.id}"):
            self._save(db, case, id=foreign.id, name="phone")

    def test_list_fields(self, db, case, make_field):
        make_field(case, "b_field", order=1)
        make_field(case, "a_field", order=1)
        make_field(case, "first", order=0)
        result = execute_tool(db, "listFields", {"caseID": case.id})
        assert [f["name"] for f in result] == ["first", "a_field", "b_field"]

    def test_delete_field_updates_views(self, db, case, make_field, make_view):
        field = make_field(case, "email", "Email")
        view = make_view(case, "Contact", [field.id])
        result = execute_tool(db, "deleteField", {"id": field.id})
        assert result["updatedViewsCount"] == 1
        assert result["deletedName"] == "email"
        db.refresh(view)
        assert view.model["fields"] == []

    def test_delete_missing_field(self, db):
        with pytest.raises(ToolError, match="No field found with id 5"):
            execute_tool(db, "deleteField", {"id": 5})


# ── Views ─────────────────────────────────────────────────────────────────────

class TestViewTools:
    def test_create_view(self, db, case, make_field):
        field = make_field(case, "email", "Email")
        result = execute_tool(db, "saveView", {
            "name": "Contact", "caseID": case.id,
            "model": {"fields": [{"fieldId": field.id, "required": True, "order": 1}]},
        })
        assert result["model"]["layout"] == {"type": "form", "columns": 1}
        assert db.get(View, result["id"]).name == "Contact"

    def test_create_view_unknown_field(self, db, case):
        with pytest.raises(ToolError, match="Field with id 123 not found"):
            execute_tool(db, "saveView", {
                "name": "Contact", "caseID": case.id, "model": {"fields": [{"fieldId": 123}]},
            })
        assert db.query(View).count() == 0

    def test_update_view_wrong_case(self, db, case, make_view):
        other = Case(name="Other", description="x", model={"stages": []})
        db.add(other)
        db.commit()
        view = make_view(other, "Theirs")
        with pytest.raises(ToolError, match="does not belong"):
            execute_tool(db, "saveView", {"id": view.id, "name": "Mine", "caseID": case.id, "model": {}})

    def test_delete_view_unlinks_steps(self, db, case, make_view):
        view = make_view(case, "Applicant")
        case.model = {"stages": [{"id": 1, "name": "Intake", "processes": [{"id": 2, "name": "Gather", "steps": [
            {"id": 3, "name": "Applicant", "type": COLLECT_INFORMATION, "viewId": view.id},
        ]}]}]}
        db.commit()
        result = execute_tool(db, "deleteView", {"id": view.id})
        assert result["unlinkedSteps"] == [3]
        db.refresh(case)
        assert "viewId" not in case.model["stages"][0]["processes"][0]["steps"][0]

    def test_list_views(self, db, case, make_view):
        make_view(case, "Zeta")
        make_view(case, "Alpha")
        result = execute_tool(db, "listViews", {"caseID": case.id})
        assert [v["name"] for v in result] == ["Alpha", "Zeta"]


# ── summarize_tool_result ─────────────────────────────────────────────────────

class TestSummarize:
    def test_lists(self):
        assert summarize_tool_result([]) == "No items found"
        assert summarize_tool_result([{}]) == "Found 1 item"
        assert summarize_tool_result(json.dumps([{}, {}])) == "Found 2 items"

    def test_deletes(self):
        assert summarize_tool_result({
            "success": True, "deletedId": 4, "deletedName": "email", "type": "field", "updatedViewsCount": 2,
        }) == "Deleted field 'email' (removed from 2 views)"
        assert summarize_tool_result({
            "success": True, "deletedId": 4, "deletedName": "Contact", "type": "view",
        }) == "Deleted view 'Contact'"
        assert summarize_tool_result({"success": True, "deletedId": 4}) == "Item with ID 4 deleted successfully"

    def test_saves(self):
        assert summarize_tool_result(
            {"id": 1, "name": "email", "type": "Email", "caseID": 2}
        ) == "Field 'email' of type Email saved successfully"
        assert summarize_tool_result(
            {"id": 1, "name": "Contact", "caseID": 2, "model": {}}
        ) == "View 'Contact' saved successfully"
        assert summarize_tool_result(
            {"id": 1, "name": "Loans", "description": "d", "model": {}}
        ) == "Case 'Loans' saved successfully"

    def test_fallbacks(self):
        assert summarize_tool_result("plain text") == "plain text"
        assert summarize_tool_result({"error": "boom"}) == "Error: boom"
        assert summarize_tool_result({"message": "hi"}) == "hi"
