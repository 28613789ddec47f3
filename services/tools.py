"""Validated CRUD tools shared by the chat assistant and the MCP endpoint.

Each tool is a ``DesignerTool`` registered under its camelCase name. The
JSON-schema ``parameters`` are what the LLM (or an MCP client) sees;
``execute`` validates the call, runs it against the database through
``services.designer`` and returns a JSON-serializable result. Validation
failures raise ``ToolError`` with a message written for the model to read
and correct itself.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from logging_config import log_context
from models.case import Case, Field, View
from services import designer
from services.catalog import FIELD_TYPES, is_field_type, is_valid_field_name
from services.workflow_model import ModelError, parse_model, step_summaries

logger = logging.getLogger(__name__)


class ToolError(ValueError):
    """A tool call was rejected; the message is returned to the caller."""


@dataclass
class DesignerTool:
    name: str
    description: str
    parameters: dict
    handler: Callable[[Session, dict], Any]

    def schema(self) -> dict:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    def execute(self, db: Session, params: dict | None) -> Any:
        params = params or {}
        if not isinstance(params, dict):
            raise ToolError(f"{self.name} expects an object of parameters")
        case_id = params.get("caseID") or (params.get("id") if self.name.endswith("Case") else None)
        with log_context(case_id=case_id, tool_name=self.name):
            return self._run(db, params)

    def _run(self, db: Session, params: dict) -> Any:
        try:
            logger.info("Executing tool with params: %s", _truncate(params))
            result = self.handler(db, params)
            logger.info("Tool succeeded")
            return result
        except ToolError:
            db.rollback()
            raise
        except (ModelError, designer.DesignerError) as exc:
            db.rollback()
            raise ToolError(str(exc)) from exc
        except IntegrityError as exc:
            db.rollback()
            raise ToolError(f"Database constraint violated: {exc.orig}") from exc
        except (TypeError, ValueError) as exc:
            db.rollback()
            raise ToolError(str(exc)) from exc


TOOL_REGISTRY: dict[str, DesignerTool] = {}


def register(name: str, description: str, parameters: dict):
    """Decorator to register a tool handler under *name*."""

    def decorator(handler):
        TOOL_REGISTRY[name] = DesignerTool(name, description, parameters, handler)
        return handler

    return decorator


def get_tool(name: str) -> DesignerTool:
    if name not in TOOL_REGISTRY:
        raise KeyError(
            f"Unknown tool: '{name}'. Registered tools: {sorted(TOOL_REGISTRY.keys())}"
        )
    return TOOL_REGISTRY[name]


def get_tools() -> list[DesignerTool]:
    return list(TOOL_REGISTRY.values())


def execute_tool(db: Session, name: str, params: dict | None) -> Any:
    try:
        tool = get_tool(name)
    except KeyError as exc:
        raise ToolError(f"Tool {name} not found") from exc
    return tool.execute(db, params)


def _truncate(value: Any, limit: int = 500) -> str:
    text = json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _require(tool: str, params: dict, *keys: str) -> None:
    for key in keys:
        value = params.get(key)
        if value is None or value == "":
            raise ToolError(f"{key} is required for {tool}")


def _require_text(tool: str, params: dict, *keys: str) -> None:
    _require(tool, params, *keys)
    for key in keys:
        if not isinstance(params[key], str):
            raise ToolError(f"{key} must be a string for {tool}, got {type(params[key]).__name__}")


def _as_int(tool: str, params: dict, key: str) -> int:
    value = params.get(key)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ToolError(f"{key} must be an integer for {tool}, got {value!r}") from exc


def _get_case(db: Session, case_id: int) -> Case:
    case = db.get(Case, case_id)
    if case is None:
        raise ToolError(f"No case found with id {case_id}")
    return case


def _parse_options(raw: Any) -> list:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolError(f"options must be a JSON array of strings: {exc}") from exc
    if not isinstance(raw, list):
        raise ToolError("options must be an array of strings")
    return raw


def _case_result(case: Case) -> dict:
    return {
        "id": case.id,
        "name": case.name,
        "description": case.description,
        "model": case.model,
    }


def _field_result(field: Field) -> dict:
    return {
        "id": field.id,
        "name": field.name,
        "type": field.type,
        "caseID": field.case_id,
        "label": field.label,
        "description": field.description,
        "order": field.order,
        "options": field.options or [],
        "required": field.required,
        "primary": field.primary,
        "defaultValue": field.default_value,
    }


def _view_result(view: View) -> dict:
    return {"id": view.id, "name": view.name, "caseID": view.case_id, "model": view.model}


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


@register(
    "saveCase",
    "Creates a new case or updates an existing one. The model holds the workflow "
    "structure (stages, processes, steps). Create fields and views first; steps of "
    'type "Collect information" must reference a view through viewId. Never put a '
    "fields array inside a step.",
    {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "description": "Case ID (omit to create a new case)"},
            "name": {"type": "string", "description": "Case name"},
            "description": {"type": "string", "description": "Case description"},
            "model": {
                "type": "object",
                "description": "Workflow model with stages array",
                "properties": {"stages": {"type": "array", "items": {"type": "object"}}},
            },
        },
        "required": ["name", "description", "model"],
    },
)
def save_case(db: Session, params: dict) -> dict:
    _require_text("saveCase", params, "name", "description")
    if params.get("model") is None:
        raise ToolError("model is required for saveCase")
    model = parse_model(params["model"])

    if params.get("id") is not None:
        case = _get_case(db, _as_int("saveCase", params, "id"))
        case = designer.update_case(
            db,
            case,
            name=params["name"],
            description=params["description"],
            model=model,
            change="Updated by assistant",
        )
    else:
        case = designer.create_case(db, params["name"], params["description"], model)
    return _case_result(case)


@register(
    "deleteCase",
    "Deletes a case together with all of its fields, views and history.",
    {
        "type": "object",
        "properties": {"id": {"type": "integer", "description": "Case ID to delete"}},
        "required": ["id"],
    },
)
def delete_case(db: Session, params: dict) -> dict:
    _require("deleteCase", params, "id")
    case_id = _as_int("deleteCase", params, "id")
    case = _get_case(db, case_id)
    name = case.name
    designer.delete_case(db, case)
    return {"success": True, "deletedId": case_id, "deletedName": name, "type": "case"}


@register(
    "getCase",
    "Returns a case with its workflow model and a flat list of its steps.",
    {
        "type": "object",
        "properties": {"id": {"type": "integer", "description": "Case ID"}},
        "required": ["id"],
    },
)
def get_case(db: Session, params: dict) -> dict:
    _require("getCase", params, "id")
    case = _get_case(db, _as_int("getCase", params, "id"))
    result = _case_result(case)
    result["steps"] = step_summaries(designer.case_model(case))
    return result


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


@register(
    "saveField",
    "Creates a new field or updates an existing one. Fields are data containers "
    "that hold information; they are not workflow steps. If a field with the same "
    "name already exists in the case, the existing field is returned.",
    {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "description": "Field ID (omit to create a new field)"},
            "name": {"type": "string", "description": "Field name (camelCase or snake_case, starts with a letter)"},
            "type": {"type": "string", "enum": list(FIELD_TYPES), "description": "Field type"},
            "caseID": {"type": "integer", "description": "ID of the case this field belongs to"},
            "label": {"type": "string", "description": "Display label"},
            "description": {"type": "string", "description": "Field description"},
            "order": {"type": "integer", "description": "Display order"},
            "options": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Choices for Dropdown, RadioButtons and Checkbox fields",
            },
            "required": {"type": "boolean", "description": "Whether the field is required"},
            "primary": {"type": "boolean", "description": "Whether this is a primary field"},
        },
        "required": ["name", "type", "caseID", "label"],
    },
)
def save_field(db: Session, params: dict) -> dict:
    _require("saveField", params, "caseID")
    _require_text("saveField", params, "name", "type", "label")
    name = params["name"]
    field_type = params["type"]
    if not is_field_type(field_type):
        raise ToolError(f'Invalid field type "{field_type}". Must be one of: {", ".join(FIELD_TYPES)}')
    if not is_valid_field_name(name):
        raise ToolError(
            f'Invalid field name "{name}". Names must start with a lowercase letter and '
            "contain only letters, digits and underscores."
        )
    case = _get_case(db, _as_int("saveField", params, "caseID"))
    existing = designer.find_field_by_name(db, case.id, name)

    if params.get("id") is None:
        if existing is not None:
            logger.info("Field %s already exists in case %s, returning it", name, case.id)
            return _field_result(existing)
        field = designer.create_field(
            db,
            case,
            name=name,
            type=field_type,
            label=params["label"],
            description=params.get("description"),
            order=params.get("order") or 0,
            options=_parse_options(params.get("options")),
            required=bool(params.get("required", False)),
            primary=bool(params.get("primary", False)),
        )
        return _field_result(field)

    field_id = _as_int("saveField", params, "id")
    field = db.get(Field, field_id)
    if field is None:
        raise ToolError(f"No field found with id {field_id}")
    if field.case_id != case.id:
        raise ToolError(f"Field {field_id} does not belong to case {case.id}")
    if existing is not None and existing.id != field.id:
        raise ToolError(f'Field "{name}" already exists in case {case.id}')
    changes: dict[str, Any] = {"name": name, "type": field_type, "label": params["label"]}
    for key in ("description", "order", "required", "primary"):
        if params.get(key) is not None:
            changes[key] = params[key]
    if "options" in params:
        changes["options"] = _parse_options(params["options"])
    return _field_result(designer.update_field(db, field, changes))


@register(
    "deleteField",
    "Deletes a field and removes it from every view that references it.",
    {
        "type": "object",
        "properties": {"id": {"type": "integer", "description": "Field ID to delete"}},
        "required": ["id"],
    },
)
def delete_field(db: Session, params: dict) -> dict:
    _require("deleteField", params, "id")
    field_id = _as_int("deleteField", params, "id")
    field = db.get(Field, field_id)
    if field is None:
        raise ToolError(f"No field found with id {field_id}")
    name = field.name
    updated_views = designer.delete_field(db, field)
    return {
        "success": True,
        "deletedId": field_id,
        "deletedName": name,
        "type": "field",
        "updatedViewsCount": updated_views,
    }


@register(
    "listFields",
    "Lists all fields of a case, ordered by display order then name.",
    {
        "type": "object",
        "properties": {"caseID": {"type": "integer", "description": "Case ID"}},
        "required": ["caseID"],
    },
)
def list_fields(db: Session, params: dict) -> list[dict]:
    _require("listFields", params, "caseID")
    case = _get_case(db, _as_int("listFields", params, "caseID"))
    return [_field_result(f) for f in designer.list_fields(db, case.id)]


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@register(
    "saveView",
    "Creates a new view or updates an existing one. A view groups field references "
    "for a Collect information step: "
    '{"fields": [{"fieldId": 1, "required": true, "order": 1}], "layout": {"type": "form", "columns": 1}}.',
    {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "description": "View ID (omit to create a new view)"},
            "name": {"type": "string", "description": "View name"},
            "caseID": {"type": "integer", "description": "ID of the case this view belongs to"},
            "model": {
                "type": "object",
                "description": "View model with fields and layout",
                "properties": {
                    "fields": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "fieldId": {"type": "integer"},
                                "required": {"type": "boolean"},
                                "order": {"type": "integer"},
                            },
                            "required": ["fieldId"],
                        },
                    },
                    "layout": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": ["form", "table", "card"]},
                            "columns": {"type": "integer"},
                        },
                    },
                },
            },
        },
        "required": ["name", "caseID", "model"],
    },
)
def save_view(db: Session, params: dict) -> dict:
    _require("saveView", params, "caseID")
    _require_text("saveView", params, "name")
    if params.get("model") is None:
        raise ToolError("model is required for saveView")
    case = _get_case(db, _as_int("saveView", params, "caseID"))

    if params.get("id") is None:
        view = designer.create_view(db, case, params["name"], params["model"])
        return _view_result(view)

    view_id = _as_int("saveView", params, "id")
    view = db.get(View, view_id)
    if view is None:
        raise ToolError(f"No view found with id {view_id}")
    if view.case_id != case.id:
        raise ToolError(f"View {view_id} does not belong to case {case.id}")
    return _view_result(designer.update_view(db, view, name=params["name"], model=params["model"]))


@register(
    "deleteView",
    "Deletes a view and unlinks it from any step that references it.",
    {
        "type": "object",
        "properties": {"id": {"type": "integer", "description": "View ID to delete"}},
        "required": ["id"],
    },
)
def delete_view(db: Session, params: dict) -> dict:
    _require("deleteView", params, "id")
    view_id = _as_int("deleteView", params, "id")
    view = db.get(View, view_id)
    if view is None:
        raise ToolError(f"No view found with id {view_id}")
    name = view.name
    unlinked = designer.delete_view(db, view)
    return {
        "success": True,
        "deletedId": view_id,
        "deletedName": name,
        "type": "view",
        "unlinkedSteps": unlinked,
    }


@register(
    "listViews",
    "Lists all views of a case, ordered by name.",
    {
        "type": "object",
        "properties": {"caseID": {"type": "integer", "description": "Case ID"}},
        "required": ["caseID"],
    },
)
def list_views(db: Session, params: dict) -> list[dict]:
    _require("listViews", params, "caseID")
    case = _get_case(db, _as_int("listViews", params, "caseID"))
    return [_view_result(v) for v in designer.list_views(db, case.id)]


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def summarize_tool_result(result: Any) -> str:
    """One-line, human-readable description of a tool result for the chat log."""
    if isinstance(result, str):
        try:
            result = json.loads(result)
        except json.JSONDecodeError:
            return result
    if isinstance(result, list):
        if not result:
            return "No items found"
        return f"Found {len(result)} item{'' if len(result) == 1 else 's'}"
    if not isinstance(result, dict):
        return str(result)

    if result.get("success") and result.get("deletedId") is not None:
        kind = result.get("type")
        name = result.get("deletedName")
        if not name:
            return f"Item with ID {result['deletedId']} deleted successfully"
        label = kind if kind in ("case", "field", "view") else "item"
        count = result.get("updatedViewsCount")
        if kind == "field" and count:
            return f"Deleted field '{name}' (removed from {count} view{'' if count == 1 else 's'})"
        return f"Deleted {label} '{name}'"
    if result.get("name") and result.get("type") and result.get("id") is not None:
        return f"Field '{result['name']}' of type {result['type']} saved successfully"
    if result.get("name") and result.get("caseID") is not None and "model" in result:
        return f"View '{result['name']}' saved successfully"
    if result.get("name") and "model" in result:
        return f"Case '{result['name']}' saved successfully"
    if result.get("message"):
        return str(result["message"])
    if result.get("error"):
        return f"Error: {result['error']}"
    if result.get("id") is not None and result.get("name"):
        return f"Saved '{result['name']}'"
    return json.dumps(result, default=str)
