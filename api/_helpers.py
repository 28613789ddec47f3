"""Shared helpers for API routers."""

from __future__ import annotations

from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy.orm import Session

from models.case import Case, Field, View
from services.designer import ConflictError, DesignerError
from services.tools import ToolError
from services.workflow_model import ModelError


def get_case(case_id: int, db: Session) -> Case:
    case = db.get(Case, case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found.")
    return case


def get_field(field_id: int, db: Session) -> Field:
    field = db.get(Field, field_id)
    if not field:
        raise HTTPException(status_code=404, detail="Field not found.")
    return field


def get_view(view_id: int, db: Session) -> View:
    view = db.get(View, view_id)
    if not view:
        raise HTTPException(status_code=404, detail="View not found.")
    return view


@contextmanager
def domain_errors(db: Session):
    """Map designer errors onto HTTP status codes, rolling back the session."""
    try:
        yield
    except ConflictError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))
    except (ModelError, DesignerError, ToolError) as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc))


def serialize_case(case: Case) -> dict:
    return {
        "id": case.id,
        "name": case.name,
        "description": case.description,
        "model": case.model,
        "created_at": case.created_at,
        "updated_at": case.updated_at,
    }


def serialize_field(field: Field) -> dict:
    return {
        "id": field.id,
        "case_id": field.case_id,
        "name": field.name,
        "type": field.type,
        "label": field.label,
        "description": field.description,
        "order": field.order,
        "options": field.options or [],
        "required": field.required,
        "primary": field.primary,
        "default_value": field.default_value,
        "created_at": field.created_at,
        "updated_at": field.updated_at,
    }


def serialize_view(view: View) -> dict:
    return {
        "id": view.id,
        "case_id": view.case_id,
        "name": view.name,
        "model": view.model,
        "created_at": view.created_at,
        "updated_at": view.updated_at,
    }
