"""View CRUD and view-field linking router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api._helpers import domain_errors, get_case, get_view, serialize_view
from auth import get_current_user
from database import get_db
from models.user import UserProfile
from schemas.view import (
    ViewFieldOrderIn,
    ViewFieldRequiredIn,
    ViewFieldsIn,
    ViewIn,
    ViewOut,
    ViewUpdate,
)
from services import designer

router = APIRouter()


@router.get("/")
def list_views(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return [serialize_view(v) for v in designer.list_views(db, case_id)]


@router.post("/", response_model=ViewOut, status_code=201)
def create_view(
    payload: ViewIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(payload.case_id, db)
    with domain_errors(db):
        view = designer.create_view(db, case, payload.name, payload.model)
    return serialize_view(view)


@router.get("/{view_id}/", response_model=ViewOut)
def get_view_detail(
    view_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    return serialize_view(get_view(view_id, db))


@router.patch("/{view_id}/", response_model=ViewOut)
def update_view(
    view_id: int,
    payload: ViewUpdate,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    with domain_errors(db):
        view = designer.update_view(db, view, name=payload.name, model=payload.model)
    return serialize_view(view)


@router.delete("/{view_id}/")
def delete_view(
    view_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    name = view.name
    unlinked = designer.delete_view(db, view)
    return {"deleted_id": view_id, "deleted_name": name, "unlinked_steps": unlinked}


@router.post("/{view_id}/fields/")
def add_view_fields(
    view_id: int,
    payload: ViewFieldsIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    with domain_errors(db):
        view, unresolved = designer.add_fields_to_view(db, view, payload.field_names)
    return {"view": serialize_view(view), "unresolved": unresolved}


@router.post("/{view_id}/fields/reorder/", response_model=ViewOut)
def reorder_view_fields(
    view_id: int,
    payload: ViewFieldOrderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    with domain_errors(db):
        view = designer.reorder_view(db, view, payload.field_ids)
    return serialize_view(view)


@router.patch("/{view_id}/fields/{field_id}/", response_model=ViewOut)
def set_view_field_required(
    view_id: int,
    field_id: int,
    payload: ViewFieldRequiredIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    if not designer.set_view_field_required(db, view, field_id, payload.required):
        raise HTTPException(status_code=404, detail="Field is not part of this view.")
    return serialize_view(view)


@router.delete("/{view_id}/fields/{field_id}/", response_model=ViewOut)
def remove_view_field(
    view_id: int,
    field_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    view = get_view(view_id, db)
    if not designer.remove_field_from_view(db, view, field_id):
        raise HTTPException(status_code=404, detail="Field is not part of this view.")
    return serialize_view(view)
