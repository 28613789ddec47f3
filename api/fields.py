"""Field CRUD router."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api._helpers import domain_errors, get_case, get_field, serialize_field
from auth import get_current_user
from database import get_db
from models.user import UserProfile
from schemas.field import FieldIn, FieldOut, FieldReorderIn, FieldUpdate
from services import designer

router = APIRouter()


@router.get("/")
def list_fields(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return [serialize_field(f) for f in designer.list_fields(db, case_id)]


@router.post("/", response_model=FieldOut, status_code=201)
def create_field(
    payload: FieldIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(payload.case_id, db)
    data = payload.model_dump(exclude={"case_id"})
    with domain_errors(db):
        field = designer.create_field(db, case, **data)
    return serialize_field(field)


@router.post("/reorder/")
def reorder_fields(
    payload: FieldReorderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(payload.case_id, db)
    with domain_errors(db):
        fields = designer.reorder_fields(db, case, payload.start, payload.end)
    return [serialize_field(f) for f in fields]


@router.get("/{field_id}/", response_model=FieldOut)
def get_field_detail(
    field_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    return serialize_field(get_field(field_id, db))


@router.patch("/{field_id}/", response_model=FieldOut)
def update_field(
    field_id: int,
    payload: FieldUpdate,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    field = get_field(field_id, db)
    with domain_errors(db):
        field = designer.update_field(db, field, payload.model_dump(exclude_unset=True))
    return serialize_field(field)


@router.delete("/{field_id}/")
def delete_field(
    field_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    field = get_field(field_id, db)
    name = field.name
    updated_views = designer.delete_field(db, field)
    return {"deleted_id": field_id, "deleted_name": name, "updated_views_count": updated_views}
