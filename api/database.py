"""Raw table listing and reset for the database panel."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api._helpers import serialize_field, serialize_view
from auth import get_current_user
from database import get_db, reset_database
from models.case import Field, View
from models.user import UserProfile

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
def list_table(
    table: Literal["fields", "views"],
    case_id: int | None = None,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    if table == "fields":
        query = db.query(Field)
        if case_id is not None:
            query = query.filter(Field.case_id == case_id)
        return {"table": table, "rows": [serialize_field(f) for f in query.order_by(Field.id).all()]}
    query = db.query(View)
    if case_id is not None:
        query = query.filter(View.case_id == case_id)
    return {"table": table, "rows": [serialize_view(v) for v in query.order_by(View.id).all()]}


@router.post("/reset/")
def reset(
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    db.close()
    tables = reset_database(db.get_bind())
    logger.warning("Database reset by %s: recreated %s", profile.username, tables)
    return {"success": True, "tables": tables}
