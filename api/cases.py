"""Case CRUD, workflow structure, preview and checkpoint endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api._helpers import domain_errors, get_case, serialize_case, serialize_field, serialize_view
from auth import get_current_user
from database import get_db
from models.case import Case
from models.user import UserProfile
from schemas.case import (
    CaseIn,
    CaseOut,
    CaseUpdate,
    CheckpointOut,
    ProcessIn,
    ReorderIn,
    StageIn,
    StepFieldOrderIn,
    StepFieldsIn,
    StepIn,
    StepMoveIn,
    StepUpdate,
)
from services import designer
from services.checkpoints import get_checkpoint, list_checkpoints, restore_checkpoint, serialize_checkpoint
from ws.broadcast import notify_case

router = APIRouter()


@router.get("/")
def list_cases(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    base = db.query(Case).order_by(Case.updated_at.desc(), Case.id.desc())
    total = base.count()
    cases = base.offset(offset).limit(limit).all()
    return {"items": [serialize_case(c) for c in cases], "total": total}


@router.post("/", response_model=CaseOut, status_code=201)
def create_case(
    payload: CaseIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    with domain_errors(db):
        case = designer.create_case(db, payload.name, payload.description, payload.model)
    return serialize_case(case)


@router.get("/{case_id}/", response_model=CaseOut)
def get_case_detail(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    return serialize_case(get_case(case_id, db))


@router.patch("/{case_id}/", response_model=CaseOut)
def update_case(
    case_id: int,
    payload: CaseUpdate,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    data = payload.model_dump(exclude_unset=True)
    with domain_errors(db):
        case = designer.update_case(
            db,
            case,
            name=data.get("name"),
            description=data.get("description"),
            model=data.get("model"),
        )
    return serialize_case(case)


@router.delete("/{case_id}/", status_code=204)
def delete_case(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    designer.delete_case(db, get_case(case_id, db))


@router.get("/{case_id}/fields/")
def list_case_fields(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return [serialize_field(f) for f in designer.list_fields(db, case_id)]


@router.get("/{case_id}/views/")
def list_case_views(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return [serialize_view(v) for v in designer.list_views(db, case_id)]


@router.get("/{case_id}/preview/")
def preview_case(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    with domain_errors(db):
        return designer.compose_preview(db, get_case(case_id, db))


# ── Stages ─────────────────────────────────────────────────────────────────────


@router.post("/{case_id}/stages/", status_code=201)
def add_stage(
    case_id: int,
    payload: StageIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        return designer.add_stage(db, case, payload.name)


@router.post("/{case_id}/stages/reorder/", response_model=CaseOut)
def reorder_stages(
    case_id: int,
    payload: ReorderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.reorder_stages(db, case, payload.start, payload.end)
    return serialize_case(case)


@router.patch("/{case_id}/stages/{stage_id}/", response_model=CaseOut)
def update_stage(
    case_id: int,
    stage_id: str,
    payload: StageIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.update_stage(db, case, stage_id, name=payload.name)
    return serialize_case(case)


@router.delete("/{case_id}/stages/{stage_id}/")
def delete_stage(
    case_id: int,
    stage_id: str,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        deleted_views = designer.delete_stage(db, case, stage_id)
    return {"deleted_view_ids": deleted_views}


# ── Processes ──────────────────────────────────────────────────────────────────


@router.post("/{case_id}/stages/{stage_id}/processes/", status_code=201)
def add_process(
    case_id: int,
    stage_id: str,
    payload: ProcessIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        return designer.add_process(db, case, stage_id, payload.name)


@router.post("/{case_id}/stages/{stage_id}/processes/reorder/", response_model=CaseOut)
def reorder_processes(
    case_id: int,
    stage_id: str,
    payload: ReorderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.reorder_processes(db, case, stage_id, payload.start, payload.end)
    return serialize_case(case)


@router.patch("/{case_id}/stages/{stage_id}/processes/{process_id}/", response_model=CaseOut)
def update_process(
    case_id: int,
    stage_id: str,
    process_id: str,
    payload: ProcessIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.update_process(db, case, stage_id, process_id, name=payload.name)
    return serialize_case(case)


@router.delete("/{case_id}/stages/{stage_id}/processes/{process_id}/")
def delete_process(
    case_id: int,
    stage_id: str,
    process_id: str,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        deleted_views = designer.delete_process(db, case, stage_id, process_id)
    return {"deleted_view_ids": deleted_views}


# ── Steps ──────────────────────────────────────────────────────────────────────


@router.post("/{case_id}/stages/{stage_id}/processes/{process_id}/steps/", status_code=201)
def add_step(
    case_id: int,
    stage_id: str,
    process_id: str,
    payload: StepIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        return designer.add_step(db, case, stage_id, process_id, payload.name, payload.type)


@router.post("/{case_id}/stages/{stage_id}/processes/{process_id}/steps/reorder/", response_model=CaseOut)
def reorder_steps(
    case_id: int,
    stage_id: str,
    process_id: str,
    payload: ReorderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.reorder_steps(db, case, stage_id, process_id, payload.start, payload.end)
    return serialize_case(case)


@router.post("/{case_id}/steps/move/", response_model=CaseOut)
def move_step(
    case_id: int,
    payload: StepMoveIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.move_step(db, case, **payload.model_dump())
    return serialize_case(case)


@router.patch("/{case_id}/steps/{step_id}/", response_model=CaseOut)
def update_step(
    case_id: int,
    step_id: str,
    payload: StepUpdate,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        case = designer.update_step(db, case, step_id, name=payload.name, step_type=payload.type)
    return serialize_case(case)


@router.delete("/{case_id}/steps/{step_id}/")
def delete_step(
    case_id: int,
    step_id: str,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        deleted_views = designer.delete_step(db, case, step_id)
    return {"deleted_view_ids": deleted_views}


@router.post("/{case_id}/steps/{step_id}/fields/")
def add_step_fields(
    case_id: int,
    step_id: str,
    payload: StepFieldsIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        view, unresolved = designer.add_fields_to_step(db, case, step_id, payload.field_names)
    return {"view": serialize_view(view), "unresolved": unresolved}


@router.post("/{case_id}/steps/{step_id}/fields/reorder/")
def reorder_step_fields(
    case_id: int,
    step_id: str,
    payload: StepFieldOrderIn,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    with domain_errors(db):
        view = designer.reorder_step_fields(db, case, step_id, payload.field_ids)
    return serialize_view(view)


# ── Checkpoints ────────────────────────────────────────────────────────────────


@router.get("/{case_id}/checkpoints/", response_model=list[CheckpointOut])
def list_case_checkpoints(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return [serialize_checkpoint(cp) for cp in list_checkpoints(db, case_id)]


@router.post("/{case_id}/checkpoints/{checkpoint_id}/restore/")
def restore_case_checkpoint(
    case_id: int,
    checkpoint_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    case = get_case(case_id, db)
    checkpoint = get_checkpoint(db, case_id, checkpoint_id)
    if not checkpoint:
        raise HTTPException(status_code=404, detail="Checkpoint not found.")
    with domain_errors(db):
        dropped = restore_checkpoint(db, case, checkpoint)
    notify_case(case.id, "case_updated", {"id": case.id, "change": "Restored checkpoint"})
    return {"case": serialize_case(case), "dropped_view_ids": dropped}
