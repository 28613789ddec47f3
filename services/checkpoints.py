"""Case checkpoints — bounded change history of workflow models."""

from __future__ import annotations

import copy
import logging

from sqlalchemy.orm import Session

from config import settings
from models.case import Case, View
from models.checkpoint import CaseCheckpoint
from services.workflow_model import dump_model, parse_model, prune_view_ids

logger = logging.getLogger(__name__)


def record_checkpoint(db: Session, case: Case, description: str, *, limit: int | None = None) -> CaseCheckpoint:
    """Snapshot the case's current model and prune history beyond *limit*.

    Flushes but does not commit; the caller owns the transaction.
    """
    limit = settings.MAX_CHECKPOINTS if limit is None else limit
    checkpoint = CaseCheckpoint(
        case_id=case.id,
        description=description[:255],
        model=copy.deepcopy(case.model or {"stages": []}),
    )
    db.add(checkpoint)
    db.flush()

    stale = (
        db.query(CaseCheckpoint)
        .filter(CaseCheckpoint.case_id == case.id)
        .order_by(CaseCheckpoint.id.desc())
        .offset(limit)
        .all()
    )
    for old in stale:
        db.delete(old)
    if stale:
        db.flush()
        logger.debug("Pruned %d checkpoints for case %s", len(stale), case.id)
    return checkpoint


def list_checkpoints(db: Session, case_id: int) -> list[CaseCheckpoint]:
    return (
        db.query(CaseCheckpoint)
        .filter(CaseCheckpoint.case_id == case_id)
        .order_by(CaseCheckpoint.id.desc())
        .all()
    )


def get_checkpoint(db: Session, case_id: int, checkpoint_id: int) -> CaseCheckpoint | None:
    return (
        db.query(CaseCheckpoint)
        .filter(CaseCheckpoint.case_id == case_id, CaseCheckpoint.id == checkpoint_id)
        .first()
    )


def restore_checkpoint(db: Session, case: Case, checkpoint: CaseCheckpoint) -> list[int]:
    """Put the checkpoint's model back on the case.

    View references to views deleted since the snapshot are dropped. Returns
    the dropped view ids. Commits.
    """
    model = parse_model(checkpoint.model)
    existing = {vid for (vid,) in db.query(View.id).filter(View.case_id == case.id).all()}
    model, dropped = prune_view_ids(model, existing)
    if dropped:
        logger.warning(
            "Restoring checkpoint %s for case %s dropped missing views %s",
            checkpoint.id, case.id, dropped,
        )
    case.model = dump_model(model)
    record_checkpoint(db, case, f"Restored checkpoint: {checkpoint.description}")
    db.commit()
    db.refresh(case)
    return dropped


def serialize_checkpoint(checkpoint: CaseCheckpoint) -> dict:
    return {
        "id": checkpoint.id,
        "case_id": checkpoint.case_id,
        "description": checkpoint.description,
        "model": checkpoint.model,
        "created_at": checkpoint.created_at,
    }
