"""Designer operations — the persisted side of every editor interaction.

Each public function applies one user-level change (add a step, drop a field
onto a view, drag a stage...), keeps the case model, fields and views in
step with each other, records a checkpoint when the workflow model changes,
commits, and broadcasts ``case_updated`` on ``case:{id}``.
"""

from __future__ import annotations

import copy
import logging

from sqlalchemy.orm import Session

from models.case import Case, Field, View
from schemas.workflow import WorkflowModel
from services import workflow_model as wm
from services.catalog import (
    COLLECT_INFORMATION,
    FIELD_TYPES,
    field_name_from_label,
    generate_sample_value,
    is_field_type,
    is_valid_field_name,
)
from services.checkpoints import record_checkpoint
from services.view_model import (
    add_field_to_view_model,
    field_ids as view_field_ids,
    normalize_view_model,
    remove_field_from_view_model,
    reorder_view_fields,
    set_field_required,
)
from ws.broadcast import notify_case

logger = logging.getLogger(__name__)


class DesignerError(ValueError):
    """A designer change that cannot be applied as requested."""


class ConflictError(DesignerError):
    """The change collides with an existing record (e.g. duplicate field name)."""


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


def case_model(case: Case) -> WorkflowModel:
    return wm.parse_model(case.model)


def _check_view_ids(db: Session, case_id: int | None, model: WorkflowModel) -> None:
    """Every linked view must exist and belong to the case itself."""
    view_ids = wm.collect_view_ids(model)
    if not view_ids:
        return
    found: set[int] = set()
    if case_id is not None:
        rows = db.query(View.id).filter(View.case_id == case_id, View.id.in_(view_ids)).all()
        found = {vid for (vid,) in rows}
    missing = [vid for vid in view_ids if vid not in found]
    if missing:
        raise wm.ModelError(
            "The following viewId values do not exist in the database: "
            f"{', '.join(str(v) for v in missing)}. "
            "Make sure to use the actual IDs returned from saveView calls."
        )


def _commit_model(db: Session, case: Case, model: WorkflowModel, description: str) -> Case:
    case.model = wm.dump_model(model)
    record_checkpoint(db, case, description)
    db.commit()
    db.refresh(case)
    logger.info("Case %s: %s", case.id, description)
    notify_case(case.id, "case_updated", {"id": case.id, "change": description})
    return case


def create_case(db: Session, name: str, description: str, model=None) -> Case:
    parsed = wm.parse_model(model)
    wm.validate_for_save(parsed)
    _check_view_ids(db, None, parsed)
    case = Case(name=name, description=description, model=wm.dump_model(parsed))
    db.add(case)
    db.flush()
    record_checkpoint(db, case, "Created case")
    db.commit()
    db.refresh(case)
    logger.info("Created case %s (%s)", case.id, case.name)
    return case


def update_case(
    db: Session,
    case: Case,
    *,
    name: str | None = None,
    description: str | None = None,
    model=None,
    change: str = "Updated workflow",
) -> Case:
    """Update case metadata and/or replace the whole workflow model."""
    if name is not None:
        case.name = name
    if description is not None:
        case.description = description
    if model is None:
        db.commit()
        db.refresh(case)
        notify_case(case.id, "case_updated", {"id": case.id, "change": "Updated details"})
        return case
    parsed = wm.parse_model(model)
    wm.validate_for_save(parsed)
    _check_view_ids(db, case.id, parsed)
    return _commit_model(db, case, parsed, change)


def delete_case(db: Session, case: Case) -> None:
    case_id = case.id
    db.delete(case)
    db.commit()
    logger.info("Deleted case %s", case_id)
    notify_case(case_id, "case_deleted", {"id": case_id})


# ---------------------------------------------------------------------------
# Stages / processes / steps
# ---------------------------------------------------------------------------


def add_stage(db: Session, case: Case, name: str) -> dict:
    model, stage = wm.add_stage(case_model(case), name)
    _commit_model(db, case, model, f"Added stage: {name}")
    return stage.model_dump(exclude_none=True)


def add_process(db: Session, case: Case, stage_id, name: str) -> dict:
    model, process = wm.add_process(case_model(case), stage_id, name)
    _commit_model(db, case, model, f"Added process: {name}")
    return process.model_dump(exclude_none=True)


def add_step(db: Session, case: Case, stage_id, process_id, name: str, step_type: str) -> dict:
    """Add a step; "Collect information" steps get a fresh empty view named after them."""
    current = case_model(case)
    # Validate placement before creating a view that would otherwise be orphaned
    wm.find_process(current, stage_id, process_id)
    view_id = None
    if step_type == COLLECT_INFORMATION:
        view = View(case_id=case.id, name=name, model=normalize_view_model(None))
        db.add(view)
        db.flush()
        view_id = view.id
    model, step = wm.add_step(current, stage_id, process_id, name, step_type, view_id=view_id)
    _commit_model(db, case, model, f"Added step: {name}")
    return step.model_dump(exclude_none=True)


def update_stage(db: Session, case: Case, stage_id, *, name: str) -> Case:
    model = wm.update_stage(case_model(case), stage_id, name=name)
    return _commit_model(db, case, model, f"Renamed stage: {name}")


def update_process(db: Session, case: Case, stage_id, process_id, *, name: str) -> Case:
    model = wm.update_process(case_model(case), stage_id, process_id, name=name)
    return _commit_model(db, case, model, f"Renamed process: {name}")


def update_step(db: Session, case: Case, step_id, *, name: str | None = None, step_type: str | None = None) -> Case:
    """Rename a step or change its type.

    Switching to "Collect information" links a new view; switching away
    deletes the linked view.
    """
    current = case_model(case)
    _, _, step = wm.find_step(current, step_id)
    model = wm.update_step(current, step_id, name=name, step_type=step_type)
    target_type = step_type or step.type
    if target_type == COLLECT_INFORMATION and step.viewId is None:
        view = View(case_id=case.id, name=name or step.name, model=normalize_view_model(None))
        db.add(view)
        db.flush()
        model = wm.update_step(model, step_id, view_id=view.id)
    elif target_type != COLLECT_INFORMATION and step.viewId is not None:
        _delete_views(db, case.id, [step.viewId])
        model, _ = wm.unlink_view(model, step.viewId)
    elif name is not None and step.viewId is not None:
        view = db.get(View, step.viewId)
        if view is not None and view.case_id == case.id:
            view.name = name
    return _commit_model(db, case, model, f"Updated step: {name or step.name}")


def _delete_views(db: Session, case_id: int, view_ids: list[int]) -> int:
    if not view_ids:
        return 0
    count = (
        db.query(View)
        .filter(View.case_id == case_id, View.id.in_(view_ids))
        .delete(synchronize_session="fetch")
    )
    logger.info("Deleted %d linked views %s", count, view_ids)
    return count


def delete_stage(db: Session, case: Case, stage_id) -> list[int]:
    model, view_ids = wm.delete_stage(case_model(case), stage_id)
    _delete_views(db, case.id, view_ids)
    _commit_model(db, case, model, "Deleted stage")
    return view_ids


def delete_process(db: Session, case: Case, stage_id, process_id) -> list[int]:
    model, view_ids = wm.delete_process(case_model(case), stage_id, process_id)
    _delete_views(db, case.id, view_ids)
    _commit_model(db, case, model, "Deleted process")
    return view_ids


def delete_step(db: Session, case: Case, step_id) -> list[int]:
    model, view_ids = wm.delete_step(case_model(case), step_id)
    _delete_views(db, case.id, view_ids)
    _commit_model(db, case, model, "Deleted step")
    return view_ids


def reorder_stages(db: Session, case: Case, start: int, end: int) -> Case:
    model = wm.move_stage(case_model(case), start, end)
    return _commit_model(db, case, model, "Reordered stages")


def reorder_processes(db: Session, case: Case, stage_id, start: int, end: int) -> Case:
    model = wm.move_process(case_model(case), stage_id, start, end)
    return _commit_model(db, case, model, "Reordered processes")


def reorder_steps(db: Session, case: Case, stage_id, process_id, start: int, end: int) -> Case:
    model = wm.move_step(case_model(case), stage_id, process_id, start, end)
    return _commit_model(db, case, model, "Reordered steps")


def move_step(
    db: Session,
    case: Case,
    *,
    source_stage_id,
    source_process_id,
    target_stage_id,
    target_process_id,
    source_index: int,
    target_index: int,
) -> Case:
    model = wm.move_step_between(
        case_model(case),
        source_stage_id,
        source_process_id,
        target_stage_id,
        target_process_id,
        source_index,
        target_index,
    )
    return _commit_model(db, case, model, "Moved step")


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def list_fields(db: Session, case_id: int) -> list[Field]:
    return (
        db.query(Field)
        .filter(Field.case_id == case_id)
        .order_by(Field.order, Field.name)
        .all()
    )


def find_field_by_name(db: Session, case_id: int, name: str) -> Field | None:
    return db.query(Field).filter(Field.case_id == case_id, Field.name == name).first()


def _check_field_type(field_type: str) -> None:
    if not is_field_type(field_type):
        raise DesignerError(
            f'Invalid field type "{field_type}". Must be one of: {", ".join(FIELD_TYPES)}'
        )


def create_field(
    db: Session,
    case: Case,
    *,
    label: str,
    type: str,
    name: str | None = None,
    description: str | None = None,
    order: int = 0,
    options: list | None = None,
    required: bool = False,
    primary: bool = False,
    default_value=None,
) -> Field:
    _check_field_type(type)
    name = name or field_name_from_label(label)
    if not is_valid_field_name(name):
        raise DesignerError(f'Invalid field name "{name}"')
    if find_field_by_name(db, case.id, name):
        raise ConflictError(f'Field "{name}" already exists in case {case.id}')
    field = Field(
        case_id=case.id,
        name=name,
        type=type,
        label=label,
        description=description if description is not None else label,
        order=order,
        options=list(options or []),
        required=required,
        primary=primary,
        default_value=default_value,
    )
    db.add(field)
    db.commit()
    db.refresh(field)
    logger.info("Created field %s (%s) in case %s", field.name, field.type, case.id)
    notify_case(case.id, "field_created", {"id": field.id, "name": field.name})
    return field


def update_field(db: Session, field: Field, changes: dict) -> Field:
    """Apply a partial update; options and other unset attributes are kept."""
    if "type" in changes:
        _check_field_type(changes["type"])
    if "name" in changes and changes["name"] != field.name:
        if not is_valid_field_name(changes["name"]):
            raise DesignerError(f'Invalid field name "{changes["name"]}"')
        clash = find_field_by_name(db, field.case_id, changes["name"])
        if clash and clash.id != field.id:
            raise ConflictError(f'Field "{changes["name"]}" already exists in case {field.case_id}')
    for attr, value in changes.items():
        if attr == "options":
            value = list(value or [])
        setattr(field, attr, value)
    db.commit()
    db.refresh(field)
    notify_case(field.case_id, "field_updated", {"id": field.id, "name": field.name})
    return field


def delete_field(db: Session, field: Field) -> int:
    """Delete a field and strip its references from every view of the case.

    Returns the number of views that referenced it.
    """
    updated_views = 0
    for view in db.query(View).filter(View.case_id == field.case_id).all():
        new_model, removed = remove_field_from_view_model(view.model, field.id)
        if removed:
            view.model = new_model
            updated_views += 1
    case_id, field_id, field_name = field.case_id, field.id, field.name
    db.delete(field)
    db.commit()
    logger.info("Deleted field %s from case %s (%d views updated)", field_name, case_id, updated_views)
    notify_case(case_id, "field_deleted", {"id": field_id, "name": field_name})
    return updated_views


def reorder_fields(db: Session, case: Case, start: int, end: int) -> list[Field]:
    """Drag a field within the case's field list; ``order`` becomes 1-based position.

    When the stored orders already match list positions, only fields whose
    position changed are rewritten; otherwise the whole list is renumbered.
    """
    fields = list_fields(db, case.id)
    if not 0 <= start < len(fields) or not 0 <= end < len(fields):
        raise DesignerError(f"Field index out of range (0..{len(fields) - 1})")
    sequential = all(f.order == index for index, f in enumerate(fields, start=1))
    moved = fields.pop(start)
    fields.insert(end, moved)
    if sequential:
        low, high = min(start, end), max(start, end)
    else:
        low, high = 0, len(fields) - 1
    for index in range(low, high + 1):
        if fields[index].order != index + 1:
            fields[index].order = index + 1
    db.commit()
    notify_case(case.id, "fields_reordered", {"ids": [f.id for f in fields]})
    return fields


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def list_views(db: Session, case_id: int) -> list[View]:
    return db.query(View).filter(View.case_id == case_id).order_by(View.name).all()


def _check_field_refs(db: Session, case_id: int, view_model: dict) -> None:
    ids = view_field_ids(view_model)
    if not ids:
        return
    found = {
        fid
        for (fid,) in db.query(Field.id).filter(Field.case_id == case_id, Field.id.in_(ids)).all()
    }
    for fid in ids:
        if fid not in found:
            raise DesignerError(f"Field with id {fid} not found in case {case_id}")


def create_view(db: Session, case: Case, name: str, model=None) -> View:
    view_model = normalize_view_model(model)
    _check_field_refs(db, case.id, view_model)
    view = View(case_id=case.id, name=name, model=view_model)
    db.add(view)
    db.commit()
    db.refresh(view)
    logger.info("Created view %s (%s) in case %s", view.id, view.name, case.id)
    notify_case(case.id, "view_created", {"id": view.id, "name": view.name})
    return view


def update_view(db: Session, view: View, *, name: str | None = None, model=None) -> View:
    if name is not None:
        view.name = name
    if model is not None:
        view_model = normalize_view_model(model)
        _check_field_refs(db, view.case_id, view_model)
        view.model = view_model
    db.commit()
    db.refresh(view)
    notify_case(view.case_id, "view_updated", {"id": view.id, "name": view.name})
    return view


def delete_view(db: Session, view: View) -> list:
    """Delete a view and drop ``viewId`` from steps that referenced it."""
    case = db.get(Case, view.case_id)
    unlinked: list = []
    if case is not None:
        model, unlinked = wm.unlink_view(case_model(case), view.id)
        if unlinked:
            case.model = wm.dump_model(model)
            record_checkpoint(db, case, f"Unlinked view: {view.name}")
    view_id, case_id = view.id, view.case_id
    db.delete(view)
    db.commit()
    logger.info("Deleted view %s from case %s (unlinked steps %s)", view_id, case_id, unlinked)
    notify_case(case_id, "view_deleted", {"id": view_id})
    return unlinked


def _save_view_model(db: Session, view: View, view_model: dict) -> View:
    view.model = view_model
    db.commit()
    db.refresh(view)
    notify_case(view.case_id, "view_updated", {"id": view.id, "name": view.name})
    return view


def add_fields_to_view(db: Session, view: View, field_names: list[str]) -> tuple[View, list[str]]:
    """Link fields (by name) to a view; returns the view and names that did not resolve."""
    view_model = copy.deepcopy(view.model)
    unresolved = []
    for name in field_names:
        field = find_field_by_name(db, view.case_id, name)
        if field is None:
            unresolved.append(name)
            continue
        view_model, _ = add_field_to_view_model(view_model, field.id)
    if unresolved:
        logger.warning("View %s: unknown fields %s", view.id, unresolved)
    return _save_view_model(db, view, normalize_view_model(view_model)), unresolved


def remove_field_from_view(db: Session, view: View, field_id: int) -> bool:
    view_model, removed = remove_field_from_view_model(view.model, field_id)
    if removed:
        _save_view_model(db, view, view_model)
    return removed


def reorder_view(db: Session, view: View, ordered_ids: list[int]) -> View:
    view_model = reorder_view_fields(view.model, ordered_ids)
    _check_field_refs(db, view.case_id, view_model)
    return _save_view_model(db, view, view_model)


def set_view_field_required(db: Session, view: View, field_id: int, required: bool) -> bool:
    view_model, found = set_field_required(view.model, field_id, required)
    if found:
        _save_view_model(db, view, view_model)
    return found


# ---------------------------------------------------------------------------
# Step fields (through the step's linked view)
# ---------------------------------------------------------------------------


def _step_view(db: Session, case: Case, step_id) -> View:
    """Return the view linked to a "Collect information" step, linking a new one if missing."""
    model = case_model(case)
    _, _, step = wm.find_step(model, step_id)
    if step.type != COLLECT_INFORMATION:
        raise DesignerError(f'Step "{step.name}" is not a "{COLLECT_INFORMATION}" step')
    view = db.get(View, step.viewId) if step.viewId is not None else None
    if view is None or view.case_id != case.id:
        view = View(case_id=case.id, name=step.name, model=normalize_view_model(None))
        db.add(view)
        db.flush()
        model = wm.update_step(model, step_id, view_id=view.id)
        _commit_model(db, case, model, f"Linked view to step: {step.name}")
    return view


def add_fields_to_step(db: Session, case: Case, step_id, field_names: list[str]) -> tuple[View, list[str]]:
    return add_fields_to_view(db, _step_view(db, case, step_id), field_names)


def reorder_step_fields(db: Session, case: Case, step_id, ordered_ids: list[int]) -> View:
    return reorder_view(db, _step_view(db, case, step_id), ordered_ids)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def compose_preview(db: Session, case: Case) -> dict:
    """Resolve the case into the nested shape the preview renders.

    Collect steps carry their view's fields (ordered, with labels and sample
    values); dangling field references are skipped.
    """
    fields_by_id = {f.id: f for f in list_fields(db, case.id)}
    views_by_id = {v.id: v for v in list_views(db, case.id)}
    stages = []
    for stage in case_model(case).stages:
        processes = []
        for process in stage.processes:
            steps = []
            for step in process.steps:
                entry = step.model_dump(exclude_none=True)
                view = views_by_id.get(step.viewId) if step.viewId is not None else None
                resolved = []
                if view is not None:
                    refs = sorted(view.model.get("fields", []), key=lambda r: r.get("order") or 0)
                    for ref in refs:
                        field = fields_by_id.get(ref["fieldId"])
                        if field is None:
                            continue
                        resolved.append({
                            "id": field.id,
                            "name": field.name,
                            "label": field.label,
                            "type": field.type,
                            "options": field.options or [],
                            "primary": field.primary,
                            "required": bool(ref.get("required", False)),
                            "order": ref.get("order"),
                            "sample_value": generate_sample_value(field.type, field.options),
                        })
                entry["fields"] = resolved
                steps.append(entry)
            processes.append({"id": process.id, "name": process.name, "steps": steps})
        stages.append({"id": stage.id, "name": stage.name, "processes": processes})
    return {
        "id": case.id,
        "name": case.name,
        "description": case.description,
        "stages": stages,
    }
