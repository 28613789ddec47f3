"""Pure operations over a case's workflow model (stages → processes → steps).

Every mutating helper works on a deep copy and returns the new model, so a
caller can diff, checkpoint, or discard the result without touching the
original. Node ids may be ints (older models) or strings and are compared as
given; a string id taken from a URL path also addresses the int id it spells
when no node carries that exact string.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from pydantic import ValidationError

from schemas.workflow import Process, Stage, Step, WorkflowModel
from services.catalog import COLLECT_INFORMATION, STEP_TYPES, is_step_type

logger = logging.getLogger(__name__)


class ModelError(ValueError):
    """Raised when a workflow model is malformed or an operation cannot apply."""


# ── Parsing / serialization ────────────────────────────────────────────────


def parse_model(raw: Any) -> WorkflowModel:
    """Validate *raw* (dict, JSON string, None or WorkflowModel) into a WorkflowModel.

    Missing or empty models become ``{"stages": []}``. Nodes without an id get one.
    """
    if isinstance(raw, WorkflowModel):
        return raw.model_copy(deep=True)
    if raw is None or raw == "" or raw == {}:
        return WorkflowModel()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ModelError(f"Model is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ModelError("Model must be an object with a stages array")
    if "stages" in raw and not isinstance(raw["stages"], list):
        raise ModelError("Model stages must be an array")
    try:
        return WorkflowModel.model_validate(raw)
    except ValidationError as exc:
        raise ModelError(_format_validation_error(exc)) from exc


def dump_model(model: WorkflowModel) -> dict:
    return model.model_dump(exclude_none=True)


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first["loc"])
    return f"Invalid workflow model at {loc}: {first['msg']}"


# ── Lookup ─────────────────────────────────────────────────────────────────


def _pick(nodes: list, wanted: int | str):
    for node in nodes:
        if node.id == wanted:
            return node
    if isinstance(wanted, str):
        for node in nodes:
            if isinstance(node.id, int) and not isinstance(node.id, bool) and str(node.id) == wanted:
                return node
    return None


def iter_steps(model: WorkflowModel) -> Iterator[tuple[Stage, Process, Step]]:
    for stage in model.stages:
        for process in stage.processes:
            for step in process.steps:
                yield stage, process, step


def find_stage(model: WorkflowModel, stage_id: int | str) -> Stage:
    stage = _pick(model.stages, stage_id)
    if stage is not None:
        return stage
    raise ModelError(f"Stage {stage_id} not found")


def find_process(model: WorkflowModel, stage_id: int | str, process_id: int | str) -> Process:
    stage = find_stage(model, stage_id)
    process = _pick(stage.processes, process_id)
    if process is not None:
        return process
    raise ModelError(f"Process {process_id} not found in stage {stage_id}")


def find_step(model: WorkflowModel, step_id: int | str) -> tuple[Stage, Process, Step]:
    steps = [step for _, _, step in iter_steps(model)]
    found = _pick(steps, step_id)
    for stage, process, step in iter_steps(model):
        if step is found:
            return stage, process, step
    raise ModelError(f"Step {step_id} not found")


def step_summaries(model: WorkflowModel) -> list[dict]:
    """Flat list of steps with their stage/process names, for quick reference."""
    summaries = []
    for stage, process, step in iter_steps(model):
        entry = {
            "id": step.id,
            "name": step.name,
            "type": step.type,
            "stage": stage.name,
            "process": process.name,
        }
        if step.viewId is not None:
            entry["viewId"] = step.viewId
        summaries.append(entry)
    return summaries


def collect_view_ids(node: WorkflowModel | Stage | Process | Step) -> list[int]:
    """Every viewId linked under *node*, in tree order."""
    if isinstance(node, Step):
        return [node.viewId] if node.viewId is not None else []
    if isinstance(node, Process):
        children: list = node.steps
    elif isinstance(node, Stage):
        children = node.processes
    else:
        children = node.stages
    ids: list[int] = []
    for child in children:
        ids.extend(collect_view_ids(child))
    return ids


# ── Mutation ───────────────────────────────────────────────────────────────


def _renumber(items: list) -> None:
    for index, item in enumerate(items, start=1):
        item.order = index


def _check_step_type(step_type: str) -> None:
    if not is_step_type(step_type):
        raise ModelError(
            f'Invalid step type "{step_type}". Must be one of: {", ".join(STEP_TYPES)}'
        )


def add_stage(model: WorkflowModel, name: str) -> tuple[WorkflowModel, Stage]:
    updated = model.model_copy(deep=True)
    stage = Stage(name=name)
    updated.stages.append(stage)
    _renumber(updated.stages)
    return updated, stage


def add_process(model: WorkflowModel, stage_id: int | str, name: str) -> tuple[WorkflowModel, Process]:
    updated = model.model_copy(deep=True)
    stage = find_stage(updated, stage_id)
    process = Process(name=name)
    stage.processes.append(process)
    _renumber(stage.processes)
    return updated, process


def add_step(
    model: WorkflowModel,
    stage_id: int | str,
    process_id: int | str,
    name: str,
    step_type: str,
    view_id: int | None = None,
) -> tuple[WorkflowModel, Step]:
    _check_step_type(step_type)
    updated = model.model_copy(deep=True)
    process = find_process(updated, stage_id, process_id)
    step = Step(name=name, type=step_type, viewId=view_id)
    process.steps.append(step)
    _renumber(process.steps)
    return updated, step


def update_stage(model: WorkflowModel, stage_id: int | str, *, name: str | None = None) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    stage = find_stage(updated, stage_id)
    if name is not None:
        stage.name = name
    return updated


def update_process(
    model: WorkflowModel, stage_id: int | str, process_id: int | str, *, name: str | None = None
) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    process = find_process(updated, stage_id, process_id)
    if name is not None:
        process.name = name
    return updated


def update_step(
    model: WorkflowModel,
    step_id: int | str,
    *,
    name: str | None = None,
    step_type: str | None = None,
    view_id: int | None = None,
) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    _, _, step = find_step(updated, step_id)
    if name is not None:
        step.name = name
    if step_type is not None:
        _check_step_type(step_type)
        step.type = step_type
    if view_id is not None:
        step.viewId = view_id
    return updated


def delete_stage(model: WorkflowModel, stage_id: int | str) -> tuple[WorkflowModel, list[int]]:
    """Remove a stage; returns the new model and the view ids linked under it."""
    updated = model.model_copy(deep=True)
    stage = find_stage(updated, stage_id)
    view_ids = collect_view_ids(stage)
    updated.stages = [s for s in updated.stages if s is not stage]
    _renumber(updated.stages)
    return updated, view_ids


def delete_process(
    model: WorkflowModel, stage_id: int | str, process_id: int | str
) -> tuple[WorkflowModel, list[int]]:
    updated = model.model_copy(deep=True)
    stage = find_stage(updated, stage_id)
    process = find_process(updated, stage_id, process_id)
    view_ids = collect_view_ids(process)
    stage.processes = [p for p in stage.processes if p is not process]
    _renumber(stage.processes)
    return updated, view_ids


def delete_step(model: WorkflowModel, step_id: int | str) -> tuple[WorkflowModel, list[int]]:
    updated = model.model_copy(deep=True)
    _, process, step = find_step(updated, step_id)
    view_ids = collect_view_ids(step)
    process.steps = [s for s in process.steps if s is not step]
    _renumber(process.steps)
    return updated, view_ids


def _splice_move(items: list, start: int, end: int, what: str) -> None:
    if not 0 <= start < len(items):
        raise ModelError(f"{what} index {start} out of range (0..{len(items) - 1})")
    if not 0 <= end < len(items):
        raise ModelError(f"{what} target index {end} out of range (0..{len(items) - 1})")
    item = items.pop(start)
    items.insert(end, item)
    _renumber(items)


def move_stage(model: WorkflowModel, start: int, end: int) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    _splice_move(updated.stages, start, end, "Stage")
    return updated


def move_process(model: WorkflowModel, stage_id: int | str, start: int, end: int) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    stage = find_stage(updated, stage_id)
    _splice_move(stage.processes, start, end, "Process")
    return updated


def move_step(
    model: WorkflowModel, stage_id: int | str, process_id: int | str, start: int, end: int
) -> WorkflowModel:
    updated = model.model_copy(deep=True)
    process = find_process(updated, stage_id, process_id)
    _splice_move(process.steps, start, end, "Step")
    return updated


def move_step_between(
    model: WorkflowModel,
    source_stage_id: int | str,
    source_process_id: int | str,
    target_stage_id: int | str,
    target_process_id: int | str,
    source_index: int,
    target_index: int,
) -> WorkflowModel:
    """Drag a step from one process into another (possibly in another stage).

    ``target_index`` may equal the target's length to append at the end.
    """
    updated = model.model_copy(deep=True)
    source = find_process(updated, source_stage_id, source_process_id)
    target = find_process(updated, target_stage_id, target_process_id)
    if source is target:
        return move_step(model, source_stage_id, source_process_id, source_index, target_index)
    if not 0 <= source_index < len(source.steps):
        raise ModelError(f"Step index {source_index} out of range (0..{len(source.steps) - 1})")
    if not 0 <= target_index <= len(target.steps):
        raise ModelError(f"Step target index {target_index} out of range (0..{len(target.steps)})")
    step = source.steps.pop(source_index)
    target.steps.insert(target_index, step)
    _renumber(source.steps)
    _renumber(target.steps)
    return updated


def unlink_view(model: WorkflowModel, view_id: int) -> tuple[WorkflowModel, list[int | str]]:
    """Drop ``viewId`` from every step referencing *view_id*."""
    updated = model.model_copy(deep=True)
    unlinked = []
    for _, _, step in iter_steps(updated):
        if step.viewId == view_id:
            step.viewId = None
            unlinked.append(step.id)
    return updated, unlinked


def prune_view_ids(model: WorkflowModel, existing: set[int]) -> tuple[WorkflowModel, list[int]]:
    """Drop step ``viewId`` references that are not in *existing*."""
    updated = model.model_copy(deep=True)
    dropped = []
    for _, _, step in iter_steps(updated):
        if step.viewId is not None and step.viewId not in existing:
            dropped.append(step.viewId)
            step.viewId = None
    return updated, dropped


# ── Validation ─────────────────────────────────────────────────────────────


def validate_for_save(model: WorkflowModel) -> list[str]:
    """Check the invariants a persisted model must satisfy.

    Raises ModelError on violations; returns non-fatal warnings.
    """
    warnings: list[str] = []
    seen_view_ids: set[int] = set()
    for _, _, step in iter_steps(model):
        extra = step.model_extra or {}
        if isinstance(extra.get("fields"), list):
            raise ModelError(
                f'Step "{step.name}" contains a fields array. Fields should be stored in views, '
                "not in steps. Remove the fields array from the step."
            )
        _check_step_type(step.type)
        if step.type == COLLECT_INFORMATION and step.viewId is None:
            message = (
                f'Step "{step.name}" is a collect_information step but doesn\'t have a viewId. '
                "Add a viewId to reference the view containing the fields."
            )
            logger.warning(message)
            warnings.append(message)
        if step.viewId is not None:
            if step.viewId in seen_view_ids:
                raise ModelError(f'Duplicate viewId "{step.viewId}" found in steps')
            seen_view_ids.add(step.viewId)
    return warnings
