"""Field-reference helpers for view models.

A view model is ``{"fields": [{"fieldId", "required", "order"}], "layout": {...}}``.
Helpers take and return plain dicts (the shape stored in the views table);
reference orders are kept 1-based and contiguous.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from pydantic import ValidationError

from schemas.workflow import ViewModel

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = {"type": "form", "columns": 1}


def normalize_view_model(raw: Any) -> dict:
    """Coerce *raw* (dict, JSON string or None) into a valid view model dict."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Unparseable view model, treating as empty")
            raw = None
    if not raw:
        return {"fields": [], "layout": dict(DEFAULT_LAYOUT)}
    try:
        return ViewModel.model_validate(raw).model_dump(exclude_none=True)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first["loc"])
        raise ValueError(f"Invalid view model at {loc}: {first['msg']}") from exc


def field_ids(view_model: dict) -> list[int]:
    return [ref["fieldId"] for ref in view_model.get("fields", [])]


def _renumber(refs: list[dict]) -> None:
    for index, ref in enumerate(refs, start=1):
        ref["order"] = index


def add_field_to_view_model(view_model: dict, field_id: int, *, required: bool = False) -> tuple[dict, bool]:
    """Append a reference to *field_id* unless the view already has one."""
    updated = normalize_view_model(copy.deepcopy(view_model))
    if field_id in field_ids(updated):
        return updated, False
    updated["fields"].append({"fieldId": field_id, "required": required})
    _renumber(updated["fields"])
    return updated, True


def remove_field_from_view_model(view_model: dict, field_id: int) -> tuple[dict, bool]:
    updated = normalize_view_model(copy.deepcopy(view_model))
    before = len(updated["fields"])
    updated["fields"] = [ref for ref in updated["fields"] if ref["fieldId"] != field_id]
    removed = len(updated["fields"]) != before
    if removed:
        _renumber(updated["fields"])
    return updated, removed


def reorder_view_fields(view_model: dict, ordered_ids: list[int]) -> dict:
    """Apply *ordered_ids* as the new sequence, keeping per-reference properties.

    References left out of *ordered_ids* are appended in their previous order;
    ids not yet in the view are added as optional references.
    """
    updated = normalize_view_model(copy.deepcopy(view_model))
    by_id = {ref["fieldId"]: ref for ref in updated["fields"]}
    reordered: list[dict] = []
    for fid in dict.fromkeys(ordered_ids):
        reordered.append(by_id.pop(fid, {"fieldId": fid, "required": False}))
    reordered.extend(ref for ref in updated["fields"] if ref["fieldId"] in by_id)
    _renumber(reordered)
    updated["fields"] = reordered
    return updated


def set_field_required(view_model: dict, field_id: int, required: bool) -> tuple[dict, bool]:
    updated = normalize_view_model(copy.deepcopy(view_model))
    for ref in updated["fields"]:
        if ref["fieldId"] == field_id:
            ref["required"] = required
            return updated, True
    return updated, False
