"""Tests for services/view_model.py — field references on views."""

from __future__ import annotations

import pytest

from services.view_model import (
    add_field_to_view_model,
    normalize_view_model,
    remove_field_from_view_model,
    reorder_view_fields,
    set_field_required,
)


def _vm(*field_ids):
    return {
        "fields": [{"fieldId": fid, "required": fid % 2 == 0, "order": i} for i, fid in enumerate(field_ids, 1)],
        "layout": {"type": "form", "columns": 2},
    }


class TestNormalize:
    @pytest.mark.parametrize("raw", [None, "", {}, "not json"])
    def test_empty_gets_default_layout(self, raw):
        assert normalize_view_model(raw) == {"fields": [], "layout": {"type": "form", "columns": 1}}

    def test_missing_layout_defaults(self):
        vm = normalize_view_model({"fields": [{"fieldId": 3}]})
        assert vm["layout"] == {"type": "form", "columns": 1}
        assert vm["fields"][0]["required"] is False

    def test_invalid_reference(self):
        with pytest.raises(ValueError, match="Invalid view model"):
            normalize_view_model({"fields": [{"required": True}]})

    def test_invalid_layout_type(self):
        with pytest.raises(ValueError, match="layout"):
            normalize_view_model({"fields": [], "layout": {"type": "grid"}})


class TestLinking:
    def test_add_appends_once(self):
        vm, added = add_field_to_view_model(_vm(1), 2, required=True)
        assert added
        assert vm["fields"][-1] == {"fieldId": 2, "required": True, "order": 2}
        vm, added = add_field_to_view_model(vm, 2)
        assert not added
        assert len(vm["fields"]) == 2

    def test_remove_renumbers(self):
        original = _vm(1, 2, 3)
        vm, removed = remove_field_from_view_model(original, 2)
        assert removed
        assert [(r["fieldId"], r["order"]) for r in vm["fields"]] == [(1, 1), (3, 2)]
        assert len(original["fields"]) == 3

    def test_remove_missing(self):
        _, removed = remove_field_from_view_model(_vm(1), 9)
        assert not removed

    def test_reorder_keeps_properties(self):
        vm = reorder_view_fields(_vm(1, 2, 3), [3, 2])
        assert [(r["fieldId"], r["order"], r["required"]) for r in vm["fields"]] == [
            (3, 1, False), (2, 2, True), (1, 3, False),
        ]
        assert vm["layout"]["columns"] == 2

    def test_reorder_adds_new_ids(self):
        vm = reorder_view_fields(_vm(1), [4, 1, 4])
        assert [(r["fieldId"], r["required"]) for r in vm["fields"]] == [(4, False), (1, False)]

    def test_set_required(self):
        vm, found = set_field_required(_vm(1, 2), 1, True)
        assert found
        assert vm["fields"][0]["required"] is True
        _, found = set_field_required(vm, 7, True)
        assert not found
