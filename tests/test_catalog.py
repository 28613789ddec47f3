"""Tests for services/catalog.py — type registry, names and sample values."""

from __future__ import annotations

from datetime import date

import pytest

from services.catalog import (
    COLLECT_INFORMATION,
    FIELD_TYPES,
    STEP_TYPES,
    catalog,
    field_name_from_label,
    generate_sample_value,
    get_field_type_display_name,
    get_step_type_display_name,
    is_field_type,
    is_step_type,
    is_valid_field_name,
)


class TestTypeRegistry:
    def test_field_types_cover_catalog(self):
        assert len(FIELD_TYPES) == 26
        assert is_field_type("Text")
        assert is_field_type("CaseReferenceMulti")
        assert not is_field_type("text")
        assert not is_field_type("Stage")
        assert not is_field_type(["Text"])
        assert not is_field_type(None)

    def test_step_types(self):
        assert COLLECT_INFORMATION in STEP_TYPES
        assert is_step_type("Approve/Reject")
        assert not is_step_type("Collect Information")

    def test_display_names(self):
        assert get_field_type_display_name("Integer") == "Whole Number"
        assert get_field_type_display_name("Unknown") == "Unknown"
        assert get_step_type_display_name(COLLECT_INFORMATION) == "Collect Information"

    def test_catalog_marks_view_steps(self):
        data = catalog()
        requires = [s["type"] for s in data["step_types"] if s["requires_view"]]
        assert requires == [COLLECT_INFORMATION]
        assert {"type": "URL", "display_name": "Website URL"} in data["field_types"]


class TestFieldNames:
    @pytest.mark.parametrize("name", ["email", "loanAmount", "start_date", "a1"])
    def test_valid(self, name):
        assert is_valid_field_name(name)

    @pytest.mark.parametrize("name", ["", "Email", "1st", "_x", "first-name", "has space", None, 123])
    def test_invalid(self, name):
        assert not is_valid_field_name(name)

    def test_from_label(self):
        assert field_name_from_label("Loan Amount") == "loan_amount"
        assert field_name_from_label("  E-mail Address ") == "email_address"
        assert field_name_from_label("2nd Phone") == "field_2nd_phone"
        assert field_name_from_label("") == "field"

    def test_from_label_is_always_valid(self):
        for label in ("Loan Amount", "2nd Phone", "???", "Ünïcode Name"):
            assert is_valid_field_name(field_name_from_label(label))


class TestSampleValues:
    def test_option_types_use_first_option(self):
        assert generate_sample_value("Dropdown", ["Red", "Blue"]) == "Red"
        assert generate_sample_value("RadioButtons", []) == "Option 1"

    def test_dates(self):
        assert generate_sample_value("Date") == date.today().isoformat()
        assert generate_sample_value("DateTime").startswith(date.today().isoformat())

    def test_static_and_default(self):
        assert generate_sample_value("Integer") == 42
        assert generate_sample_value("Email") == "example@email.com"
        assert generate_sample_value("Checkbox") is False
        assert generate_sample_value("Nope") == "Sample Value"
