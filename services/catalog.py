"""Field and step type registry, display names, and sample values."""

from __future__ import annotations

import re
from datetime import date, datetime

COLLECT_INFORMATION = "Collect information"

FIELD_TYPE_DISPLAY_NAMES: dict[str, str] = {
    "Address": "Address",
    "AutoComplete": "Auto Complete",
    "Checkbox": "Checkbox",
    "Currency": "Currency",
    "Date": "Date",
    "DateTime": "Date & Time",
    "Decimal": "Decimal Number",
    "Dropdown": "Dropdown",
    "Email": "Email",
    "Integer": "Whole Number",
    "Location": "Location",
    "ReferenceValues": "Reference Values",
    "DataReferenceSingle": "Single Data Reference",
    "DataReferenceMulti": "Multiple Data References",
    "CaseReferenceSingle": "Single Case Reference",
    "CaseReferenceMulti": "Multiple Case References",
    "Percentage": "Percentage",
    "Phone": "Phone Number",
    "RadioButtons": "Radio Buttons",
    "RichText": "Rich Text Editor",
    "Status": "Status",
    "Text": "Single Line Text",
    "TextArea": "Multi Line Text",
    "Time": "Time",
    "URL": "Website URL",
    "UserReference": "User Reference",
}

FIELD_TYPES: tuple[str, ...] = tuple(FIELD_TYPE_DISPLAY_NAMES)

STEP_TYPE_DISPLAY_NAMES: dict[str, str] = {
    COLLECT_INFORMATION: "Collect Information",
    "Approve/Reject": "Approve/Reject",
    "Automation": "Automation",
    "Create Case": "Create Case",
    "Decision": "Decision",
    "Generate Document": "Generate Document",
    "Generative AI": "Generative AI",
    "Robotic Automation": "Robotic Automation",
    "Send Notification": "Send Notification",
}

STEP_TYPES: tuple[str, ...] = tuple(STEP_TYPE_DISPLAY_NAMES)

# Field types whose value is picked from the field's options
OPTION_FIELD_TYPES = frozenset({"Dropdown", "RadioButtons", "AutoComplete"})

FIELD_NAME_RE = re.compile(r"^[a-z][a-zA-Z0-9_]*$")


def is_field_type(value: str) -> bool:
    return isinstance(value, str) and value in FIELD_TYPE_DISPLAY_NAMES


def is_step_type(value: str) -> bool:
    return isinstance(value, str) and value in STEP_TYPE_DISPLAY_NAMES


def get_field_type_display_name(field_type: str) -> str:
    return FIELD_TYPE_DISPLAY_NAMES.get(field_type, field_type)


def get_step_type_display_name(step_type: str) -> str:
    return STEP_TYPE_DISPLAY_NAMES.get(step_type, step_type)


def is_valid_field_name(name: str) -> bool:
    return isinstance(name, str) and FIELD_NAME_RE.match(name) is not None


def field_name_from_label(label: str) -> str:
    """Derive a field name from its display label.

    ``"Loan Amount"`` becomes ``"loan_amount"``; labels that do not start with a
    letter get a ``field_`` prefix so the result always satisfies FIELD_NAME_RE.
    """
    name = re.sub(r"\s+", "_", label.strip().lower())
    name = re.sub(r"[^a-z0-9_]", "", name)
    if not name or not name[0].isalpha():
        name = f"field_{name}".rstrip("_")
    return name


def generate_sample_value(field_type: str, options: list | None = None):
    """Return a realistic sample value for a field of *field_type*."""
    if field_type in OPTION_FIELD_TYPES:
        return options[0] if options else "Option 1"
    if field_type == "Date":
        return date.today().isoformat()
    if field_type == "DateTime":
        return datetime.now().isoformat()
    return _STATIC_SAMPLES.get(field_type, "Sample Value")


_STATIC_SAMPLES: dict[str, object] = {
    "Text": "Sample Text",
    "TextArea": "This is a sample multi-line text.\nIt can contain multiple lines of content.",
    "Integer": 42,
    "Decimal": 3.14,
    "Checkbox": False,
    "Time": "14:30",
    "Email": "example@email.com",
    "Phone": "+1 (555) 123-4567",
    "URL": "https://example.com",
    "Currency": 99.99,
    "Percentage": 75,
    "Address": "123 Sample Street, City, Country",
    "Location": "37.7749° N, 122.4194° W",
    "Status": "Active",
    "RichText": "<p>This is a <strong>sample</strong> rich text content.</p>",
    "UserReference": "John Doe",
    "ReferenceValues": "REF-001",
    "DataReferenceSingle": "REF-001",
    "CaseReferenceSingle": "REF-001",
    "DataReferenceMulti": ["REF-001", "REF-002"],
    "CaseReferenceMulti": ["REF-001", "REF-002"],
}


def catalog() -> dict:
    """Serializable registry for the designer's type pickers."""
    return {
        "field_types": [
            {"type": t, "display_name": n} for t, n in FIELD_TYPE_DISPLAY_NAMES.items()
        ],
        "step_types": [
            {"type": t, "display_name": n, "requires_view": t == COLLECT_INFORMATION}
            for t, n in STEP_TYPE_DISPLAY_NAMES.items()
        ],
    }
