"""Deterministic form filling with field-type detection.

Identifies field kinds from type, name and label, then fills each one with the
matching synthetic value from ``FormTestData``.
"""

from __future__ import annotations

import logging
import re

from playwright.async_api import ElementHandle

from auditor.models.findings import FormField
from auditor.utils.test_data import FormTestData

logger = logging.getLogger(__name__)


FIELD_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("email",      re.compile(r"e[-_]?mail", re.I)),
    ("first_name", re.compile(r"first[-_ ]?name|fname|given", re.I)),
    ("last_name",  re.compile(r"last[-_ ]?name|lname|surname|family", re.I)),
    ("name",       re.compile(r"name", re.I)),
    ("phone",      re.compile(r"phone|tel|mobile|cell", re.I)),
    ("company",    re.compile(r"company|organi[sz]ation|business", re.I)),
    ("message",    re.compile(r"message|comment|enquiry|inquiry", re.I)),
]

SKIPPED_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image", "file"}


FORM_COUNT_JS = "() => document.querySelectorAll('form').length"

FORM_FIELDS_JS = """(idx) => {
    const form = document.querySelectorAll('form')[idx];
    if (!form) return [];
    const fields = [];
    for (const el of form.querySelectorAll('input, select, textarea')) {
        const type = (el.type || el.tagName.toLowerCase()).toLowerCase();
        if (['hidden', 'submit', 'button', 'reset', 'image', 'file'].includes(type)) continue;
        fields.push({
            name: el.name || el.id || '',
            type: type,
            required: !!el.required,
            label: el.getAttribute('placeholder') || el.getAttribute('aria-label') || null,
        });
    }
    return fields;
}"""


def classify_field(field: FormField) -> str:
    """Determine which kind of test value a field expects."""
    ftype = field.type.lower()
    if ftype == "email":
        return "email"
    if ftype == "checkbox":
        return "checkbox"
    if ftype == "radio":
        return "radio"
    if ftype.startswith("select"):
        return "select"
    if ftype == "tel":
        return "phone"

    combined = f"{field.name} {field.label or ''}"
    for kind, pattern in FIELD_PATTERNS:
        if pattern.search(combined):
            return kind

    if ftype == "textarea":
        return "message"
    return "text"


def is_login_form(fields: list[FormField]) -> bool:
    """Password + email-like field in a small form: a login box, not a contact form."""
    has_password = any(f.type == "password" for f in fields)
    has_email = any(f.type == "email" or "email" in f.name.lower() for f in fields)
    return has_password and has_email and len(fields) <= 3


def field_selector(field: FormField) -> str:
    name = field.name.replace('"', '\\"')
    return f'[name="{name}"], [id="{name}"]'


async def fill_field(form: ElementHandle, field: FormField, data: FormTestData) -> bool:
    """Fill one field inside ``form``. Returns False when the field was not found."""
    if not field.name:
        return False
    element = await form.query_selector(field_selector(field))
    if element is None:
        return False

    kind = classify_field(field)
    try:
        if kind in ("checkbox", "radio"):
            await element.check()
        elif kind == "select":
            # Index 0 is usually a "Choose..." placeholder
            count = await element.evaluate("el => el.options.length")
            await element.select_option(index=1 if count > 1 else 0)
        else:
            await element.fill(data.value_for(kind))
    except Exception as e:
        logger.warning("Failed to fill field %s: %s", field.name, e)
        return False
    return True
