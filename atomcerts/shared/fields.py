from __future__ import annotations

import re
from datetime import date
from typing import Any, Mapping

from .template_model import TextElement

TOKEN_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")

STANDARD_FIELDS: tuple[str, ...] = (
    "userName",
    "userEmail",
    "completionDate",
    "programName",
    "organizationName",
    "certificateId",
    "verificationCode",
    "issueDate",
)

# Older templates and CSV imports used these names.
FIELD_ALIASES: dict[str, str] = {
    "studentName": "userName",
    "studentEmail": "userEmail",
    "date": "completionDate",
}


def normalize_field_values(values: Mapping[str, Any] | None) -> dict[str, str]:
    if not values:
        return {}
    normalized: dict[str, str] = {}
    for key, value in values.items():
        normalized[str(key)] = "" if value is None else str(value)
    return normalized


def lookup_field(name: str, values: Mapping[str, str]) -> str:
    if name in values:
        return values[name]
    alias = FIELD_ALIASES.get(name)
    if alias and alias in values:
        return values[alias]
    return ""


def extract_field_names(content: str | None) -> list[str]:
    names: list[str] = []
    for match in TOKEN_PATTERN.finditer(content or ""):
        name = match.group(1)
        if name not in names:
            names.append(name)
    return names


def resolve_text(content: str | None, values: Mapping[str, str]) -> str:
    """Substitute every ``{{token}}``; unknown tokens become empty strings."""
    if not content:
        return ""
    return TOKEN_PATTERN.sub(lambda match: lookup_field(match.group(1), values), content)


def element_text(element: TextElement, values: Mapping[str, str]) -> str:
    """Text to paint for a text or dynamic element.

    Content is always scanned for tokens, whatever the declared type. A
    dynamic element whose content carries no token is replaced wholesale by
    its ``fieldName`` value.
    """
    if TOKEN_PATTERN.search(element.content or ""):
        return resolve_text(element.content, values)
    if element.is_dynamic and element.field_name:
        return lookup_field(element.field_name, values)
    return element.content


def format_display_date(value: date | None) -> str:
    if value is None:
        return ""
    day = value.strftime("%d").lstrip("0") or "0"
    return f"{value.strftime('%B')} {day}, {value.strftime('%Y')}"


def sample_field_values(today: date | None = None) -> dict[str, str]:
    today = today or date.today()
    display = format_display_date(today)
    return {
        "userName": "John Doe",
        "userEmail": "john.doe@example.com",
        "programName": "Web Development Fundamentals",
        "organizationName": "Sample Education Institute",
        "completionDate": display,
        "issueDate": display,
        "certificateId": "CERT-SAMPLE-0001",
        "verificationCode": "SAMPLE0CODE1",
    }
