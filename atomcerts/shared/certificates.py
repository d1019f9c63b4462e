from __future__ import annotations

import json
import logging
import secrets
import time
import uuid
from typing import Any

from .fields import format_display_date

logger = logging.getLogger("atomcerts.render")

DEFAULT_TEMPLATE_ID = "default-template"

# Layout used for certificates whose template was deleted or never set.
DEFAULT_TEMPLATE_DESIGN: dict[str, Any] = {
    "width": 800,
    "height": 600,
    "backgroundColor": "#ffffff",
    "elements": [
        {
            "id": "title",
            "type": "text",
            "content": "Certificate of Completion",
            "x": 400,
            "y": 100,
            "fontSize": 32,
            "fontWeight": "bold",
            "textAlign": "center",
            "color": "#1f2937",
        },
        {
            "id": "subtitle",
            "type": "text",
            "content": "This is to certify that",
            "x": 400,
            "y": 200,
            "fontSize": 18,
            "textAlign": "center",
            "color": "#4b5563",
        },
        {
            "id": "studentName",
            "type": "text",
            "content": "{{userName}}",
            "x": 400,
            "y": 250,
            "fontSize": 24,
            "fontWeight": "bold",
            "textAlign": "center",
            "color": "#1f2937",
        },
        {
            "id": "programText",
            "type": "text",
            "content": "has successfully completed the",
            "x": 400,
            "y": 320,
            "fontSize": 18,
            "textAlign": "center",
            "color": "#4b5563",
        },
        {
            "id": "programName",
            "type": "text",
            "content": "{{programName}}",
            "x": 400,
            "y": 350,
            "fontSize": 20,
            "fontWeight": "bold",
            "textAlign": "center",
            "color": "#1f2937",
        },
        {
            "id": "organizationName",
            "type": "text",
            "content": "{{organizationName}}",
            "x": 400,
            "y": 420,
            "fontSize": 16,
            "textAlign": "center",
            "color": "#6b7280",
        },
        {
            "id": "date",
            "type": "text",
            "content": "{{completionDate}}",
            "x": 400,
            "y": 480,
            "fontSize": 14,
            "textAlign": "center",
            "color": "#6b7280",
        },
        {
            "id": "border",
            "type": "rectangle",
            "x": 50,
            "y": 50,
            "width": 700,
            "height": 500,
            "strokeColor": "#d1d5db",
            "strokeWidth": 2,
            "fill": "transparent",
        },
    ],
}


def generate_certificate_id() -> str:
    return f"CERT-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def generate_verification_code() -> str:
    return uuid.uuid4().hex[:12].upper()


def _parse_elements(raw) -> list:
    if isinstance(raw, list):
        return raw
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("[render-template-elements] unparseable elements JSON; using none")
        return []
    return parsed if isinstance(parsed, list) else []


def template_design(record) -> dict[str, Any]:
    """Editor design dict for a stored template, or the built-in default."""
    if record is None:
        return dict(DEFAULT_TEMPLATE_DESIGN)
    return {
        "id": record.id,
        "width": record.width,
        "height": record.height,
        "backgroundColor": record.background_color,
        "backgroundImage": record.background_image,
        "elements": _parse_elements(record.elements),
    }


def certificate_field_values(cert) -> dict[str, str]:
    issue_date = cert.issue_date.date() if cert.issue_date else None
    return {
        "userName": cert.user_name or "",
        "userEmail": cert.user_email or "",
        "programName": cert.program.name if cert.program else "",
        "organizationName": cert.organization.name if cert.organization else "",
        "completionDate": format_display_date(cert.completion_date or issue_date),
        "issueDate": format_display_date(issue_date),
        "certificateId": cert.certificate_id,
        "verificationCode": cert.verification_code,
    }


def certificate_filename(cert, extension: str) -> str:
    return f"certificate-{cert.certificate_id}.{extension}"
