from __future__ import annotations

from datetime import date

from flask import current_app

from ..app import db
from ..models import Certificate, CertificateTemplate, Organization, Program
from ..shared.certificates import generate_certificate_id, generate_verification_code


class CertificateIssueError(ValueError):
    """Raised when a certificate request names missing or unknown records."""


def _find_organization(key: str) -> Organization | None:
    org = db.session.get(Organization, key)
    if org is None:
        org = db.session.query(Organization).filter(Organization.name == key).first()
    return org


def _find_program(key: str, organization: Organization) -> Program | None:
    program = db.session.get(Program, key)
    if program is None:
        program = (
            db.session.query(Program)
            .filter(Program.name == key, Program.organization_id == organization.id)
            .first()
        )
    return program


def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_date(value) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise CertificateIssueError(f"Invalid completion date {value!r}.") from exc


def issue_certificate(payload: dict, issued_by: str | None = None) -> Certificate:
    """Create a certificate from an editor/API payload.

    Organization and program may be given by id or by name. ``studentName``
    is accepted for ``userName``.
    """
    if not isinstance(payload, dict):
        raise CertificateIssueError("Request body must be a JSON object.")
    user_name = _clean(payload.get("userName") or payload.get("studentName"))
    org_key = _clean(payload.get("organizationId"))
    program_key = _clean(payload.get("programId"))
    if not user_name or not org_key or not program_key:
        raise CertificateIssueError("User name, organization, and program are required.")

    organization = _find_organization(org_key)
    if organization is None:
        raise CertificateIssueError(f"Organization {org_key!r} not found.")
    program = _find_program(program_key, organization)
    if program is None:
        raise CertificateIssueError(f"Program {program_key!r} not found.")

    template_id = _clean(payload.get("templateId")) or None
    if template_id and db.session.get(CertificateTemplate, template_id) is None:
        raise CertificateIssueError(f"Template {template_id!r} not found.")

    certificate_id = _clean(payload.get("certificateId")) or generate_certificate_id()
    exists = (
        db.session.query(Certificate.id)
        .filter(Certificate.certificate_id == certificate_id)
        .first()
    )
    if exists:
        raise CertificateIssueError(f"Certificate {certificate_id!r} already exists.")

    cert = Certificate(
        certificate_id=certificate_id,
        verification_code=generate_verification_code(),
        user_name=user_name,
        user_email=_clean(payload.get("userEmail")) or None,
        completion_date=_parse_date(payload.get("completionDate")),
        organization_id=organization.id,
        program_id=program.id,
        template_id=template_id,
        issued_by=issued_by,
    )
    db.session.add(cert)
    db.session.commit()
    current_app.logger.info(
        f"[CERT] issued certificate={cert.certificate_id} program={program.id}"
    )
    return cert
