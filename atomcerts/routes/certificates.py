from __future__ import annotations

import io
import json

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from ..app import db
from ..models import Certificate, ExportLog
from ..services.adapters import UnknownFormatError
from ..services.exports import build_export_archive, filtered_certificates, record_export
from ..services.issuance import CertificateIssueError, issue_certificate
from ..services.rendering import render_document, render_options_from_config
from ..shared.certificates import (
    certificate_field_values,
    certificate_filename,
    template_design,
)
from ..shared.rbac import admin_required
from ..shared.template_model import TemplateValidationError

bp = Blueprint("certificates", __name__, url_prefix="/certificates")


def _certificate_payload(cert: Certificate) -> dict:
    return {
        "id": cert.id,
        "certificateId": cert.certificate_id,
        "verificationCode": cert.verification_code,
        "userName": cert.user_name,
        "userEmail": cert.user_email,
        "completionDate": cert.completion_date.isoformat() if cert.completion_date else None,
        "issueDate": cert.issue_date.isoformat() if cert.issue_date else None,
        "status": cert.status,
        "organization": {"id": cert.organization.id, "name": cert.organization.name}
        if cert.organization
        else None,
        "program": {"id": cert.program.id, "name": cert.program.name}
        if cert.program
        else None,
        "issuer": {"name": cert.issuer.name} if cert.issuer else None,
    }


def _json_or_none(raw: str | None):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _load_certificate(key: str) -> Certificate:
    cert = db.session.get(Certificate, key)
    if cert is None:
        cert = (
            db.session.query(Certificate)
            .filter(Certificate.certificate_id == key)
            .one_or_none()
        )
    if cert is None:
        abort(404)
    return cert


@bp.post("")
@admin_required
def create(current_user):
    payload = request.get_json(silent=True) or {}
    try:
        cert = issue_certificate(payload, issued_by=current_user.id)
    except CertificateIssueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(_certificate_payload(cert)), 201


@bp.get("/verify")
def verify():
    code = (request.args.get("code") or "").strip()
    if not code:
        return jsonify({"error": "Certificate ID or verification code is required."}), 400
    cert = (
        db.session.query(Certificate)
        .filter(Certificate.certificate_id == code)
        .one_or_none()
    )
    if cert is None:
        cert = (
            db.session.query(Certificate)
            .filter(Certificate.verification_code == code.upper())
            .one_or_none()
        )
    if cert is None:
        return jsonify({"error": "Certificate not found or invalid."}), 404
    return jsonify(_certificate_payload(cert))


@bp.get("/<cert_id>/download")
@admin_required
def download(cert_id: str, current_user):
    cert = _load_certificate(cert_id)
    options = render_options_from_config(current_app.config)
    try:
        result = render_document(
            template_design(cert.template),
            certificate_field_values(cert),
            request.args.get("format"),
            options=options,
        )
    except UnknownFormatError as exc:
        return jsonify({"error": str(exc)}), 400
    except TemplateValidationError as exc:
        current_app.logger.warning(
            f"[CERT-DOWNLOAD] invalid template certificate={cert.certificate_id}: {exc}"
        )
        return jsonify({"error": str(exc)}), 422
    for warning in result.warnings:
        current_app.logger.info(
            f"[CERT-DOWNLOAD] certificate={cert.certificate_id} {warning}"
        )
    return send_file(
        io.BytesIO(result.content),
        mimetype=result.media_type,
        as_attachment=True,
        download_name=certificate_filename(cert, result.extension),
    )


@bp.post("/<cert_id>/revoke")
@admin_required
def revoke(cert_id: str, current_user):
    cert = _load_certificate(cert_id)
    cert.status = "revoked"
    db.session.commit()
    current_app.logger.info(
        f"[CERT] revoked certificate={cert.certificate_id} by={current_user.id}"
    )
    return jsonify({"ok": True, "status": cert.status})


@bp.post("/export")
@admin_required
def export(current_user):
    filters = request.get_json(silent=True) or {}
    if not isinstance(filters, dict):
        return jsonify({"error": "Export filters must be a JSON object."}), 400
    certificates = filtered_certificates(filters)
    if not certificates:
        return jsonify({"error": "No certificates found matching the specified filters."}), 404
    options = render_options_from_config(current_app.config)
    try:
        archive = build_export_archive(
            certificates, output_format=filters.get("format"), options=options
        )
    except UnknownFormatError as exc:
        return jsonify({"error": str(exc)}), 400
    record_export(archive, filters, current_user.id)
    return send_file(
        io.BytesIO(archive.content),
        mimetype="application/zip",
        as_attachment=True,
        download_name=archive.file_name,
    )


@bp.get("/exports")
@admin_required
def export_logs(current_user):
    logs = (
        db.session.query(ExportLog)
        .order_by(ExportLog.created_at.desc(), ExportLog.id.desc())
        .limit(50)
        .all()
    )
    items = []
    for log in logs:
        items.append(
            {
                "id": log.id,
                "fileName": log.file_name,
                "status": log.status,
                "totalCertificates": log.total_certificates,
                "failedCertificates": log.failed_certificates,
                "filters": _json_or_none(log.filters),
                "createdAt": log.created_at.isoformat() if log.created_at else None,
                "completedAt": log.completed_at.isoformat() if log.completed_at else None,
            }
        )
    return jsonify(items=items)
