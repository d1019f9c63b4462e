"""Bulk certificate export: one ZIP with rendered files and manifests."""

from __future__ import annotations

import csv
import io
import json
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app

from ..app import db
from ..models import Certificate, ExportLog
from ..shared.certificates import (
    certificate_field_values,
    certificate_filename,
    template_design,
)
from .rendering import RenderOptions, render_document, resolve_adapter

SUMMARY_NAME = "certificates-summary.csv"
DATA_NAME = "certificates-data.json"

SUMMARY_HEADERS = [
    "Certificate ID",
    "User Name",
    "User Email",
    "Organization",
    "Program",
    "Template",
    "Issue Date",
    "Completion Date",
    "Verification Code",
    "Status",
    "File",
]


@dataclass
class ExportArchive:
    file_name: str
    content: bytes
    total: int
    failed: list[str] = field(default_factory=list)


def export_file_name(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    return f"certificates-export-{stamp}.zip"


def filtered_certificates(filters: dict) -> list[Certificate]:
    query = db.session.query(Certificate)
    organization = filters.get("organization")
    if organization and organization != "all":
        query = query.filter(Certificate.organization_id == organization)
    program = filters.get("program")
    if program and program != "all":
        query = query.filter(Certificate.program_id == program)
    status = filters.get("status")
    if status and status != "all":
        query = query.filter(Certificate.status == status)
    return query.order_by(Certificate.created_at.desc(), Certificate.id).all()


def _iso_date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _record(cert: Certificate, file_name: str | None) -> dict:
    return {
        "certificateId": cert.certificate_id,
        "userName": cert.user_name,
        "userEmail": cert.user_email,
        "organization": cert.organization.name if cert.organization else None,
        "program": cert.program.name if cert.program else None,
        "template": cert.template.name if cert.template else None,
        "issueDate": _iso_date(cert.issue_date),
        "completionDate": _iso_date(cert.completion_date),
        "verificationCode": cert.verification_code,
        "status": cert.status,
        "file": file_name,
        "rendered": file_name is not None,
    }


def build_export_archive(
    certificates: list[Certificate],
    *,
    output_format: str | None = None,
    options: RenderOptions | None = None,
) -> ExportArchive:
    """Render every certificate into a ZIP next to CSV and JSON manifests.

    A certificate that fails to render is logged and listed with an empty
    file; the archive is still produced.
    """
    options = options or RenderOptions()
    adapter = resolve_adapter(output_format, options)
    records: list[dict] = []
    failed: list[str] = []

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for cert in certificates:
            name = certificate_filename(cert, adapter.extension)
            try:
                result = render_document(
                    template_design(cert.template),
                    certificate_field_values(cert),
                    adapter,
                    options=options,
                )
            except Exception as exc:
                current_app.logger.exception(
                    f"[EXPORT] render failed certificate={cert.certificate_id}: {exc}"
                )
                failed.append(cert.certificate_id)
                records.append(_record(cert, None))
                continue
            archive.writestr(f"certificates/{name}", result.content)
            records.append(_record(cert, name))

        summary = io.StringIO()
        writer = csv.writer(summary, quoting=csv.QUOTE_ALL)
        writer.writerow(SUMMARY_HEADERS)
        for rec in records:
            writer.writerow(
                [
                    rec["certificateId"],
                    rec["userName"],
                    rec["userEmail"] or "",
                    rec["organization"] or "",
                    rec["program"] or "",
                    rec["template"] or "N/A",
                    rec["issueDate"],
                    rec["completionDate"],
                    rec["verificationCode"],
                    rec["status"],
                    rec["file"] or "failed",
                ]
            )
        archive.writestr(SUMMARY_NAME, summary.getvalue())
        archive.writestr(DATA_NAME, json.dumps(records, indent=2))

    return ExportArchive(
        file_name=export_file_name(),
        content=buffer.getvalue(),
        total=len(certificates),
        failed=failed,
    )


def record_export(archive: ExportArchive, filters: dict, user_id: str | None) -> ExportLog:
    log = ExportLog(
        file_name=archive.file_name,
        status="completed" if not archive.failed else "partial",
        total_certificates=archive.total,
        failed_certificates=len(archive.failed),
        filters=json.dumps(
            {key: filters.get(key) for key in ("organization", "program", "status", "format")}
        ),
        created_by=user_id,
        completed_at=datetime.now(timezone.utc),
    )
    db.session.add(log)
    db.session.commit()
    current_app.logger.info(
        f"[EXPORT] file={archive.file_name} total={archive.total} failed={len(archive.failed)}"
    )
    return log
