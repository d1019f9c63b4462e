from __future__ import annotations

import base64
import io
import json
import re

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from ..app import db
from ..models import Certificate, CertificateTemplate
from ..services.adapters import UnknownFormatError
from ..services.rendering import render_document, render_options_from_config
from ..shared.certificates import template_design
from ..shared.fields import sample_field_values
from ..shared.rbac import admin_required
from ..shared.template_model import TemplateValidationError, normalize_template

bp = Blueprint("templates", __name__, url_prefix="/templates")

DEFAULT_WIDTH = 1123
DEFAULT_HEIGHT = 794
PREVIEW_FORMAT = "png"
INLINE_IMAGE_TYPES = ("image/png", "image/jpeg")


def _slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "template"


def _template_payload(record: CertificateTemplate) -> dict:
    design = template_design(record)
    return {
        "id": record.id,
        "name": record.name,
        "description": record.description or "",
        "width": record.width,
        "height": record.height,
        "backgroundColor": record.background_color,
        "backgroundImage": record.background_image or "",
        "elements": design["elements"],
        "isDefault": record.is_default,
        "creator": {"name": record.creator.name} if record.creator else None,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
        "updatedAt": record.updated_at.isoformat() if record.updated_at else None,
    }


def _apply_design(record: CertificateTemplate, payload) -> tuple[dict, int] | None:
    """Copy an editor payload onto ``record``; returns an error response on bad input."""
    if not isinstance(payload, dict):
        return {"error": "Request body must be a JSON object."}, 400
    name = str(payload.get("name") or "").strip()
    elements = payload.get("elements")
    if isinstance(elements, str):
        try:
            elements = json.loads(elements)
        except ValueError:
            elements = None
    if not name or not isinstance(elements, list):
        return {"error": "Name and elements are required."}, 400
    design = {
        "width": payload.get("width") or DEFAULT_WIDTH,
        "height": payload.get("height") or DEFAULT_HEIGHT,
        "elements": elements,
    }
    try:
        canvas = normalize_template(design)
    except TemplateValidationError as exc:
        return {"error": str(exc)}, 422
    record.name = name
    record.description = str(payload.get("description") or "")
    record.width = int(round(canvas.width))
    record.height = int(round(canvas.height))
    record.background_color = str(payload.get("backgroundColor") or "#ffffff")
    record.background_image = payload.get("backgroundImage") or None
    record.set_elements(elements)
    return None


@bp.get("")
@admin_required
def list_templates(current_user):
    records = (
        db.session.query(CertificateTemplate)
        .order_by(CertificateTemplate.created_at.desc(), CertificateTemplate.name)
        .all()
    )
    return jsonify({"templates": [_template_payload(record) for record in records]})


@bp.post("")
@admin_required
def create(current_user):
    record = CertificateTemplate(created_by=current_user.id)
    error = _apply_design(record, request.get_json(silent=True))
    if error:
        return jsonify(error[0]), error[1]
    db.session.add(record)
    db.session.commit()
    current_app.logger.info(f"[TEMPLATE] created template={record.id} by={current_user.id}")
    return jsonify(_template_payload(record)), 201


@bp.put("/<template_id>")
@admin_required
def update(template_id: str, current_user):
    record = db.session.get(CertificateTemplate, template_id)
    if record is None:
        abort(404)
    error = _apply_design(record, request.get_json(silent=True))
    if error:
        return jsonify(error[0]), error[1]
    db.session.commit()
    current_app.logger.info(f"[TEMPLATE] updated template={record.id} by={current_user.id}")
    return jsonify(_template_payload(record))


@bp.delete("/<template_id>")
@admin_required
def delete(template_id: str, current_user):
    record = db.session.get(CertificateTemplate, template_id)
    if record is None:
        abort(404)
    if record.is_default:
        return jsonify({"error": "Cannot delete default template."}), 400
    # certificates fall back to the built-in design
    db.session.query(Certificate).filter(Certificate.template_id == record.id).update(
        {Certificate.template_id: None}, synchronize_session=False
    )
    db.session.delete(record)
    db.session.commit()
    current_app.logger.info(f"[TEMPLATE] deleted template={template_id} by={current_user.id}")
    return jsonify({"message": "Template deleted."})


def _render_sample(design, output_format):
    options = render_options_from_config(current_app.config)
    return render_document(design, sample_field_values(), output_format, options=options)


@bp.post("/<template_id>/preview")
@admin_required
def preview(template_id: str, current_user):
    payload = request.get_json(silent=True) or {}
    design = payload.get("design")
    if design is None:
        record = db.session.get(CertificateTemplate, template_id)
        if record is None:
            abort(404)
        design = template_design(record)
    try:
        result = _render_sample(design, payload.get("format") or PREVIEW_FORMAT)
    except UnknownFormatError as exc:
        return jsonify({"error": str(exc)}), 400
    except TemplateValidationError as exc:
        return jsonify({"error": str(exc)}), 422
    for warning in result.warnings:
        current_app.logger.info(f"[TEMPLATE-PREVIEW] template={template_id} {warning}")
    if result.media_type in INLINE_IMAGE_TYPES:
        encoded = base64.b64encode(result.content).decode("ascii")
        return jsonify(
            {
                "image": f"data:{result.media_type};base64,{encoded}",
                "warnings": list(result.warnings),
            }
        )
    return send_file(io.BytesIO(result.content), mimetype=result.media_type)


@bp.get("/<template_id>/download")
@admin_required
def download(template_id: str, current_user):
    record = db.session.get(CertificateTemplate, template_id)
    if record is None:
        abort(404)
    try:
        result = _render_sample(template_design(record), request.args.get("format"))
    except UnknownFormatError as exc:
        return jsonify({"error": str(exc)}), 400
    except TemplateValidationError as exc:
        current_app.logger.warning(f"[TEMPLATE-DOWNLOAD] template={template_id}: {exc}")
        return jsonify({"error": str(exc)}), 422
    return send_file(
        io.BytesIO(result.content),
        mimetype=result.media_type,
        as_attachment=True,
        download_name=f"{_slug(record.name)}-preview.{result.extension}",
    )
