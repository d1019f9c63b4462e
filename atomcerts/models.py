from __future__ import annotations

import json
import uuid

from sqlalchemy.orm import validates

from .app import db
from .shared.passwords import hash_password, verify_password


def _new_id() -> str:
    return uuid.uuid4().hex


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255))
    password_hash = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_users_email_lower", db.func.lower(email), unique=True),
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    def set_password(self, plain: str) -> None:
        self.password_hash = hash_password(plain)

    def check_password(self, plain: str) -> bool:
        ok, new_hash = verify_password(plain, self.password_hash)
        if ok and new_hash:
            self.password_hash = new_hash
        return ok


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    created_by = db.Column(db.String(64), db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    programs = db.relationship(
        "Program", back_populates="organization", cascade="all, delete-orphan"
    )


class Program(db.Model):
    __tablename__ = "programs"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    organization_id = db.Column(
        db.String(64),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by = db.Column(db.String(64), db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    organization = db.relationship("Organization", back_populates="programs")


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    width = db.Column(db.Integer, nullable=False, default=1123)
    height = db.Column(db.Integer, nullable=False, default=794)
    background_color = db.Column(
        db.String(32), nullable=False, default="#ffffff", server_default="#ffffff"
    )
    background_image = db.Column(db.Text)
    # JSON array of editor elements, stored verbatim
    elements = db.Column(db.Text, nullable=False, default="[]", server_default="[]")
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(64), db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    creator = db.relationship("User")

    def set_elements(self, elements: list[dict]) -> None:
        self.elements = json.dumps(elements, separators=(",", ":"))


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    certificate_id = db.Column(db.String(64), nullable=False, unique=True)
    verification_code = db.Column(db.String(32), nullable=False, unique=True)
    user_name = db.Column(db.String(255), nullable=False)
    user_email = db.Column(db.String(255))
    completion_date = db.Column(db.Date)
    issue_date = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    status = db.Column(
        db.String(16), nullable=False, default="active", server_default="active"
    )
    organization_id = db.Column(
        db.String(64), db.ForeignKey("organizations.id"), nullable=False
    )
    program_id = db.Column(db.String(64), db.ForeignKey("programs.id"), nullable=False)
    template_id = db.Column(
        db.String(64),
        db.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    issued_by = db.Column(db.String(64), db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    organization = db.relationship("Organization")
    program = db.relationship("Program")
    template = db.relationship("CertificateTemplate")
    issuer = db.relationship("User")


class ExportLog(db.Model):
    __tablename__ = "export_logs"

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    total_certificates = db.Column(db.Integer, nullable=False, default=0)
    failed_certificates = db.Column(db.Integer, nullable=False, default=0)
    filters = db.Column(db.Text)
    created_by = db.Column(db.String(64), db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    completed_at = db.Column(db.DateTime)
