import json
import os

import click
from flask import current_app
from flask.cli import FlaskGroup
from flask_migrate import Migrate
from sqlalchemy import func

from atomcerts.app import create_app, db
from atomcerts.models import (
    Certificate,
    CertificateTemplate,
    Organization,
    Program,
    User,
)
from atomcerts.services.adapters import available_formats
from atomcerts.services.issuance import CertificateIssueError, issue_certificate
from atomcerts.services.rendering import render_document, render_options_from_config
from atomcerts.shared.certificates import (
    DEFAULT_TEMPLATE_DESIGN,
    DEFAULT_TEMPLATE_ID,
    certificate_field_values,
    certificate_filename,
    template_design,
)
from atomcerts.shared.fields import sample_field_values
from atomcerts.shared.storage import write_atomic

migrate = Migrate()

SAMPLE_ORG_ID = "sample-org"
SAMPLE_PROGRAM_ID = "sample-program"


def create_atomcerts_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_atomcerts_app)


def _echo_warnings(warnings) -> None:
    for warning in warnings:
        click.echo(warning, err=True)


@cli.command("seed")
@click.option("--admin-email", default="admin@atomcerts.com", show_default=True)
@click.option(
    "--admin-password",
    default=lambda: os.getenv("ADMIN_PASSWORD", "admin123"),
    help="Only used when the admin account is created.",
)
def seed(admin_email: str, admin_password: str):
    """Create or refresh the admin, default template and sample records."""
    admin = (
        db.session.query(User)
        .filter(func.lower(User.email) == admin_email.lower())
        .one_or_none()
    )
    if admin is None:
        admin = User(email=admin_email)
        admin.set_password(admin_password)
        db.session.add(admin)
    admin.name = "Administrator"
    admin.is_admin = True
    db.session.flush()

    template = db.session.get(CertificateTemplate, DEFAULT_TEMPLATE_ID)
    if template is None:
        template = CertificateTemplate(
            id=DEFAULT_TEMPLATE_ID,
            name="Default Certificate Template",
            description="A professional certificate template with standard layout",
            width=DEFAULT_TEMPLATE_DESIGN["width"],
            height=DEFAULT_TEMPLATE_DESIGN["height"],
            background_color=DEFAULT_TEMPLATE_DESIGN["backgroundColor"],
            is_default=True,
            created_by=admin.id,
        )
        template.set_elements(DEFAULT_TEMPLATE_DESIGN["elements"])
        db.session.add(template)

    org = db.session.get(Organization, SAMPLE_ORG_ID)
    if org is None:
        org = Organization(
            id=SAMPLE_ORG_ID,
            name="Sample Education Institute",
            description="A sample organization for demonstration purposes",
            created_by=admin.id,
        )
        db.session.add(org)

    program = db.session.get(Program, SAMPLE_PROGRAM_ID)
    if program is None:
        program = Program(
            id=SAMPLE_PROGRAM_ID,
            name="Web Development Fundamentals",
            description="Learn the basics of modern web development",
            organization_id=SAMPLE_ORG_ID,
            created_by=admin.id,
        )
        db.session.add(program)

    db.session.commit()
    current_app.logger.info("[SEED] admin=%s template=%s", admin.email, template.id)
    click.echo(f"admin={admin.email} template={template.id} org={org.id} program={program.id}")


@cli.command("render_template")
@click.argument("design_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--format", "output_format", type=click.Choice(available_formats()), default=None)
@click.option(
    "--values",
    "values_file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON object of field values; sample values when omitted.",
)
def render_template_cmd(design_file: str, output: str, output_format, values_file):
    """Render a template design JSON file."""
    with open(design_file, encoding="utf-8") as f:
        design = json.load(f)
    values = sample_field_values()
    if values_file:
        with open(values_file, encoding="utf-8") as f:
            values = json.load(f)
    options = render_options_from_config(current_app.config)
    result = render_document(design, values, output_format, options=options)
    write_atomic(output, result.content)
    _echo_warnings(result.warnings)
    click.echo(output)


@cli.command("render_certificate")
@click.argument("certificate_id")
@click.option("--format", "output_format", type=click.Choice(available_formats()), default=None)
@click.option("--out-dir", default=".", show_default=True)
def render_certificate_cmd(certificate_id: str, output_format, out_dir: str):
    """Render a stored certificate by its certificate id."""
    cert = (
        db.session.query(Certificate)
        .filter(Certificate.certificate_id == certificate_id)
        .one_or_none()
    )
    if cert is None:
        click.echo("Not found", err=True)
        raise SystemExit(1)
    options = render_options_from_config(current_app.config)
    result = render_document(
        template_design(cert.template),
        certificate_field_values(cert),
        output_format,
        options=options,
    )
    path = os.path.join(out_dir, certificate_filename(cert, result.extension))
    write_atomic(path, result.content)
    _echo_warnings(result.warnings)
    click.echo(path)


@cli.command("issue_certificate")
@click.option("--name", "user_name", required=True)
@click.option("--email", "user_email", default=None)
@click.option("--organization", required=True, help="Organization id or name.")
@click.option("--program", required=True, help="Program id or name.")
@click.option("--template", "template_id", default=DEFAULT_TEMPLATE_ID, show_default=True)
@click.option("--completed", "completion_date", default=None, help="YYYY-MM-DD")
def issue_certificate_cmd(user_name, user_email, organization, program, template_id, completion_date):
    """Issue a certificate and print its id and verification code."""
    try:
        cert = issue_certificate(
            {
                "userName": user_name,
                "userEmail": user_email,
                "organizationId": organization,
                "programId": program,
                "templateId": template_id,
                "completionDate": completion_date,
            }
        )
    except CertificateIssueError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    click.echo(f"{cert.certificate_id} {cert.verification_code}")


if __name__ == "__main__":
    cli()
