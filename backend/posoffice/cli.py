# Overview: Flask CLI command groups for bootstrap, uploads, and maintenance.

# backend/posoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app posoffice <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app posoffice system init
#   Idempotent bootstrap: creates tables and the default supervisor/operator users.
# - python -m flask --app posoffice system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask --app posoffice users list
#   List all users with role and active status.
# - python -m flask --app posoffice users create --email ops@posoffice.local --password "Password123!" --role OPERATOR
#   Create a user (prompts if options are omitted).
#
# Uploads (same pipeline as the HTTP endpoints):
# - python -m flask --app posoffice uploads run products products.tsv --report products-report.tsv
#
# Maintenance:
# - python -m flask --app posoffice maintenance cleanup-sessions
#   Delete expired and revoked session tokens.

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import User
from .models.auth import ROLE_OPERATOR, ROLE_SUPERVISOR, ROLES
from .services import session_service, upload_service
from .services.auth_service import create_user
from .services.importers import IMPORTERS


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and default users.

    Users: supervisor@posoffice.local (SUPERVISOR), operator@posoffice.local (OPERATOR)
    Both passwords default to "Password123!".

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing posoffice...")
    db.create_all()
    click.echo("PASS Tables ready")

    default_password = "Password123!"
    default_users = [
        ("supervisor@posoffice.local", ROLE_SUPERVISOR),
        ("operator@posoffice.local", ROLE_OPERATOR),
    ]

    for email, role in default_users:
        if db.session.query(User.id).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(email, default_password, role)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except PosError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e.message}")

    click.echo("\nDONE posoffice initialized")
    click.echo("Default credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   supervisor@posoffice.local / {default_password}")
    click.echo(f"   operator@posoffice.local   / {default_password}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, password, role):
    """
    Create a user with an explicit role.

    The password goes through the same strength rules as /api/auth/signup.
    """
    try:
        user = create_user(email, password, role)
    except PosError as e:
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found. Run 'python -m flask system init' first.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<40} {user.role:<10} {status}")


@click.group('uploads')
def uploads_group():
    """Run TSV uploads from the command line."""


@uploads_group.command('run')
@click.argument('kind', type=click.Choice(sorted(IMPORTERS)))
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--report', 'report_path', type=click.Path(dir_okay=False), help='Where to write the report TSV')
@with_appcontext
def run_upload_cli(kind, path, report_path):
    """Process a TSV file exactly as the upload endpoint would."""
    with open(path, "rb") as fh:
        content = fh.read()

    try:
        report = upload_service.process_upload(kind, path, content)
    except PosError as e:
        raise click.ClickException(e.message)

    target = report_path or report.filename
    with open(target, "wb") as fh:
        fh.write(report.content)

    click.echo(
        f"PASS {report.accepted} accepted, {report.rejected} rejected, "
        f"{report.unparsed} unparsed. Report written to {target}"
    )


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired and revoked session tokens."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or revoked sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(uploads_group)
    app.cli.add_command(maintenance_group)
