# Overview: Flask CLI command groups for bootstrap, employee management and the offline queue.

# backend/pdv/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--password secret]
#   Idempotent bootstrap: creates tables and the default ADMIN employee.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Employees:
# - python -m flask employees create --name "Ana" --login ana --password 1234 --role SELLER
# - python -m flask employees list
#
# Offline queue:
# - python -m flask sync pending [--limit 50]
#   List writes waiting to be replayed against the central server.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import PDVError
from .models import Employee
from .permissions import ROLES
from .services import auth_service, sync_service


DEFAULT_ADMIN_LOGIN = "admin"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--login', default=DEFAULT_ADMIN_LOGIN, help='Login of the default administrator')
@click.option('--password', default='admin', help='Password of the default administrator')
@with_appcontext
def init_system(login, password):
    """
    Create the schema (if missing) and a default ADMIN employee.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing PDV...")
    db.create_all()

    existing = db.session.query(Employee).filter_by(login=login).first()
    if existing:
        click.echo(f"PASS Using existing administrator: {existing.login} (ID: {existing.id})")
        return

    try:
        admin = auth_service.create_employee({
            "name": "Administrator",
            "job_title": "Manager",
            "login": login,
            "password": password,
            "role": "ADMIN",
        })
    except PDVError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created administrator: {admin.login} (ID: {admin.id})")
    click.echo("WARN Change the default password before going live.")


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


@click.group('employees')
def employees_group():
    """Employee management commands."""


@employees_group.command('create')
@click.option('--name', required=True, help='Full name')
@click.option('--login', required=True, help='Login (unique)')
@click.option('--password', required=True, help='Password (min 4 characters)')
@click.option('--role', type=click.Choice(ROLES), default='SELLER', show_default=True)
@click.option('--job-title', default=None, help='Job title')
@with_appcontext
def create_employee_cli(name, login, password, role, job_title):
    """Create an employee with a bcrypt-hashed password."""
    try:
        employee = auth_service.create_employee({
            "name": name,
            "login": login,
            "password": password,
            "role": role,
            "job_title": job_title,
        })
    except PDVError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created employee {employee.login} (ID: {employee.id}, role: {employee.role})")


@employees_group.command('list')
@with_appcontext
def list_employees_cli():
    """List all employees."""
    employees = auth_service.list_employees(include_inactive=True)

    if not employees:
        click.echo("No employees found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Login':<20} {'Name':<30} {'Role':<10} {'Status'}")
    click.echo("="*80)
    for e in employees:
        click.echo(f"{e.id:<5} {e.login:<20} {e.name:<30} {e.role:<10} {e.status}")
    click.echo("="*80 + "\n")


@click.group('sync')
def sync_group():
    """Offline write queue commands."""


@sync_group.command('pending')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def pending_cli(limit):
    """List queued writes, oldest first."""
    entries = sync_service.list_pending(limit=limit)
    click.echo(f"{sync_service.pending_count()} pending write(s)")
    for entry in entries:
        error = f"  last error: {entry.last_error}" if entry.last_error else ""
        click.echo(f"#{entry.id:<6} {entry.method:<7} {entry.path}  attempts={entry.attempts}{error}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(sync_group)
