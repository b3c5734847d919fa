# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/assetdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--username superadmin --password "ChangeMe123!"]
#   Idempotent: creates tables if missing and the first super_admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username jdoe --password "Password123!" --role admin
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked sessions older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import AppError
from .extensions import db
from .models import User
from .models.auth import ROLE_SUPER_ADMIN, ROLES
from .services import auth_service, repository, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default=None, help='Super admin username (default: BOOTSTRAP_ADMIN_USERNAME)')
@click.option('--password', default=None, help='Super admin password (default: BOOTSTRAP_ADMIN_PASSWORD)')
@with_appcontext
def init_system(username, password):
    """Create tables and the initial super_admin account."""
    db.create_all()
    username = username or current_app.config["BOOTSTRAP_ADMIN_USERNAME"]
    password = password or current_app.config["BOOTSTRAP_ADMIN_PASSWORD"]

    existing = repository.users.filter(User.username == username).first()
    if existing is not None:
        click.echo(f"User '{username}' already exists (role={existing.role}); nothing to do.")
        return

    try:
        auth_service.create_user(username, password, role=ROLE_SUPER_ADMIN)
    except AppError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"Created super admin '{username}'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = auth_service.list_users()
    if not users:
        click.echo("No users.")
        return
    for user in users:
        click.echo(f"{user.id:>4}  {user.username:<24} {user.role}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='user', show_default=True)
@with_appcontext
def create_user_command(username, password, role):
    try:
        user = auth_service.create_user(username, password, role=role)
    except AppError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"Created user {user.username} (id={user.id}, role={user.role}).")


@click.group('maintenance')
def maintenance_group():
    """Periodic housekeeping."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', default=30, show_default=True, type=int)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} session(s).")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
