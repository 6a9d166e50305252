# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/voltshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role admin]
# - python -m flask users create --username ops --email ops@voltshop.local --password "Password123" --role admin
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .models import User
from .models.auth import USER_ROLES
from .services import session_service
from .services.auth_service import create_user

DEFAULT_ADMIN = ("admin", "admin@voltshop.local", "Password123")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the schema (if missing) and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing VoltShop...")
    db.create_all()
    click.echo("PASS Tables ready")

    username, email, password = DEFAULT_ADMIN
    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        create_user(username=username, email=email, password=password, role="admin", name="Administrator")
        click.echo(f"PASS Created user: {username} ({email}) with role 'admin'")
        click.echo(f"\nDefault credentials (CHANGE IN PRODUCTION!): {username} / {password}")


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
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='customer', show_default=True)
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, name):
    """
    Create a user.

    Password must be 8+ characters with an uppercase letter, a lowercase
    letter and a digit.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role, name=name)
    except ValidationError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}' (ID: {user.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default=None)
@with_appcontext
def list_users(role):
    """List users with role and active status."""
    query = db.session.query(User).order_by(User.id)
    if role:
        query = query.filter(User.role == role)
    users = query.all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {active_str}")
    click.echo("=" * 80 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete sessions that expired or were revoked more than 30 days ago."""
    count = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {count} stale sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
