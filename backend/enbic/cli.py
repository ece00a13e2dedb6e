# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/enbic/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask db upgrade
#   Apply the schema migrations.
# - python -m flask system init [--password "Password123!"]
#   Idempotent bootstrap: default users (admin, operator, officer, supervisor)
#   and the ledger sequence row.
#
# User inspection/bootstrap:
# - python -m flask users list
# - python -m flask users create --username jdoe --role officer --full-name "J. Doe"
#   Prompts for the password if --password is omitted.
#
# Jurisdictions:
# - python -m flask states list
# - python -m flask states add "Lagos"
#
# Reminders:
# - python -m flask reminders generate
#   One generation pass (what the scheduler does every interval).

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Setting, State, User
from .services.access import SYSTEM_ACTOR, VALID_ROLES
from .services.auth_service import create_user
from .services.concurrency import commit_with_retry
from .services.inventory_service import LEDGER_LOCK_KEY
from .services.reminder_service import generate_reminders
from .services.state_service import create_state


DEFAULT_USERS = [
    ("admin", "Administrator", "admin"),
    ("operator", "Default Operator", "operator"),
    ("officer", "Store Officer", "officer"),
    ("supervisor", "Supervisor", "supervisor"),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Create the default users and the ledger sequence row.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing ENBIC...")

    if db.session.query(Setting.id).filter_by(key=LEDGER_LOCK_KEY).first() is None:
        db.session.add(Setting(key=LEDGER_LOCK_KEY, value="0", updated_by="system"))
        click.echo("PASS Created ledger sequence")

    for username, full_name, role in DEFAULT_USERS:
        if db.session.query(User.id).filter_by(username=username).first() is not None:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username, password, role=role, full_name=full_name)
        except DomainError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")
            db.session.rollback()
            return
        click.echo(f"PASS Created user: {username} with role '{role}'")

    commit_with_retry()
    click.echo("DONE ENBIC initialized. Change the default passwords!")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<12} {'Active':<8} {'Name'}")
    click.echo("=" * 70)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<12} {active_str:<8} {user.full_name or '-'}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True)
@click.option('--full-name', default=None)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cli(username, role, full_name, password):
    try:
        user = create_user(username, password, role=role, full_name=full_name)
        commit_with_retry()
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@click.group('states')
def states_group():
    """Delivery jurisdictions."""


@states_group.command('list')
@with_appcontext
def list_states_cli():
    for state in db.session.query(State).order_by(State.name).all():
        click.echo(f"{state.id:<5} {state.name}")


@states_group.command('add')
@click.argument('name')
@with_appcontext
def add_state_cli(name):
    try:
        state = create_state(name, actor=SYSTEM_ACTOR)
        commit_with_retry()
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created state: {state.name} (ID: {state.id})")


@click.group('reminders')
def reminders_group():
    """Reminder engine."""


@reminders_group.command('generate')
@with_appcontext
def generate_reminders_cli():
    result = generate_reminders()
    commit_with_retry()
    click.echo(f"{'type':<28} {'created':>8} {'resolved':>8}")
    for reminder_type, count in result["created"].items():
        click.echo(f"{reminder_type:<28} {count:>8} {result['resolved'][reminder_type]:>8}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(states_group)
    app.cli.add_command(reminders_group)
