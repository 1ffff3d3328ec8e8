# Overview: Flask CLI command groups for bootstrap and account setup.

# backend/resale/cli.py
# Commands Legend (run from the backend directory):
# - python -m flask --app resale system init
#   Create all tables (idempotent).
# - python -m flask --app resale users create --username admin --email admin@resale.local --password "Password123!" --role ADMIN
#   Create a user (prompts if options are omitted).
# - python -m flask --app resale users set-credentials --username seller1 --key-id rzp_test_x --key-secret s3cret
#   Configure the gateway key pair a seller or admin receives funds into.
# - python -m flask --app resale users list
#   List users with role and credential status.
# - python -m flask --app resale brokers create --username broker1
#   Create the broker profile (and broker code) for a BROKER user.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import VALID_ROLES, ROLE_BROKER
from .services.auth_service import create_user, PasswordValidationError
from .services.credential_service import set_user_credentials, describe_user_credentials
from .services.commission_service import ensure_broker_account
from .services.errors import SettlementError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables. Use migrations (flask db upgrade) in production."""
    click.echo("START Initializing resale settlement database...")
    db.create_all()
    click.echo("PASS Tables created")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), prompt=True, help='Role')
@click.option('--broker-code', default=None, help='Referring broker code (sellers and buyers)')
@with_appcontext
def create_user_cli(username, email, password, role, broker_code):
    """Create a new user."""
    try:
        user = create_user(username, email, password, role, referred_by_code=broker_code)
    except (PasswordValidationError, ValueError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('set-credentials')
@click.option('--username', prompt=True, help='Username')
@click.option('--key-id', prompt=True, help='Gateway key id')
@click.option('--key-secret', prompt=True, hide_input=True, help='Gateway key secret')
@with_appcontext
def set_credentials_cli(username, key_id, key_secret):
    """Configure a seller's or admin's gateway key pair."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    try:
        set_user_credentials(db.session, user.id, key_id, key_secret)
    except SettlementError as e:
        click.echo(f"FAIL {e}")
        return
    masked = describe_user_credentials(user)
    click.echo(f"PASS Credentials set for {username}: key_id={masked['key_id']} secret={masked['key_secret']}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and credential status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        creds = "yes" if user.gateway_key_id and user.gateway_key_secret else "no"
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<8} {status:<8} credentials={creds} broker={user.referred_by_code or '-'}")


@click.group('brokers')
def brokers_group():
    """Broker account commands."""


@brokers_group.command('create')
@click.option('--username', prompt=True, help='Username of a BROKER user')
@with_appcontext
def create_broker_cli(username):
    """Create (or show) the broker profile and code for a BROKER user."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    if user.role != ROLE_BROKER:
        click.echo(f"FAIL User '{username}' is not a broker")
        return
    broker = ensure_broker_account(db.session, user.id)
    click.echo(f"PASS Broker {username} code: {broker.broker_code}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(brokers_group)
