# Overview: Flask CLI command group for bootstrap and ledger maintenance.

# backend/rewards/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to rewards (PowerShell: $env:FLASK_APP="rewards").
# - Use: python -m flask rewards <command> [options]
#
# - python -m flask rewards init-db
#   Create all tables (idempotent).
# - python -m flask rewards create-superuser UTORID EMAIL PASSWORD [--name NAME]
#   Create an activated, verified superuser account.
# - python -m flask rewards verify-ledger
#   Recompute every balance from transaction history; exits 1 on divergence.

import click
from flask.cli import with_appcontext

from .errors import RewardsError
from .extensions import db
from .models import User
from .roles import Role
from .services.auth_service import hash_password
from .services.ledger_service import verify_ledger


@click.group("rewards")
def rewards_group():
    """Campus rewards maintenance commands."""
    pass


@rewards_group.command("init-db")
@with_appcontext
def init_db_cli():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@rewards_group.command("create-superuser")
@click.argument("utorid")
@click.argument("email")
@click.argument("password")
@click.option("--name", default=None, help="Display name (defaults to the utorid)")
@with_appcontext
def create_superuser_cli(utorid, email, password, name):
    """Create an activated, verified superuser."""
    if db.session.query(User).filter_by(utorid=utorid).first():
        click.echo(f"FAIL User '{utorid}' already exists")
        raise SystemExit(1)

    try:
        password_hash = hash_password(password)
    except RewardsError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        raise SystemExit(1)

    user = User(
        utorid=utorid,
        name=name or utorid,
        email=email,
        role=Role.SUPERUSER.label,
        points=0,
        verified=True,
        activated=True,
        password_hash=password_hash,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created superuser: {utorid} (ID: {user.id})")


@rewards_group.command("verify-ledger")
@with_appcontext
def verify_ledger_cli():
    """Compare stored balances against the ledger."""
    mismatches = verify_ledger()
    if not mismatches:
        click.echo("PASS All balances match the ledger")
        return

    for m in mismatches:
        click.echo(f"FAIL {m.utorid} (ID: {m.user_id}): stored={m.stored} computed={m.computed}")
    click.echo(f"\n{len(mismatches)} balance(s) diverge from the ledger")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(rewards_group)
