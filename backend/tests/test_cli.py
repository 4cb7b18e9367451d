"""
Flask CLI command tests (flask rewards ...).
"""

from rewards.models import User
from rewards.roles import Role


def test_create_superuser(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["rewards", "create-superuser", "admin001", "admin001@mail.utoronto.ca", "Admin123!"])

    assert result.exit_code == 0
    assert "PASS" in result.output
    user = db_session.query(User).filter_by(utorid="admin001").one()
    assert user.role == "superuser"
    assert user.verified is True


def test_create_superuser_rejects_duplicate(app, db_session, make_user):
    make_user("admin001")
    runner = app.test_cli_runner()
    result = runner.invoke(args=["rewards", "create-superuser", "admin001", "x@mail.utoronto.ca", "Admin123!"])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_create_superuser_rejects_weak_password(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["rewards", "create-superuser", "admin001", "a@mail.utoronto.ca", "weak"])

    assert result.exit_code == 1
    assert db_session.query(User).filter_by(utorid="admin001").first() is None


def test_verify_ledger_clean(app, db_session, make_user):
    make_user("regular1")
    result = app.test_cli_runner().invoke(args=["rewards", "verify-ledger"])

    assert result.exit_code == 0
    assert "All balances match" in result.output


def test_verify_ledger_reports_drift(app, db_session, make_user):
    make_user("drift001", role=Role.REGULAR, points=25)
    result = app.test_cli_runner().invoke(args=["rewards", "verify-ledger"])

    assert result.exit_code == 1
    assert "drift001" in result.output
