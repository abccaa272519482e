# Overview: Pytest coverage for the Flask CLI command groups.

from backoffice.extensions import db
from backoffice.models import Branch, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--branch", "HQ", "--username", "root"])
    assert result.exit_code == 0
    assert "Created user: root" in result.output

    result = runner.invoke(args=["system", "init", "--branch", "HQ", "--username", "root"])
    assert "already exists" in result.output

    assert db.session.query(Branch).filter_by(name="HQ").count() == 1
    admin = db.session.query(User).filter_by(username="root").one()
    assert admin.role == "admin" and admin.branch_id is None


def test_system_init_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init", "--password", "weak"])
    assert "Password validation failed" in result.output


def test_staff_list(app, manager_a, employee_b):
    result = app.test_cli_runner().invoke(args=["staff", "list", "--branch-id", str(manager_a.branch_id)])
    assert "manager_a" in result.output
    assert "employee_b" not in result.output


def test_permissions_list_for_role(app):
    result = app.test_cli_runner().invoke(args=["permissions", "list", "--role", "employee"])
    assert result.exit_code == 0
    assert "CREATE_SALE" in result.output
    assert "MANAGE_TREASURY" not in result.output


def test_permissions_list_unknown_role(app):
    result = app.test_cli_runner().invoke(args=["permissions", "list", "--role", "captain"])
    assert result.exit_code != 0
