# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch "Head Office"] [--password "Password123!"]
#   Idempotent bootstrap: creates the first branch and an admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Staff inspection:
# - python -m flask staff list [--branch-id 1]
#   List staff with roles and branches.
#
# Permission reference:
# - python -m flask permissions list [--role employee]
#   Print permission codes by category, optionally only those a role holds.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, User
from .permissions import (
    PermissionCategory,
    DEFAULT_ROLE_PERMISSIONS,
    get_permissions_by_category,
    get_permission_definition,
)
from .services.auth_service import hash_password, PasswordValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Head Office', help='Name of the first branch')
@click.option('--username', default='admin', help='Admin username')
@click.option('--password', default='Password123!', help='Admin password')
@with_appcontext
def init_system(branch_name, username, password):
    """
    Initialize the back office: first branch and an admin account.

    The admin has no branch (head office sees every branch).

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing back office...")

    branch = db.session.query(Branch).filter_by(name=branch_name).first()
    if not branch:
        branch = Branch(name=branch_name)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        try:
            user = User(
                username=username,
                full_name="Administrator",
                role="admin",
                branch_id=None,
                password_hash=hash_password(password),
            )
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {str(e)}")
            return
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {username} with role 'admin'")

    click.echo("\n" + "="*60)
    click.echo("DONE Back office initialized")
    click.echo("="*60)
    click.echo("\nSECURITY WARNING:")
    click.echo("   - Change the admin password immediately in production!")
    click.echo("   - Password requirements: 8+ chars, uppercase, lowercase, digit, special char")
    click.echo("")


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

    click.echo("DONE Database reset complete")


@click.group('staff')
def staff_group():
    """Staff inspection commands."""


@staff_group.command('list')
@click.option('--branch-id', type=int, default=None, help='Only staff of this branch')
@with_appcontext
def list_staff(branch_id):
    """List staff with roles and branches."""
    q = db.session.query(User).order_by(User.id)
    if branch_id is not None:
        q = q.filter(User.branch_id == branch_id)
    users = q.all()
    if not users:
        click.echo("No staff found.")
        return
    for u in users:
        status = "archived" if u.is_deleted else "active"
        branch = u.branch.name if u.branch else "-"
        click.echo(f"{u.id:>4}  {u.username:<16} {u.role:<16} {branch:<20} {status}")


@click.group('permissions')
def permissions_group():
    """Permission reference commands."""


@permissions_group.command('list')
@click.option('--role', default=None, help='Only permissions held by this role')
def list_permissions(role):
    """Print permission codes grouped by category."""
    if role is not None and role not in DEFAULT_ROLE_PERMISSIONS:
        raise click.BadParameter(f"unknown role '{role}'", param_hint='--role')
    held = set(DEFAULT_ROLE_PERMISSIONS[role]) if role else None

    categories = [v for k, v in vars(PermissionCategory).items() if not k.startswith('_')]
    for category in categories:
        codes = [perm[0] for perm in get_permissions_by_category(category)]
        if held is not None:
            codes = [c for c in codes if c in held]
        if not codes:
            continue
        click.echo(category)
        for code in codes:
            definition = get_permission_definition(code)
            click.echo(f"  {code:<22} {definition['description']}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(permissions_group)
