# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# - Set FLASK_APP to wsgi.py.
# - python -m flask system init
#   Create tables and the default users (admin, manager, salesmen).
# - python -m flask users list
# - python -m flask users create --username jane --email jane@shop.local --name "Jane" --password "Password123!" --role manager
# - python -m flask categories create --name "Beverages"
# - python -m flask inventory drift [--product-id 1]
#   Compare stored warehouse/shop counters with the transaction log replay.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import auth_service, category_service, reconciliation_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Create all tables and the default users.

    Users: admin, manager, salesmen (all with --password).
    Change passwords immediately in production!
    """
    click.echo("START Initializing ShopLedger...")
    db.create_all()

    default_users = [
        ("admin", "admin@shopledger.local", "Administrator", "admin"),
        ("manager", "manager@shopledger.local", "Store Manager", "manager"),
        ("salesmen", "salesmen@shopledger.local", "Sales Counter", "salesmen"),
    ]

    for username, email, name, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            auth_service.create_user(username=username, email=email, name=name, password=password, role=role)
        except LedgerError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")
            continue
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    click.echo("DONE ShopLedger initialized")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.username:<20} {u.role:<12} {status}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='salesmen', show_default=True)
@with_appcontext
def create_user_command(username, email, name, password, role):
    try:
        user = auth_service.create_user(username=username, email=email, name=name, password=password, role=role)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.username} (ID: {user.id}) with role '{user.role}'")


@click.group('categories')
def categories_group():
    """Category commands."""


@categories_group.command('create')
@click.option('--name', required=True)
@click.option('--description', default=None)
@with_appcontext
def create_category_command(name, description):
    try:
        category = category_service.create_category(name=name, description=description)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created category {category.name} (ID: {category.id})")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('drift')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def drift_command(product_id):
    """Exit status 1 when any product's counters disagree with the log."""
    if product_id is not None:
        try:
            result = reconciliation_service.verify_product_stock(product_id)
        except LedgerError as e:
            click.echo(f"FAIL {e.message}: {e.details}")
            raise SystemExit(1)
        click.echo(f"PASS Product {product_id} matches the log: {result['stock']}")
        return

    drifts = reconciliation_service.detect_drift()
    if not drifts:
        click.echo("PASS All products match the transaction log")
        return
    for d in drifts:
        click.echo(
            f"FAIL Product {d['product_id']} ({d['name']}): stored {d['stored']} replayed {d['replayed']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(categories_group)
    app.cli.add_command(inventory_group)
