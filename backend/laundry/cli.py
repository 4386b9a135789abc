# Overview: Flask CLI commands for bootstrap and ledger inspection.

# backend/laundry/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask laundry <command> [options]
#
# - python -m flask laundry init-db
#   Create all tables (development; use `flask db upgrade` with migrations elsewhere).
# - python -m flask laundry reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask laundry seed-demo
#   Create a demo branch with employees and consumable stock. Idempotent.
# - python -m flask laundry verify-stock [--branch-id 1]
#   Replay every item's StockLog and report items whose stock does not match.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, InventoryItem
from .services import branch_service, inventory_service

SYSTEM_USER_ID = 0

DEMO_STOCK = (
    ("Liquid Detergent", "DETERGENT", "liters", 40, 10),
    ("Fabric Softener", "SOFTENER", "liters", 25, 8),
    ("Garment Bags", "PACKAGING", "pieces", 200, 50),
    ("Wire Hangers", "HANGERS", "pieces", 300, 100),
    ("Stain Remover", "STAIN_REMOVAL", "liters", 10, 3),
)


@click.group('laundry')
def laundry_group():
    """Laundry engine bootstrap and audit commands."""


@laundry_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@laundry_group.command('reset-db')
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

    click.echo("PASS Database reset complete. Run 'python -m flask laundry seed-demo' for demo data.")


@laundry_group.command('seed-demo')
@click.option('--name', 'branch_name', default='Main Branch', help='Demo branch name')
@click.option('--code', 'branch_code', default='MAIN', help='Demo branch code')
@with_appcontext
def seed_demo(branch_name, branch_code):
    """Create a demo branch, two employees and starting stock."""
    branch = db.session.query(Branch).filter_by(code=branch_code.upper()).first()
    if branch:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")
    else:
        branch = branch_service.create_branch(name=branch_name, code=branch_code)
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")

        for full_name, job_role in (("Demo Washer", "WASHER"), ("Demo Ironer", "IRONER")):
            employee = branch_service.create_employee(branch_id=branch.id, full_name=full_name, job_role=job_role)
            click.echo(f"PASS Created employee: {employee.full_name} ({employee.employee_number})")

    for item_name, category, unit, stock, reorder_level in DEMO_STOCK:
        exists = db.session.query(InventoryItem.id).filter_by(branch_id=branch.id, item_name=item_name).first()
        if exists:
            click.echo(f"SKIP {item_name} already stocked")
            continue
        inventory_service.create_inventory_item(
            branch_id=branch.id,
            item_name=item_name,
            category=category,
            unit=unit,
            initial_stock=stock,
            reorder_level=reorder_level,
            actor_user_id=SYSTEM_USER_ID,
        )
        click.echo(f"PASS Stocked {item_name}: {stock} {unit}")

    click.echo("DONE Demo data ready")


@laundry_group.command('verify-stock')
@click.option('--branch-id', type=int, default=None, help='Only check one branch')
@with_appcontext
def verify_stock(branch_id):
    """Replay StockLog rows and compare against current stock for every item."""
    q = db.session.query(InventoryItem.id).order_by(InventoryItem.id)
    if branch_id is not None:
        q = q.filter(InventoryItem.branch_id == branch_id)

    mismatches = 0
    checked = 0
    for (item_id,) in q.all():
        result = inventory_service.verify_stock_log(item_id)
        checked += 1
        if not result["consistent"]:
            mismatches += 1
            click.echo(
                f"FAIL item {item_id}: stock={result['current_stock']} "
                f"replayed={result['replayed_stock']} logs={result['log_count']}"
            )

    if mismatches:
        click.echo(f"FAIL {mismatches} of {checked} items inconsistent")
        raise SystemExit(1)
    click.echo(f"PASS {checked} items consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(laundry_group)
