# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo customer and a handful of stocked products (idempotent by SKU).
#
# Ledger inspection:
# - python -m flask ledger verify [--product-id 3]
#   Replay stock movements and report products whose ledger does not reconcile.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import NotFoundError
from .models import Customer, Product
from .services import ledger_service
from .services.products_service import create_product


DEMO_PRODUCTS = [
    {"sku": "WID-001", "name": "Widget", "price_cents": 1999, "cost_price_cents": 850, "stock": 40, "min_stock": 10},
    {"sku": "GAD-001", "name": "Gadget", "price_cents": 4999, "cost_price_cents": 2100, "stock": 12, "min_stock": 5},
    {"sku": "GIZ-001", "name": "Gizmo", "price_cents": 899, "cost_price_cents": 300, "stock": 3, "min_stock": 5},
    {"sku": "SPR-001", "name": "Spare Part", "price_cents": 250, "cost_price_cents": 90, "stock": 0},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Create demo data. Initial stock goes through the ledger like any other
    product creation, so `ledger verify` passes on a fresh seed.
    """
    customer = db.session.query(Customer).filter_by(email="demo@stockroom.local").first()
    if not customer:
        customer = Customer(name="Demo Customer", email="demo@stockroom.local", phone="555-0100")
        db.session.add(customer)
        db.session.commit()
        click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")
    else:
        click.echo(f"SKIP Customer exists: {customer.name} (ID: {customer.id})")

    for fields in DEMO_PRODUCTS:
        existing = db.session.query(Product).filter_by(sku=fields["sku"]).first()
        if existing:
            click.echo(f"SKIP Product exists: {existing.sku} (stock {existing.stock})")
            continue
        product = create_product(**fields)
        click.echo(f"PASS Created product: {product.sku} {product.name} (stock {product.stock})")

    click.echo("DONE Demo data ready.")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Verify a single product')
@with_appcontext
def verify_ledger(product_id):
    """Replay each product's movements and compare with its current stock."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]

    failures = 0
    for pid in product_ids:
        try:
            report = ledger_service.verify_stock_history(pid)
        except NotFoundError as e:
            raise click.ClickException(e.message)
        if report["reconciles"]:
            click.echo(
                f"PASS product {pid}: {report['movement_count']} movements, stock {report['current_stock']}"
            )
            continue

        failures += 1
        click.echo(
            f"FAIL product {pid}: replayed {report['replayed_stock']}, current {report['current_stock']}"
        )
        for problem in report["breaks"]:
            click.echo(f"     movement {problem['movement_id']}: {problem['problem']}")

    if failures:
        raise click.ClickException(f"{failures} product ledger(s) do not reconcile")
    click.echo(f"DONE {len(product_ids)} product ledger(s) reconcile.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
