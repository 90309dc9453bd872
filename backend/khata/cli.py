# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/khata/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Load a sample catalog, two customers and two sales into an empty catalog.
# - python -m flask system summary
#   Print the dashboard totals in major units.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services.billing_service import get_billing_engine, PAYMENT_METHOD_CREDIT, PAYMENT_METHOD_UPI
from .services.concurrency import unit_of_work
from .services.reporting_service import get_dashboard_summary
from .time_utils import format_minor_units, reporting_zone


SEED_PRODUCTS = [
    {"name": "Aashirvaad Atta (5kg)", "sku": "ATA-001", "category": "Kirana", "price_cents": 23500, "stock_quantity": 20, "min_stock_level": 5},
    {"name": "Tata Salt (1kg)", "sku": "SLT-001", "category": "Kirana", "price_cents": 2500, "stock_quantity": 50, "min_stock_level": 10},
    {"name": "Paracetamol 500mg", "sku": "MED-001", "category": "Medical", "price_cents": 1500, "stock_quantity": 100, "min_stock_level": 20},
    {"name": "Classmate Notebook", "sku": "STN-001", "category": "Stationery", "price_cents": 4500, "stock_quantity": 30, "min_stock_level": 10},
    # Intentionally low stock
    {"name": "Lux Soap (Set of 4)", "sku": "SOAP-001", "category": "Kirana", "price_cents": 11000, "stock_quantity": 2, "min_stock_level": 5},
]

SEED_CUSTOMERS = [
    {"name": "Rahul Sharma", "phone": "9876543210", "address": "Flat 101, Omkar Apt"},
    {"name": "Priya Patel", "phone": "9876543211", "address": "Bungalow 5, Sunrise Society"},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop the catalog, customers and the whole ledger, then recreate the schema."""
    if not yes:
        click.confirm("WARN Products, customers and every transaction will be deleted. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo(f"PASS Schema recreated ({db.engine.url.render_as_string(hide_password=True)}).")
    click.echo("     Run 'python -m flask system seed' for sample data.")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Load sample data so the app works out of the box.

    Skipped when the catalog already has products. Sales go through the
    billing engine, so stock and credit balances are consistent with history.
    """
    engine = get_billing_engine()

    if engine.catalog.list():
        click.echo("SKIP Catalog is not empty; nothing seeded.")
        return

    with unit_of_work(db.session):
        products = [engine.catalog.create(dict(p)) for p in SEED_PRODUCTS]
        customers = [engine.ledger.create_customer(dict(c)) for c in SEED_CUSTOMERS]
    atta, salt, paracetamol = products[0], products[1], products[2]
    rahul, priya = customers

    engine.create_sale(
        items=[
            {"product_id": atta.id, "quantity": 1, "unit_price_cents": atta.price_cents},
            {"product_id": salt.id, "quantity": 2, "unit_price_cents": salt.price_cents},
        ],
        payment_method=PAYMENT_METHOD_CREDIT,
        customer_id=rahul.id,
    )
    engine.create_sale(
        items=[{"product_id": paracetamol.id, "quantity": 1, "unit_price_cents": paracetamol.price_cents}],
        payment_method=PAYMENT_METHOD_UPI,
        customer_id=priya.id,
    )

    click.echo(f"PASS Seeded {len(products)} products, {len(customers)} customers and 2 sales.")


@system_group.command('summary')
@with_appcontext
def summary():
    """Print dashboard totals (amounts shown in major units)."""
    data = get_dashboard_summary(db.session, tz=reporting_zone(current_app.config["REPORTING_TIMEZONE"]))

    click.echo("\n" + "=" * 48)
    click.echo("DASHBOARD")
    click.echo("=" * 48)
    click.echo(f"{'Low-stock products':<28} {data['total_low_stock']:>18}")
    click.echo(f"{'Receivables (udhar)':<28} {format_minor_units(data['total_receivables_cents']):>18}")
    click.echo(f"{'Sales today':<28} {format_minor_units(data['today_sales_cents']):>18}")
    click.echo(f"{'Sales this month':<28} {format_minor_units(data['this_month_sales_cents']):>18}")
    click.echo("=" * 48 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
