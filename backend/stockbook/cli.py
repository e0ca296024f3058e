# Overview: Flask CLI command groups for bootstrap, catalog setup and ledger inspection.

# backend/stockbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="stockbook").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-category --name "Beverages"
# - python -m flask catalog add-product --name "Tea" --category-id 1 --purchase-price 2.50 --wholesale-price 3.00 --retail-price 3.50 --stock 20
# - python -m flask catalog add-customer --name "Warung Sari" --credit-limit 500
# - python -m flask catalog stock-report [--status low_stock] [--threshold 5]
#
# Ledger inspection:
# - python -m flask ledger overdue [--as-of 2025-01-31T00:00]
#   List overdue credit sales and purchases.
# - python -m flask ledger credit CUST-0001
#   Show a customer's credit limit, exposure and remaining credit.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import catalog_service, credit_service, purchase_service, sales_service
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready")


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

    click.echo("PASS Database reset complete")


@click.group('catalog')
def catalog_group():
    """Category, product and customer setup."""


@catalog_group.command('add-category')
@click.option('--name', required=True, help='Category name')
@with_appcontext
def add_category(name):
    try:
        category = catalog_service.create_category(name)
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Category: {category.name} (ID: {category.id})")


@catalog_group.command('add-product')
@click.option('--name', required=True)
@click.option('--category-id', type=int, required=True)
@click.option('--purchase-price', required=True)
@click.option('--wholesale-price', required=True)
@click.option('--retail-price', default=None)
@click.option('--stock', type=int, default=0, help='Opening stock')
@click.option('--unit', default=None, help='Unit of measure (default from config)')
@with_appcontext
def add_product(name, category_id, purchase_price, wholesale_price, retail_price, stock, unit):
    try:
        product = catalog_service.create_product(
            name=name,
            category_id=category_id,
            purchase_price=purchase_price,
            wholesale_price=wholesale_price,
            retail_price=retail_price,
            current_stock=stock,
            unit=unit,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Product: {product.product_code} {product.name} (stock {product.current_stock} {product.unit})")


@catalog_group.command('add-customer')
@click.option('--name', required=True)
@click.option('--phone', default=None)
@click.option('--email', default=None)
@click.option('--address', default=None)
@click.option('--credit-limit', default="0")
@with_appcontext
def add_customer(name, phone, email, address, credit_limit):
    try:
        customer = catalog_service.create_customer(
            name=name, phone=phone, email=email, address=address, credit_limit=credit_limit,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Customer: {customer.customer_code} {customer.name} (limit {customer.credit_limit})")


@catalog_group.command('stock-report')
@click.option('--status', type=click.Choice(['in_stock', 'low_stock', 'out_of_stock']), default=None)
@click.option('--threshold', type=int, default=None, help='Low stock threshold')
@with_appcontext
def stock_report(status, threshold):
    threshold = threshold if threshold is not None else current_app.config["LOW_STOCK_THRESHOLD"]
    products = catalog_service.list_products(status=status, threshold=threshold)
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'Code':<12} {'Name':<30} {'Stock':>8} {'Unit':<6} {'Status'}")
    click.echo("=" * 80)
    for p in products:
        click.echo(f"{p.product_code:<12} {p.name[:30]:<30} {p.current_stock:>8} {p.unit:<6} {p.stock_status(threshold)}")
    click.echo("=" * 80 + "\n")


@click.group('ledger')
def ledger_group():
    """Sales and purchase ledger inspection."""


@ledger_group.command('overdue')
@click.option('--as-of', default=None, help='ISO datetime (UTC) to evaluate against, default now')
@with_appcontext
def overdue(as_of):
    """List overdue credit documents."""
    try:
        now = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter(f"not an ISO datetime: {as_of}", param_hint="--as-of")
    sales = sales_service.overdue_sales(now=now)
    purchases = purchase_service.overdue_purchases(now=now)
    if not sales and not purchases:
        click.echo("No overdue documents.")
        return

    for sale in sales:
        click.echo(f"SALE      {sale.invoice_number:<20} due {sale.due_date} remaining {sale.remaining_amount}")
    for purchase in purchases:
        click.echo(f"PURCHASE  {purchase.purchase_number:<20} due {purchase.due_date} remaining {purchase.remaining_amount}")


@ledger_group.command('credit')
@click.argument('customer_code')
@with_appcontext
def credit(customer_code):
    """Show credit exposure for a customer."""
    try:
        customer = catalog_service.get_customer_by_code(customer_code)
    except LedgerError as e:
        raise click.ClickException(str(e))
    summary = credit_service.credit_summary(customer.id)
    click.echo(f"Customer:  {summary['customer_code']} {customer.name}")
    click.echo(f"Limit:     {summary['credit_limit']}")
    click.echo(f"Used:      {summary['total_credit_used']}")
    click.echo(f"Remaining: {summary['remaining_credit']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
