# Overview: Flask CLI command groups for bootstrap, catalog inspection, and customer setup.

# backend/martpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` once migrations are in use.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --name "Milk 1L" --price 12.50 --barcode 7891234567 --stock 24
#   Add a product.
# - python -m flask catalog low-stock [--threshold 5]
#   List products at or below their minimum stock level.
#
# Customers:
# - python -m flask customers add --name "Kofi Mensah" --phone "+233 20 000 0000" --credit-limit 500
#   Register a customer (credit limit defaults to 0 = no credit).

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .services import catalog_service, credit_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('catalog')
def catalog_group():
    """Catalog inspection and setup commands."""


@catalog_group.command('add-product')
@click.option('--name', required=True, help='Product name')
@click.option('--price', required=True, help='Retail price, e.g. 12.50')
@click.option('--barcode', help='Scannable code printed on the packaging')
@click.option('--stock', type=int, default=0, show_default=True, help='Opening stock quantity')
@click.option('--cost', help='Cost price')
@click.option('--min-stock', type=int, help='Low-stock threshold (default from config)')
@click.option('--category', help='Category name (created if missing)')
@with_appcontext
def add_product_cli(name, price, barcode, stock, cost, min_stock, category):
    """
    Add a product to the catalog.

    Example:
        flask catalog add-product --name "Milk 1L" --price 12.50 --barcode 7891234567 --stock 24
    """
    try:
        product = catalog_service.create_product(
            name=name,
            retail_price=price,
            barcode=barcode,
            stock_quantity=stock,
            cost_price=cost,
            min_stock_level=min_stock,
            category_name=category,
        )
    except PosError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")
    click.echo(f"   Barcode: {product.barcode or 'None'}")
    click.echo(f"   Price: {product.retail_price}  Stock: {product.stock_quantity}")


@catalog_group.command('low-stock')
@click.option('--threshold', type=int, help='List products with stock below this instead')
@with_appcontext
def low_stock_cli(threshold):
    """List products at or below their minimum stock level."""
    products = catalog_service.low_stock_products(threshold)

    if not products:
        click.echo("No low-stock products.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Barcode':<16} {'Name':<36} {'Stock':>8} {'Min':>8}")
    click.echo("="*80)
    for p in products:
        click.echo(
            f"{p.id:<6} {(p.barcode or '-'):<16} {p.name[:36]:<36} "
            f"{p.stock_quantity:>8} {p.min_stock_level:>8}"
        )
    click.echo("="*80)
    click.echo(f"Total: {len(products)} product(s)\n")


@click.group('customers')
def customers_group():
    """Customer account commands."""


@customers_group.command('add')
@click.option('--name', required=True, help='Customer name')
@click.option('--phone', help='Phone number')
@click.option('--email', help='Email address')
@click.option('--address', help='Address')
@click.option('--credit-limit', default='0', show_default=True, help='Credit limit (0 = no credit)')
@with_appcontext
def add_customer_cli(name, phone, email, address, credit_limit):
    """
    Register a customer.

    Example:
        flask customers add --name "Kofi Mensah" --credit-limit 500
    """
    try:
        customer = credit_service.create_customer(
            name=name,
            phone=phone,
            email=email,
            address=address,
            credit_limit=credit_limit,
        )
    except PosError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")
    click.echo(f"   Credit limit: {customer.credit_limit}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(customers_group)
