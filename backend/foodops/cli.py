# Overview: Flask CLI command groups for bootstrap, catalog setup and stock inspection.

# backend/foodops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --code HOK-L --name "Hokkaido Large" --price 45000
#   Create a product; the code is the barcode master code.
# - python -m flask catalog list
#   List all products.
#
# Inventory:
# - python -m flask inventory overview [--location Bandung]
#   Print total / reserved / available per product.

import click
from flask.cli import with_appcontext

from .errors import FoodOpsError
from .extensions import db
from .services import inventory_service, products_service


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

    click.echo("PASS Database reset complete.")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('add-product')
@click.option('--code', required=True, help='Master code (e.g. HOK-L, BRW)')
@click.option('--name', required=True, help='Display name')
@click.option('--price', type=int, required=True, help='Price in rupiah')
@with_appcontext
def add_product(code, name, price):
    """Create a product."""
    try:
        product = products_service.create_product(code=code, name=name, price=price)
    except FoodOpsError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.code} (id={product.id})")


@catalog_group.command('list')
@with_appcontext
def list_products():
    """List all products."""
    result = products_service.list_products()
    if not result["items"]:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<6} {'Code':<12} {'Price':>10}  Name")
    click.echo("-" * 50)
    for p in result["items"]:
        click.echo(f"{p['id']:<6} {p['code']:<12} {p['price']:>10}  {p['name']}")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('overview')
@click.option('--location', help='Only show this location')
@with_appcontext
def overview(location):
    """Print total / reserved / available per product."""
    data = inventory_service.get_overview()

    sections = [("All locations", data["all"])]
    for name, rows in data["byLocation"].items():
        if location and name.lower() != location.lower():
            continue
        sections.append((name, rows))
    if location:
        sections = sections[1:]
        if not sections:
            raise click.ClickException(f"Unknown location: {location}")

    for title, rows in sections:
        click.echo(f"\n{title}")
        click.echo(f"  {'Product':<32} {'Total':>6} {'Rsvd':>6} {'Avail':>6}")
        for key, row in rows.items():
            flag = "  WARN" if row["available"] < 0 else ""
            click.echo(f"  {key:<32} {row['total']:>6} {row['reserved']:>6} {row['available']:>6}{flag}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
