# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Categories:
# - python -m flask categories create --name "Laptops" --parent-id 1
#   Create a category (optionally under a parent).
# - python -m flask categories tree
#   Print the active category tree.
# - python -m flask categories recount
#   Recompute cached product counts for every category.
#
# Vendors:
# - python -m flask vendors list [--status pending]
#   List vendors with status and commission rate.
# - python -m flask vendors approve 3
#   Approve a pending vendor application.
# - python -m flask vendors refresh-stats [--vendor-id 3]
#   Recompute cached vendor totals and ratings.
#
# Orders:
# - python -m flask orders stats --vendor-id 3 [--start 2026-01-01] [--end 2026-01-31]
#   Print order statistics for a vendor.

import click
from flask.cli import with_appcontext

from .errors import MarketplaceError
from .extensions import db
from .services import category_service, order_service, vendor_service, vendor_stats_service
from .services.pricing import from_cents
from .time_utils import parse_date_bound


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ensured.")


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


@click.group('categories')
def categories_group():
    """Category tree inspection and maintenance."""


@categories_group.command('create')
@click.option('--name', required=True, help='Category name')
@click.option('--parent-id', type=int, default=None, help='Parent category id')
@click.option('--description', default=None, help='Description')
@click.option('--featured', is_flag=True, help='Mark as featured')
@with_appcontext
def create_category(name, parent_id, description, featured):
    """Create a category."""
    try:
        category = category_service.create_category(
            name, parent_id, description, is_featured=featured
        )
    except MarketplaceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created category: {category.name} (ID: {category.id}, slug: {category.slug}, level: {category.level})")


@categories_group.command('tree')
@with_appcontext
def show_tree():
    """Print the active category tree."""
    forest = category_service.build_tree()
    if not forest:
        click.echo("No categories found.")
        return

    def _echo(nodes, depth):
        for node in nodes:
            cat = node["category"]
            click.echo(f"{'  ' * depth}- {cat['name']} (ID: {cat['id']}, products: {cat['product_count']})")
            _echo(node["children"], depth + 1)

    _echo(forest, 0)


@categories_group.command('recount')
@with_appcontext
def recount_categories():
    """Recompute product counts for all categories."""
    try:
        counts = category_service.recount_all()
    except MarketplaceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Recounted {len(counts)} categories.")


@click.group('vendors')
def vendors_group():
    """Vendor inspection and maintenance."""


@vendors_group.command('list')
@click.option('--status', default=None, help='Filter by status')
@with_appcontext
def list_vendors(status):
    """List vendors."""
    vendors = vendor_service.list_vendors(status=status)
    if not vendors:
        click.echo("No vendors found.")
        return
    for v in vendors:
        click.echo(f"{v.id:>5}  {v.business_name:<30}  {v.status:<10}  commission {v.commission_rate}%")


@vendors_group.command('approve')
@click.argument('vendor_id', type=int)
@with_appcontext
def approve_vendor(vendor_id):
    """Approve a pending vendor."""
    try:
        vendor = vendor_service.approve_vendor(vendor_id)
    except MarketplaceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Approved vendor: {vendor.business_name} (ID: {vendor.id})")


@vendors_group.command('refresh-stats')
@click.option('--vendor-id', type=int, default=None, help='Only refresh this vendor')
@with_appcontext
def refresh_stats(vendor_id):
    """Recompute cached vendor totals and ratings."""
    try:
        if vendor_id is not None:
            vendors = [vendor_stats_service.refresh(vendor_id)]
        else:
            vendors = vendor_stats_service.refresh_all()
    except MarketplaceError as e:
        raise click.ClickException(e.message)
    for v in vendors:
        click.echo(
            f"PASS {v.business_name}: {v.total_products} products, {v.total_orders} orders, "
            f"revenue {from_cents(v.total_revenue_cents)}, rating {v.rating_average} ({v.rating_count})"
        )


@click.group('orders')
def orders_group():
    """Order reporting."""


@orders_group.command('stats')
@click.option('--vendor-id', type=int, required=True, help='Vendor id')
@click.option('--start', default=None, help='ISO-8601 start (inclusive)')
@click.option('--end', default=None, help='ISO-8601 end (inclusive)')
@with_appcontext
def order_stats(vendor_id, start, end):
    """Print order statistics for a vendor."""
    try:
        stats = order_service.get_order_stats(
            vendor_id, start=parse_date_bound(start), end=parse_date_bound(end, end=True)
        )
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Total orders:        {stats['total_orders']}")
    click.echo(f"Total revenue:       {from_cents(stats['total_revenue_cents'])}")
    click.echo(f"Average order value: {from_cents(stats['average_order_value_cents'])}")
    click.echo(f"Pending:             {stats['pending_orders']}")
    click.echo(f"Completed:           {stats['completed_orders']}")
    click.echo(f"Cancelled:           {stats['cancelled_orders']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(categories_group)
    app.cli.add_command(vendors_group)
    app.cli.add_command(orders_group)
