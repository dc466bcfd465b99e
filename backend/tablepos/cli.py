# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tablepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "tablepos:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/maintenance:
# - python -m flask system init
#   Create tables and seed default settings (idempotent).
# - python -m flask system set-tax-rate 11
#   Set the order tax rate (percent).
#
# Inventory inspection:
# - python -m flask inventory low-stock
#   Print products that are out of stock or below their minimum.
#
# Auth tooling:
# - python -m flask auth issue-token --user-id 1 --role manager
#   Print a signed bearer token for a staff member.

import click
from flask.cli import with_appcontext

from .components import get_components
from .decorators import ROLES, issue_actor_token
from .errors import TablePosError
from .extensions import db
from .services import inventory_service


@click.group("system")
def system_group():
    """System bootstrap and maintenance commands."""


@system_group.command("init")
@with_appcontext
def init_command():
    """Create tables and seed default settings."""
    db.create_all()
    get_components().settings.ensure_defaults()
    click.echo("Database initialized.")


@system_group.command("set-tax-rate")
@click.argument("percent")
@with_appcontext
def set_tax_rate_command(percent):
    """Set the tax rate applied to new orders."""
    try:
        rate = get_components().settings.set_tax_rate(percent)
    except TablePosError as e:
        raise click.ClickException(e.message)
    click.echo(f"Tax rate set to {rate}%.")


@click.group("inventory")
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command("low-stock")
@with_appcontext
def low_stock_command():
    items = inventory_service.get_low_stock()
    if not items:
        click.echo("No low-stock products.")
        return
    for item in items:
        click.echo(
            f"[{item['status'].upper()}] {item['product_name']}: "
            f"{item['current_stock']} (minimum {item['min_stock']})"
        )


@click.group("auth")
def auth_group():
    """Auth tooling."""


@auth_group.command("issue-token")
@click.option("--user-id", type=int, required=True)
@click.option("--role", type=click.Choice(ROLES), required=True)
@with_appcontext
def issue_token_command(user_id, role):
    click.echo(issue_actor_token(user_id, role))


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(auth_group)
