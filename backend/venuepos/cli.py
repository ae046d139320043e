# Overview: Flask CLI command groups for bootstrap, stock inspection and the device queue.

# backend/venuepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default operators and default settings.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock history 12 --limit 50
#   Movement history for an item, aggregated over its stock group.
#
# Device queue (offline mutations on this machine):
# - python -m flask queue status [--db venuepos-queue.sqlite3]
#   List pending entries in insertion order.
# - python -m flask queue drain [--server http://localhost:5000]
#   Replay pending entries against the server; stops at the first failure.
# - python -m flask queue discard 17 --yes
#   Drop one entry the server keeps rejecting (its change is lost).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Setting
from .services import catalog_service, stock_service
from .services.catalog_service import TABLE_COUNT_KEY, TAX_RATE_KEY
from .client.config import ClientConfig


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and seed defaults.

    Creates:
    - All tables (use `flask db upgrade` instead when running migrations)
    - Operators Admin (PIN 1234, ADMIN) and Kamarier (PIN 0000, CASHIER) if no users exist
    - taxRate and tableCount settings if unset
    """
    click.echo("START Initializing venue POS...")
    db.create_all()
    click.echo("PASS Schema ready")

    if current_app.config.get("SEED_DEFAULT_USERS", True):
        added = catalog_service.seed_default_users()
        if added:
            click.echo(f"PASS Created {added} default operators")
        else:
            click.echo("WARN  Users already exist, skipping default operators...")

    defaults = {
        TAX_RATE_KEY: str(current_app.config["DEFAULT_TAX_RATE"]),
        TABLE_COUNT_KEY: str(current_app.config["DEFAULT_TABLE_COUNT"]),
    }
    for key, value in defaults.items():
        if db.session.get(Setting, key) is None:
            db.session.add(Setting(key=key, value=value))
            click.echo(f"PASS Setting {key} = {value}")
    db.session.commit()

    click.echo("DONE Venue POS initialized")
    click.echo("\nDefault PINs (CHANGE IN PRODUCTION!):")
    click.echo("   Admin    -> 1234")
    click.echo("   Kamarier -> 0000")


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
    click.echo("PASS Database reset. Run `flask system init` to seed defaults.")


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('history')
@click.argument('item_id', type=int)
@click.option('--limit', default=50, show_default=True, help='Movements to show')
@with_appcontext
def stock_history(item_id, limit):
    """Show an item's stock movements (whole stock group)."""
    from .errors import NotFoundError

    try:
        history = stock_service.get_stock_history(item_id, limit=limit)
    except NotFoundError as e:
        raise click.ClickException(e.message)

    members = ", ".join(f"{m['name']} (#{m['id']})" for m in history["members"])
    click.echo(f"\nItem #{history['item_id']}  group={history['stock_group_id'] or '-'}  members: {members}")
    click.echo(f"Stock: {history['stock']}   Average cost: {history['average_cost_cents']} cents")
    click.echo("Totals: " + ", ".join(f"{k}={v}" for k, v in history["totals"].items()))

    click.echo("\n" + "=" * 90)
    click.echo(f"{'When':<22} {'Type':<11} {'Qty':>6} {'Unit':>8} {'Item':<20} {'Reason'}")
    click.echo("=" * 90)
    for m in history["movements"]:
        unit = m["unit_cost_cents"] if m["unit_cost_cents"] is not None else "-"
        click.echo(
            f"{m['created_at'] or '-':<22} {m['type']:<11} {m['quantity']:>6} {unit:>8} "
            f"{(m['item_name'] or '-')[:20]:<20} {m['reason'] or ''}"
        )
    click.echo("=" * 90 + "\n")


@click.group('queue')
def queue_group():
    """Offline mutation queue on this device."""


def _open_queue(db_path):
    from .client.queue_store import QueueStore
    from .client.sync import MutationQueue

    config = ClientConfig.from_env()
    return MutationQueue(QueueStore(db_path or config.queue_db_path)), config


@queue_group.command('status')
@click.option('--db', 'db_path', default=None, help='Queue database file')
def queue_status(db_path):
    """List pending entries, oldest first."""
    queue, _ = _open_queue(db_path)
    entries = queue.pending()
    if not entries:
        click.echo("Queue is empty.")
        return
    click.echo(f"{'ID':<6} {'Kind':<22} {'Queued at'}")
    for entry in entries:
        click.echo(f"{entry.id:<6} {entry.kind_name:<22} {entry.created_at.isoformat()}")
    click.echo(f"\n{len(entries)} pending")


@queue_group.command('drain')
@click.option('--db', 'db_path', default=None, help='Queue database file')
@click.option('--server', default=None, help='Server URL (defaults to VENUEPOS_SERVER_URL)')
def queue_drain(db_path, server):
    """Replay pending entries against the server."""
    from .client.api import RemoteApi

    queue, config = _open_queue(db_path)
    with RemoteApi(server or config.server_url, timeout=config.request_timeout) as remote:
        result = queue.drain(remote)

    click.echo(f"PASS Applied {result.applied}")
    for entry in result.skipped:
        click.echo(f"WARN  Skipped unsupported {entry.kind_name} (entry {entry.id})")
    if result.blocked_on is not None:
        click.echo(f"FAIL Blocked at entry {result.blocked_on.id} ({result.blocked_on.kind_name}): {result.error}")
        click.echo(f"     {result.remaining} entries still queued")
        raise SystemExit(1)


@queue_group.command('discard')
@click.argument('entry_id', type=int)
@click.option('--db', 'db_path', default=None, help='Queue database file')
@click.option('--yes', is_flag=True, help='Confirm dropping the entry')
def queue_discard(entry_id, db_path, yes):
    """Drop one entry (e.g. one the server keeps rejecting). The change is lost."""
    if not yes:
        click.echo("FAIL Refusing to discard without --yes")
        raise SystemExit(1)
    queue, _ = _open_queue(db_path)
    if queue.discard(entry_id):
        click.echo(f"PASS Discarded entry {entry_id}")
    else:
        click.echo(f"WARN  No entry {entry_id}")

def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(queue_group)
