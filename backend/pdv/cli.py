# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pdv/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store-code LOJA1] [--store-name "Loja Centro"]
#   Idempotent bootstrap: tables, default payment methods, a store and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock audit:
# - python -m flask stock verify --store-id 1
#   Replay the movement log and compare with on-hand quantities.
#
# Cash drawer inspection:
# - python -m flask cash summary --store-id 1 [--date 2024-03-15]
#   Expected totals for a store-day and the state of its closing.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import PaymentMethod, Store, User
from .permissions import Role
from .services import cash_service, stock_service
from .services.reconciliation_service import drawer_cash_estimate, summarize_day, summarize_movements
from .time_utils import parse_iso_date

# (code, name, tender_category, allow_installments, max_installments)
DEFAULT_PAYMENT_METHODS = [
    ("cash", "Dinheiro", "CASH", False, 1),
    ("debit", "Cartão de Débito", "CARD", False, 1),
    ("credit", "Cartão de Crédito", "CARD", True, 12),
    ("pix", "PIX", "PIX", False, 1),
    ("store_credit", "Crediário", "STORE_CREDIT", True, 6),
]


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    value = abs(value)
    return f"{sign}R$ {value // 100},{value % 100:02d}"


def seed_payment_methods() -> int:
    """Insert missing default payment methods. Returns how many were created."""
    created = 0
    for code, name, category, allow_installments, max_installments in DEFAULT_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(code=code).first():
            continue
        db.session.add(
            PaymentMethod(
                code=code,
                name=name,
                tender_category=category,
                allow_installments=allow_installments,
                max_installments=max_installments,
                is_active=True,
            )
        )
        created += 1
    db.session.commit()
    return created


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store-code', default='LOJA1', help='Store code (sale number prefix)')
@click.option('--store-name', default='Loja Principal', help='Store name')
@click.option('--timezone', 'tz_name', default=None, help='IANA timezone of the store')
@click.option('--admin-username', default='admin', help='Username of the bootstrap administrator')
@with_appcontext
def init_system(store_code, store_name, tz_name, admin_username):
    """
    Initialize the system: schema, payment methods, default store and admin.

    Safe to run repeatedly; existing rows are kept.
    """
    click.echo("START Initializing PDV system...")

    db.create_all()
    click.echo("PASS Schema ready")

    created = seed_payment_methods()
    click.echo(f"PASS Payment methods: {created} created, {len(DEFAULT_PAYMENT_METHODS) - created} already present")

    store = db.session.query(Store).filter_by(code=store_code).first()
    if not store:
        store = Store(
            name=store_name,
            code=store_code,
            timezone=tz_name or current_app.config.get("DEFAULT_STORE_TIMEZONE", "America/Sao_Paulo"),
        )
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code}, TZ: {store.timezone})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    admin = db.session.query(User).filter_by(username=admin_username).first()
    if not admin:
        admin = User(username=admin_username, name="Administrador", role=Role.ADMIN.value, is_active=True)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin user: {admin.username} (ID: {admin.id})")
    else:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")

    click.echo("DONE PDV system initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('stock')
def stock_group():
    """Stock ledger audit commands."""


@stock_group.command('verify')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def verify_stock(store_id):
    """Compare on-hand quantities with the replayed movement log."""
    mismatches = stock_service.verify_stock(store_id)
    if not mismatches:
        click.echo(f"PASS Stock of store {store_id} matches its movement log")
        return

    for row in mismatches:
        click.echo(
            f"FAIL product {row['product_id']}: quantity={row['quantity']} replayed={row['replayed']}"
        )
    raise SystemExit(1)


@click.group('cash')
def cash_group():
    """Cash drawer inspection commands."""


@cash_group.command('summary')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--date', 'day_raw', default=None, help='Day (YYYY-MM-DD); default is today on the store clock')
@with_appcontext
def cash_summary(store_id, day_raw):
    """Show expected totals for a store-day."""
    try:
        day = parse_iso_date(day_raw) or cash_service.store_today(store_id)
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD")

    closing = cash_service.get_closing_for_day(store_id, day)
    summary = summarize_day(store_id, day)
    movements = summarize_movements(closing.id if closing else None)

    click.echo(f"Store {store_id} - {day.isoformat()} - {closing.status if closing else 'not started'}")
    click.echo(f"  Sales:        {summary.sales_count} ({summary.credit_sales_count} on credit)")
    click.echo(f"  Total:        {_cents(summary.total_sales_cents)}")
    click.echo(f"  Cash:         {_cents(summary.total_cash_cents)}")
    click.echo(f"  Card:         {_cents(summary.total_card_cents)}")
    click.echo(f"  PIX:          {_cents(summary.total_pix_cents)}")
    click.echo(f"  Credit:       {_cents(summary.total_credit_cents)}")
    click.echo(f"  Other:        {_cents(summary.total_other_cents)}")
    click.echo(f"  Sangria:      {_cents(movements.sangria_total_cents)}")
    click.echo(f"  Suprimento:   {_cents(movements.suprimento_total_cents)}")
    click.echo(f"  Drawer (est): {_cents(drawer_cash_estimate(summary, movements))}")
    if closing and closing.status == "closed":
        click.echo(f"  Counted cash: {_cents(closing.counted_cash_cents)}")
        click.echo(f"  Difference:   {_cents(closing.difference_cents)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(cash_group)
