# Overview: Flask CLI commands for database bootstrap and demo data.

# backend/pos_engine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask pos init-db
#   Create all tables that do not exist yet (use "flask db upgrade" for migrations).
# - python -m flask pos seed-demo [--store-code DEMO]
#   Idempotently create a demo store, two branches, staff, products, stock and a 10% bill promotion.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Customer, Product, Promotion, Staff, Store
from .models.inventory import MOVEMENT_RECEIVE
from .services.promotion_engine import PromotionKind
from .services.stock_ledger_service import adjust, get_on_hand


DEMO_PRODUCTS = [
    # name, category, price cents, points to redeem, opening stock
    ("Latte", "Coffee", 6500, 10, 50),
    ("Americano", "Coffee", 5500, 10, 50),
    ("Croissant", "Bakery", 4500, None, 30),
    ("Brownie", "Bakery", 3500, None, 30),
]


@click.group('pos')
def pos_group():
    """Database bootstrap and demo data commands."""


@pos_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the current models."""
    db.create_all()
    click.echo("PASS Tables created")


@pos_group.command('seed-demo')
@click.option('--store-code', default='DEMO', help='Code of the demo store')
@with_appcontext
def seed_demo(store_code):
    """
    Seed a demo tenant.

    Creates (when missing):
    - Store with two branches ("Main", "Riverside")
    - One staff member and one customer
    - Products with opening stock at the main branch (RECEIVE movements)
    - A store-wide 10% bill-level promotion
    """
    store = db.session.query(Store).filter_by(code=store_code).first()
    if not store:
        store = Store(name="Demo Store", code=store_code)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    branches = {}
    for name in ("Main", "Riverside"):
        branch = db.session.query(Branch).filter_by(store_id=store.id, branch_name=name).first()
        if not branch:
            branch = Branch(store_id=store.id, branch_name=name)
            db.session.add(branch)
            db.session.commit()
            click.echo(f"PASS Created branch: {name} (ID: {branch.id})")
        branches[name] = branch

    staff = db.session.query(Staff).filter_by(store_id=store.id).first()
    if not staff:
        staff = Staff(store_id=store.id, display_name="Demo Cashier", email="cashier@demo.local")
        db.session.add(staff)
    if not db.session.query(Customer).filter_by(store_id=store.id).first():
        db.session.add(Customer(store_id=store.id, customer_code="C0001", full_name="Demo Customer", phone_last4="0001"))
    db.session.commit()

    main = branches["Main"]
    for name, category, price, points, opening in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(store_id=store.id, product_name=name).first()
        if not product:
            product = Product(
                store_id=store.id,
                product_name=name,
                category_name=category,
                base_price_cents=price,
                points_to_redeem=points,
            )
            db.session.add(product)
            db.session.flush()
        if get_on_hand(main.id, product.id) == 0:
            adjust(store.id, main.id, product.id, opening, MOVEMENT_RECEIVE, staff.id, reason="Demo opening stock")
        db.session.commit()
    click.echo(f"PASS Products stocked at {main.branch_name}: {len(DEMO_PRODUCTS)}")

    if not db.session.query(Promotion).filter_by(store_id=store.id).first():
        db.session.add(Promotion(
            store_id=store.id,
            name="10% off bill",
            promo_type=PromotionKind.PERCENT_DISCOUNT.value,
            percent_bps=1000,
        ))
        db.session.commit()
        click.echo("PASS Created promotion: 10% off bill")

    click.echo("DONE Demo data ready")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pos_group)
