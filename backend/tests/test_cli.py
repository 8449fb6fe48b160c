"""
CLI command tests (flask pos ...).
"""

from pos_engine.models import Branch, Product, Promotion, StockMovement, Store
from pos_engine.services import stock_ledger_service


def test_seed_demo_creates_tenant(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["pos", "seed-demo", "--store-code", "CLI"])

    assert result.exit_code == 0, result.output
    assert "DONE Demo data ready" in result.output

    store = db_session.query(Store).filter_by(code="CLI").one()
    main = db_session.query(Branch).filter_by(store_id=store.id, branch_name="Main").one()
    assert db_session.query(Branch).filter_by(store_id=store.id).count() == 2
    assert db_session.query(Promotion).filter_by(store_id=store.id).count() == 1

    latte = db_session.query(Product).filter_by(store_id=store.id, product_name="Latte").one()
    assert stock_ledger_service.get_on_hand(main.id, latte.id) == 50


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["pos", "seed-demo", "--store-code", "CLI"])
    movements = db_session.query(StockMovement).count()

    result = runner.invoke(args=["pos", "seed-demo", "--store-code", "CLI"])

    assert result.exit_code == 0, result.output
    assert "Using existing store" in result.output
    assert db_session.query(Store).filter_by(code="CLI").count() == 1
    assert db_session.query(StockMovement).count() == movements


def test_init_db(app, db_session):
    result = app.test_cli_runner().invoke(args=["pos", "init-db"])
    assert result.exit_code == 0
    assert "Tables created" in result.output
