"""
Stock ledger tests.

Verifies:
- adjust() clamps at zero and records what was actually applied
- on_hand always equals the sum of movement quantity_change
- missing stock rows are provisioned lazily
- manual adjustments derive their sign from the movement type
"""

import pytest
from sqlalchemy import func

from pos_engine.errors import NotFound, ValidationError
from pos_engine.models import StockLevel, StockMovement
from pos_engine.models.inventory import MOVEMENT_ADJUST, MOVEMENT_RECEIVE, MOVEMENT_SALE
from pos_engine.services import stock_ledger_service


def movement_sum(session, branch_id, product_id):
    return session.query(func.coalesce(func.sum(StockMovement.quantity_change), 0)).filter_by(
        branch_id=branch_id, product_id=product_id
    ).scalar()


class TestAdjust:
    def test_lazily_provisions_missing_row(self, db_session, store, branch, products):
        coffee = products["coffee"]
        assert db_session.query(StockLevel).count() == 0

        before, after = stock_ledger_service.adjust(
            store.id, branch.id, coffee.id, 5, MOVEMENT_RECEIVE, None
        )
        db_session.commit()

        assert (before, after) == (0, 5)
        assert stock_ledger_service.get_on_hand(branch.id, coffee.id) == 5

    def test_clamps_at_zero(self, db_session, store, branch, products, receive_stock):
        coffee = products["coffee"]
        receive_stock(branch.id, coffee.id, 3)

        before, after = stock_ledger_service.adjust(
            store.id, branch.id, coffee.id, -5, MOVEMENT_SALE, None,
            reference_type="orders", reference_id=1,
        )
        db_session.commit()

        assert (before, after) == (3, 0)
        movement = db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_SALE).one()
        assert movement.requested_change == -5
        assert movement.quantity_change == -3
        assert movement.from_stock_count == 3
        assert movement.to_stock_count == 0
        assert movement.reference_type == "orders"

    def test_on_hand_matches_movement_sum(self, db_session, store, branch, products):
        tea = products["tea"]
        for delta in (10, -4, -20, 7, 2):
            kind = MOVEMENT_RECEIVE if delta > 0 else MOVEMENT_SALE
            stock_ledger_service.adjust(store.id, branch.id, tea.id, delta, kind, None)
        db_session.commit()

        on_hand = stock_ledger_service.get_on_hand(branch.id, tea.id)
        assert on_hand == 9
        assert movement_sum(db_session, branch.id, tea.id) == on_hand

    def test_unknown_kind_rejected_without_writes(self, db_session, store, branch, products):
        with pytest.raises(ValidationError):
            stock_ledger_service.adjust(store.id, branch.id, products["tea"].id, 1, "GIFT", None)
        assert db_session.query(StockMovement).count() == 0

    def test_branches_are_independent(self, db_session, store, branch, branch_b, products, receive_stock):
        cake = products["cake"]
        receive_stock(branch.id, cake.id, 4)
        assert stock_ledger_service.get_on_hand(branch_b.id, cake.id) == 0


class TestAdjustStock:
    def test_receive_adds(self, db_session, store, branch, staff, products):
        result = stock_ledger_service.adjust_stock(
            store.id, branch.id, products["coffee"].id, 8, MOVEMENT_RECEIVE, staff.id, reason="delivery"
        )
        assert result["to_stock_count"] == 8
        movement = db_session.query(StockMovement).one()
        assert movement.changed_by == staff.id
        assert movement.reason == "delivery"

    def test_damage_subtracts_positive_quantity(self, db_session, store, branch, products, receive_stock):
        receive_stock(branch.id, products["coffee"].id, 8)
        result = stock_ledger_service.adjust_stock(
            store.id, branch.id, products["coffee"].id, 3, "DAMAGE", None
        )
        assert result["quantity_change"] == -3
        assert stock_ledger_service.get_on_hand(branch.id, products["coffee"].id) == 5

    def test_adjust_takes_signed_quantity(self, db_session, store, branch, products, receive_stock):
        receive_stock(branch.id, products["tea"].id, 2)
        stock_ledger_service.adjust_stock(store.id, branch.id, products["tea"].id, -1, MOVEMENT_ADJUST, None)
        assert stock_ledger_service.get_on_hand(branch.id, products["tea"].id) == 1

    @pytest.mark.parametrize("kind,quantity", [("RECEIVE", 0), ("ISSUE", -2), ("ADJUST", 0), ("SALE", 1)])
    def test_rejects_invalid_input(self, db_session, store, branch, products, kind, quantity):
        with pytest.raises(ValidationError):
            stock_ledger_service.adjust_stock(store.id, branch.id, products["tea"].id, quantity, kind, None)
        assert db_session.query(StockMovement).count() == 0

    def test_product_of_other_store_not_found(self, db_session, store, other_store, branch):
        from pos_engine.models import Product

        foreign = Product(store_id=other_store.id, product_name="Foreign", base_price_cents=100)
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFound):
            stock_ledger_service.adjust_stock(store.id, branch.id, foreign.id, 1, MOVEMENT_RECEIVE, None)

    def test_list_movements_newest_first(self, db_session, store, branch, products, receive_stock):
        receive_stock(branch.id, products["tea"].id, 2)
        receive_stock(branch.id, products["cake"].id, 3)
        movements = stock_ledger_service.list_movements(store.id, branch.id)
        assert [m["product_id"] for m in movements] == [products["cake"].id, products["tea"].id]
