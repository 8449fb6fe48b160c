"""
Stock transfer state machine tests.

Verifies:
- CREATED never moves stock
- SENT deducts the source branch (not the central warehouse)
- RECEIVED adds exactly the receive counts at the destination
- Invalid transitions fail and leave stock unchanged
- Cancelling after SENT gives the source its stock back
"""

import pytest

from pos_engine.errors import InvalidTransferState, NotFound, ValidationError
from pos_engine.models import StockMovement
from pos_engine.models.transfers import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_CREATED,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_SENT,
)
from pos_engine.services import stock_ledger_service, transfer_service


def on_hand(branch, product):
    return stock_ledger_service.get_on_hand(branch.id, product.id)


@pytest.fixture
def stocked(db_session, branch, products, receive_stock):
    receive_stock(branch.id, products["coffee"].id, 20)
    receive_stock(branch.id, products["tea"].id, 5)
    return products


def make_transfer(store, branch, branch_b, products, staff):
    return transfer_service.create_transfer(
        store.id,
        to_branch_id=branch_b.id,
        from_branch_id=branch.id,
        items=[
            {"product_id": products["coffee"].id, "send_count": 8},
            {"product_id": products["tea"].id, "send_count": 2},
        ],
        requested_by=staff.id,
    )


class TestCreate:
    def test_create_does_not_touch_stock(self, db_session, store, branch, branch_b, staff, stocked):
        movements_before = db_session.query(StockMovement).count()
        transfer = make_transfer(store, branch, branch_b, stocked, staff)

        assert transfer.status == TRANSFER_STATUS_CREATED
        assert [i.send_count for i in transfer.items] == [8, 2]
        assert db_session.query(StockMovement).count() == movements_before
        assert on_hand(branch, stocked["coffee"]) == 20

    def test_same_branch_rejected(self, db_session, store, branch, stocked):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                store.id, to_branch_id=branch.id, from_branch_id=branch.id,
                items=[{"product_id": stocked["coffee"].id, "send_count": 1}],
            )

    @pytest.mark.parametrize("items", [[], [{"product_id": 1, "send_count": 0}]])
    def test_invalid_items_rejected(self, db_session, store, branch, branch_b, items):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(store.id, to_branch_id=branch_b.id, from_branch_id=branch.id, items=items)

    def test_withdraw_is_from_central(self, db_session, store, branch, staff, products):
        transfer = transfer_service.withdraw_goods(
            store.id, branch.id, [{"product_id": products["cake"].id, "send_count": 4}], staff.id, note="weekly"
        )
        assert transfer.from_branch_id is None
        assert transfer.to_branch_id == branch.id
        assert transfer.requested_by == staff.id


class TestSendReceive:
    def test_full_lifecycle(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)

        sent = transfer_service.send_transfer(store.id, transfer.id, staff.id)
        assert sent.status == TRANSFER_STATUS_SENT
        assert sent.sent_by == staff.id
        assert on_hand(branch, stocked["coffee"]) == 12
        assert on_hand(branch, stocked["tea"]) == 3
        assert on_hand(branch_b, stocked["coffee"]) == 0

        coffee_item = next(i for i in sent.items if i.product_id == stocked["coffee"].id)
        received = transfer_service.receive_transfer(
            store.id, branch_b.id, transfer.id,
            [{"item_id": coffee_item.id, "receive_count": 7}],
            staff.id,
        )

        assert received.status == TRANSFER_STATUS_RECEIVED
        assert received.received_by == staff.id
        counts = {i.product_id: i.receive_count for i in received.items}
        # Tea was not listed, so it arrives in full
        assert counts == {stocked["coffee"].id: 7, stocked["tea"].id: 2}
        assert on_hand(branch_b, stocked["coffee"]) == 7
        assert on_hand(branch_b, stocked["tea"]) == 2

        movements = db_session.query(StockMovement).filter_by(reference_type="stock_transfers").all()
        assert sorted((m.movement_type, m.quantity_change) for m in movements) == [
            ("TRANSFER_IN", 2), ("TRANSFER_IN", 7), ("TRANSFER_OUT", -8), ("TRANSFER_OUT", -2),
        ]

    def test_central_send_does_not_deduct(self, db_session, store, branch, staff, products):
        transfer = transfer_service.withdraw_goods(
            store.id, branch.id, [{"product_id": products["cake"].id, "send_count": 4}], staff.id
        )
        transfer_service.send_transfer(store.id, transfer.id, staff.id)
        assert db_session.query(StockMovement).count() == 0

        transfer_service.receive_transfer(store.id, branch.id, transfer.id, None, staff.id)
        assert on_hand(branch, products["cake"]) == 4

    def test_receive_created_transfer_fails(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)

        with pytest.raises(InvalidTransferState):
            transfer_service.receive_transfer(store.id, branch_b.id, transfer.id, None, staff.id)
        assert on_hand(branch_b, stocked["coffee"]) == 0

    def test_receive_twice_fails(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        transfer_service.send_transfer(store.id, transfer.id, staff.id)
        transfer_service.receive_transfer(store.id, branch_b.id, transfer.id, None, staff.id)

        with pytest.raises(InvalidTransferState):
            transfer_service.receive_transfer(store.id, branch_b.id, transfer.id, None, staff.id)
        assert on_hand(branch_b, stocked["coffee"]) == 8

    def test_receive_at_wrong_branch_fails(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        transfer_service.send_transfer(store.id, transfer.id, staff.id)

        with pytest.raises(InvalidTransferState):
            transfer_service.receive_transfer(store.id, branch.id, transfer.id, None, staff.id)

    def test_receive_unknown_item_rolls_back(self, db_session, store, branch, branch_b, staff, stocked, products):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        transfer_service.send_transfer(store.id, transfer.id, staff.id)

        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                store.id, branch_b.id, transfer.id,
                [{"product_id": products["cake"].id, "receive_count": 1}],
                staff.id,
            )
        assert transfer_service.get_transfer(store.id, transfer.id).status == TRANSFER_STATUS_SENT
        assert on_hand(branch_b, stocked["coffee"]) == 0

    def test_send_twice_fails(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        transfer_service.send_transfer(store.id, transfer.id, staff.id)

        with pytest.raises(InvalidTransferState):
            transfer_service.send_transfer(store.id, transfer.id, staff.id)
        assert on_hand(branch, stocked["coffee"]) == 12


class TestCancel:
    def test_cancel_created(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        cancelled = transfer_service.cancel_transfer(store.id, transfer.id, staff.id)
        assert cancelled.status == TRANSFER_STATUS_CANCELLED
        assert cancelled.cancelled_by == staff.id
        assert on_hand(branch, stocked["coffee"]) == 20

    def test_cancel_after_send_restores_source(self, db_session, store, branch, branch_b, staff, stocked):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        transfer_service.send_transfer(store.id, transfer.id, staff.id)

        transfer_service.cancel_transfer(store.id, transfer.id, staff.id)

        assert on_hand(branch, stocked["coffee"]) == 20
        assert on_hand(branch, stocked["tea"]) == 5
        assert on_hand(branch_b, stocked["coffee"]) == 0

    def test_cancel_after_clamped_send_returns_only_what_left(self, db_session, store, branch, branch_b, staff, products, receive_stock):
        receive_stock(branch.id, products["tea"].id, 3)
        transfer = transfer_service.create_transfer(
            store.id, to_branch_id=branch_b.id, from_branch_id=branch.id,
            items=[{"product_id": products["tea"].id, "send_count": 5}],
        )
        transfer_service.send_transfer(store.id, transfer.id, staff.id)
        assert on_hand(branch, products["tea"]) == 0

        transfer_service.cancel_transfer(store.id, transfer.id, staff.id)
        assert on_hand(branch, products["tea"]) == 3

    @pytest.mark.parametrize("terminal", ["received", "cancelled"])
    def test_cancel_terminal_fails(self, db_session, store, branch, branch_b, staff, stocked, terminal):
        transfer = make_transfer(store, branch, branch_b, stocked, staff)
        if terminal == "received":
            transfer_service.send_transfer(store.id, transfer.id, staff.id)
            transfer_service.receive_transfer(store.id, branch_b.id, transfer.id, None, staff.id)
        else:
            transfer_service.cancel_transfer(store.id, transfer.id, staff.id)

        with pytest.raises(InvalidTransferState):
            transfer_service.cancel_transfer(store.id, transfer.id, staff.id)


class TestQueries:
    def test_pending_and_listing(self, db_session, store, branch, branch_b, staff, stocked):
        first = make_transfer(store, branch, branch_b, stocked, staff)
        second = transfer_service.withdraw_goods(
            store.id, branch_b.id, [{"product_id": stocked["cake"].id, "send_count": 1}], staff.id
        )
        transfer_service.send_transfer(store.id, first.id, staff.id)

        pending = transfer_service.list_pending_transfers(store.id, branch_b.id)
        assert [t.id for t in pending] == [first.id]

        page = transfer_service.list_transfers(store.id, branch_b.id, limit=1)
        assert page["total"] == 2
        assert [t["id"] for t in page["items"]] == [second.id]

        assert transfer_service.list_transfers(store.id, branch.id)["total"] == 1

    def test_get_unknown_transfer(self, db_session, store):
        with pytest.raises(NotFound):
            transfer_service.get_transfer(store.id, 31337)
