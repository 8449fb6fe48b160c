"""
HTTP API tests.

Exercises the blueprints end to end through the Flask test client:
identity headers, status codes for each error family, and the main
register flows (shift, sale, promotion, transfer, stock, loyalty).
"""

import pytest

from pos_engine.models import Promotion, PromotionProduct
from pos_engine.services import loyalty_service


@pytest.fixture
def open_shift(client, headers):
    response = client.post("/api/shifts/open", json={"starting_cash_cents": 1000}, headers=headers)
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def branch_b_headers(headers, branch_b):
    return {**headers, "X-Branch-Id": str(branch_b.id)}


class TestIdentityContext:
    def test_missing_store_header(self, client, db_session):
        response = client.get("/api/shifts/current")
        assert response.status_code == 401

    def test_unknown_store(self, client, db_session):
        response = client.get("/api/shifts/current", headers={"X-Store-Id": "999", "X-Branch-Id": "1"})
        assert response.status_code == 401

    def test_branch_of_other_store(self, client, db_session, other_store, branch):
        response = client.get(
            "/api/shifts/current",
            headers={"X-Store-Id": str(other_store.id), "X-Branch-Id": str(branch.id)},
        )
        assert response.status_code == 401

    def test_branch_not_selected(self, client, db_session, store):
        response = client.post(
            "/api/shifts/open",
            json={"starting_cash_cents": 0},
            headers={"X-Store-Id": str(store.id)},
        )
        assert response.status_code == 409
        assert response.get_json()["code"] == "branch_not_selected"

    def test_non_integer_header(self, client, db_session, store):
        response = client.get("/api/shifts/current", headers={"X-Store-Id": "abc"})
        assert response.status_code == 400


class TestShiftEndpoints:
    def test_open_current_close(self, client, headers, open_shift):
        assert open_shift["is_active"] is True
        assert open_shift["starting_cash_cents"] == 1000

        current = client.get("/api/shifts/current", headers=headers).get_json()
        assert current["shift"]["id"] == open_shift["id"]

        closed = client.post("/api/shifts/close", json={"actual_cash_cents": 950}, headers=headers)
        assert closed.status_code == 200
        body = closed.get_json()
        assert body["expected_cash_cents"] == 1000
        assert body["variance_cents"] == -50

        assert client.get("/api/shifts/current", headers=headers).get_json()["shift"] is None

    def test_second_open_conflicts(self, client, headers, open_shift):
        response = client.post("/api/shifts/open", json={"starting_cash_cents": 0}, headers=headers)
        assert response.status_code == 409
        assert response.get_json()["code"] == "shift_already_open"

    def test_close_requires_actual_cash(self, client, headers, open_shift):
        response = client.post("/api/shifts/close", json={}, headers=headers)
        assert response.status_code == 400

    def test_summary_without_shift(self, client, headers):
        response = client.get("/api/shifts/summary", headers=headers)
        assert response.status_code == 409


class TestOrderEndpoints:
    def test_create_get_cancel(self, client, headers, branch, products, receive_stock, open_shift):
        receive_stock(branch.id, products["coffee"].id, 5)

        response = client.post("/api/orders", json={
            "items": [{"product_id": products["coffee"].id, "quantity": 2}],
            "payments": [{"method": "CASH", "amount_cents": 1500}],
        }, headers=headers)
        assert response.status_code == 201
        order = response.get_json()
        assert order["total_price_cents"] == 1000
        assert order["change_cents"] == 500
        assert order["shift_id"] == open_shift["id"]
        assert order["items"][0]["from_stock_count"] == 5
        assert order["items"][0]["to_stock_count"] == 3

        fetched = client.get(f"/api/orders/{order['id']}", headers=headers).get_json()
        assert fetched["status"] == "PAID"

        listed = client.get("/api/orders", headers=headers).get_json()
        assert [o["id"] for o in listed["orders"]] == [order["id"]]

        cancelled = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "void"}, headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.get_json()["status"] == "CANCELLED"

        again = client.post(f"/api/orders/{order['id']}/cancel", json={}, headers=headers)
        assert again.status_code == 409

    def test_insufficient_payment(self, client, headers, products, open_shift):
        response = client.post("/api/orders", json={
            "items": [{"product_id": products["cake"].id, "quantity": 1}],
            "payments": [{"method": "CARD", "amount_cents": 999}],
        }, headers=headers)
        assert response.status_code == 422
        assert response.get_json()["code"] == "insufficient_payment"

    def test_no_open_shift(self, client, headers, products):
        response = client.post("/api/orders", json={
            "items": [{"product_id": products["cake"].id, "quantity": 1}],
            "payments": [{"method": "CASH", "amount_cents": 1000}],
        }, headers=headers)
        assert response.status_code == 409
        assert response.get_json()["code"] == "no_active_shift"

    def test_bad_payment_method(self, client, headers, products, open_shift):
        response = client.post("/api/orders", json={
            "items": [{"product_id": products["cake"].id, "quantity": 1}],
            "payments": [{"method": "BARTER", "amount_cents": 1000}],
        }, headers=headers)
        assert response.status_code == 400

    def test_unknown_order(self, client, headers):
        assert client.get("/api/orders/4040", headers=headers).status_code == 404


class TestPromotionEndpoints:
    @pytest.fixture
    def bill_ten_percent(self, db_session, store):
        promotion = Promotion(store_id=store.id, name="10% off", promo_type="PERCENT_DISCOUNT", percent_bps=1000)
        db_session.add(promotion)
        db_session.commit()
        return promotion

    @pytest.fixture
    def coffee_cake_set(self, db_session, store, products):
        promotion = Promotion(
            store_id=store.id, name="Coffee + cake", promo_type="FIXED_SET_PRICE",
            old_set_total_cents=1500, new_set_total_cents=1200,
        )
        db_session.add(promotion)
        db_session.flush()
        db_session.add_all([
            PromotionProduct(promotion_id=promotion.id, product_id=products["coffee"].id),
            PromotionProduct(promotion_id=promotion.id, product_id=products["cake"].id),
        ])
        db_session.commit()
        return promotion

    def test_calculate_bill_percent(self, client, headers, products, bill_ten_percent):
        response = client.post("/api/promotions/calculate", json={
            "promotion_id": bill_ten_percent.id,
            "items": [{"product_id": products["coffee"].id, "quantity": 2}],
        }, headers=headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["original_total_cents"] == 1000
        assert body["discount_cents"] == 100
        assert body["final_total_cents"] == 900
        assert body["is_applicable"] is True

    def test_calculate_requires_promotion(self, client, headers, products):
        response = client.post("/api/promotions/calculate", json={"items": []}, headers=headers)
        assert response.status_code == 400

    def test_detect_marks_set_price_auto_applied(self, client, headers, products, bill_ten_percent, coffee_cake_set):
        response = client.post("/api/promotions/detect", json={
            "items": [
                {"product_id": products["coffee"].id, "quantity": 1},
                {"product_id": products["cake"].id, "quantity": 1},
            ],
        }, headers=headers)

        assert response.status_code == 200
        found = {p["promotion_id"]: p for p in response.get_json()["promotions"]}
        assert found[coffee_cake_set.id]["discount_cents"] == 300
        assert found[coffee_cake_set.id]["is_auto_applied"] is True
        assert found[bill_ten_percent.id]["discount_cents"] == 150
        assert found[bill_ten_percent.id]["is_auto_applied"] is False

    def test_create_and_list(self, client, headers, products):
        response = client.post("/api/promotions", json={
            "name": "Two teas",
            "promo_type": "THRESHOLD_FLAT",
            "min_quantity": 2,
            "amount_cents": 100,
            "product_ids": [products["tea"].id],
        }, headers=headers)
        assert response.status_code == 201
        assert response.get_json()["product_ids"] == [products["tea"].id]

        listed = client.get("/api/promotions", headers=headers).get_json()["promotions"]
        assert [p["name"] for p in listed] == ["Two teas"]

    def test_create_rejects_missing_config(self, client, headers):
        response = client.post("/api/promotions", json={"name": "Broken", "promo_type": "PERCENT_DISCOUNT"}, headers=headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("bps", ["abc", 15000])
    def test_create_rejects_bad_percent(self, client, headers, db_session, bps):
        response = client.post("/api/promotions", json={
            "name": "Broken",
            "promo_type": "PERCENT_DISCOUNT",
            "percent_bps": bps,
        }, headers=headers)
        assert response.status_code == 400
        assert db_session.query(Promotion).count() == 0

    def test_create_stores_normalized_config(self, client, headers, db_session):
        response = client.post("/api/promotions", json={
            "name": "Half off",
            "promo_type": "PERCENT_DISCOUNT",
            "percent_bps": "5000",
            "amount_cents": 700,
        }, headers=headers)
        assert response.status_code == 201

        stored = db_session.get(Promotion, response.get_json()["id"])
        assert stored.percent_bps == 5000
        assert stored.amount_cents is None


class TestTransferEndpoints:
    def test_transfer_flow(self, client, headers, branch_b_headers, branch, branch_b, products, receive_stock):
        receive_stock(branch.id, products["coffee"].id, 10)

        created = client.post("/api/transfers", json={
            "to_branch_id": branch_b.id,
            "from_branch_id": branch.id,
            "items": [{"product_id": products["coffee"].id, "send_count": 4}],
        }, headers=headers)
        assert created.status_code == 201
        transfer_id = created.get_json()["id"]

        # Receiving before sending is a state error
        early = client.post(f"/api/transfers/{transfer_id}/receive", json={}, headers=branch_b_headers)
        assert early.status_code == 409

        sent = client.post(f"/api/transfers/{transfer_id}/send", headers=headers)
        assert sent.get_json()["status"] == "SENT"

        pending = client.get("/api/transfers/pending", headers=branch_b_headers).get_json()["transfers"]
        assert [t["id"] for t in pending] == [transfer_id]

        received = client.post(f"/api/transfers/{transfer_id}/receive", json={
            "items": [{"product_id": products["coffee"].id, "receive_count": 3}],
        }, headers=branch_b_headers)
        assert received.status_code == 200
        assert received.get_json()["items"][0]["receive_count"] == 3

        source = {p["id"]: p for p in client.get("/api/stock/products", headers=headers).get_json()["products"]}
        dest = {p["id"]: p for p in client.get("/api/stock/products", headers=branch_b_headers).get_json()["products"]}
        assert source[products["coffee"].id]["on_hand"] == 6
        assert dest[products["coffee"].id]["on_hand"] == 3

        cancel = client.post(f"/api/transfers/{transfer_id}/cancel", headers=headers)
        assert cancel.status_code == 409

    def test_withdraw_and_list(self, client, headers, products):
        response = client.post("/api/transfers/withdraw", json={
            "items": [{"product_id": products["cake"].id, "quantity": 2}],
        }, headers=headers)
        assert response.status_code == 201
        assert response.get_json()["from_branch_id"] is None

        page = client.get("/api/transfers?limit=5", headers=headers).get_json()
        assert page["total"] == 1
        assert page["limit"] == 5

    def test_create_requires_destination(self, client, headers, products):
        response = client.post("/api/transfers", json={"items": []}, headers=headers)
        assert response.status_code == 400

    def test_unknown_transfer(self, client, headers):
        assert client.get("/api/transfers/777", headers=headers).status_code == 404


class TestStockEndpoints:
    def test_adjust_and_movements(self, client, headers, products):
        response = client.post("/api/stock/adjust", json={
            "product_id": products["tea"].id,
            "movement_type": "receive",
            "quantity": 12,
            "reason": "delivery",
        }, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["to_stock_count"] == 12

        damaged = client.post("/api/stock/adjust", json={
            "product_id": products["tea"].id,
            "movement_type": "DAMAGE",
            "quantity": 2,
        }, headers=headers)
        assert damaged.get_json()["to_stock_count"] == 10

        movements = client.get(f"/api/stock/movements?product_id={products['tea'].id}", headers=headers).get_json()
        assert [m["quantity_change"] for m in movements["movements"]] == [-2, 12]

    def test_adjust_missing_field(self, client, headers, products):
        response = client.post("/api/stock/adjust", json={"product_id": products["tea"].id}, headers=headers)
        assert response.status_code == 400

    def test_products_default_to_zero(self, client, headers, products):
        listed = client.get("/api/stock/products", headers=headers).get_json()["products"]
        assert {p["product_name"]: p["on_hand"] for p in listed} == {"Cake": 0, "Coffee": 0, "Tea": 0}


class TestLoyaltyEndpoints:
    def test_redeem_and_history(self, client, headers, db_session, store, customer, products):
        loyalty_service.accrue(store.id, customer.id, products["tea"].id, 7)
        db_session.commit()

        response = client.post("/api/loyalty/redeem", json={
            "customer_id": customer.id,
            "product_id": products["tea"].id,
            "quantity": 1,
        }, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["balance"]["points"] == 2

        short = client.post("/api/loyalty/redeem", json={
            "customer_id": customer.id,
            "product_id": products["tea"].id,
            "quantity": 1,
        }, headers=headers)
        assert short.status_code == 422
        assert short.get_json()["code"] == "insufficient_points"

        points = client.get(f"/api/loyalty/customers/{customer.id}/points", headers=headers).get_json()
        assert points["balances"][0]["points"] == 2
        assert points["balances"][0]["total_points"] == 7

        history = client.get(f"/api/loyalty/customers/{customer.id}/history", headers=headers).get_json()
        assert [t["points_change"] for t in history["transactions"]] == [-5, 7]

    def test_unknown_customer(self, client, headers):
        assert client.get("/api/loyalty/customers/555/points", headers=headers).status_code == 404


class TestHealth:
    def test_health_reports_database(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"
