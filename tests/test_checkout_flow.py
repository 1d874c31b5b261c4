import re

from app.core import config
from app.models.customer import Customer
from app.models.order import Order
from app.models.order_item import OrderItem
from tests.fixtures_data import (
    CASH_CHECKOUT_PAYLOAD,
    LOYALTY_CUSTOMER,
    TRANSFER_CHECKOUT_PAYLOAD,
)
from tests.support import build_client, build_session, seed_catalog


def _client_and_db():
    db = build_session()
    seed_catalog(db)
    return build_client(db), db


def test_cart_line_is_priced_from_catalog():
    client, _db = _client_and_db()

    response = client.post(
        "/api/cart/lines",
        json={"product_id": 1, "qty": 2, "selections": {"1": [2], "2": [3]}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["unit_price"] == 40000
    assert body["subtotal"] == 80000
    assert body["classification_labels"] == ["Size: L", "Topping: Trân châu"]


def test_cart_line_errors():
    client, _db = _client_and_db()

    missing_required = client.post("/api/cart/lines", json={"product_id": 1, "selections": {}})
    retired = client.post("/api/cart/lines", json={"product_id": 3})
    unknown = client.post("/api/cart/lines", json={"product_id": 404})

    assert missing_required.status_code == 400
    assert retired.status_code == 404
    assert unknown.status_code == 404


def test_cash_checkout_scenario_c():
    client, db = _client_and_db()

    response = client.post("/api/checkout", json=CASH_CHECKOUT_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["change"] == 5000
    order = body["order"]
    assert order["status"] == "completed"
    assert order["total_amount"] == 45000
    assert order["customer_name"] == config.WALK_IN_CUSTOMER_NAME
    assert re.fullmatch(r"IC\d{6}\d{6}", order["income_receipt_code"])
    assert order["paid_at"] is not None
    assert order["created_by"] == "staff-1"
    assert order["items"][0]["product_name"] == "Cà phê sữa"
    assert body["transfer_content"] is None
    assert db.query(OrderItem).count() == 1


def test_cash_checkout_rejects_insufficient_amount_without_writing():
    client, db = _client_and_db()

    response = client.post(
        "/api/checkout",
        json={**CASH_CHECKOUT_PAYLOAD, "amount_received": "40.000"},
    )

    assert response.status_code == 400
    assert "less than the amount due" in response.json()["detail"]
    assert db.query(Order).count() == 0


def test_transfer_checkout_is_pending_with_transfer_content():
    client, _db = _client_and_db()

    response = client.post("/api/checkout", json=TRANSFER_CHECKOUT_PAYLOAD)

    assert response.status_code == 201
    order = response.json()["order"]
    assert order["status"] == "pending"
    assert order["income_receipt_code"] is None
    assert order["paid_at"] is None
    assert order["transfer_content"] == "DH" + order["order_number"].split("OD", 1)[1]


def test_checkout_snapshots_line_items():
    client, db = _client_and_db()

    response = client.post(
        "/api/checkout",
        json={
            "lines": [
                {"product_id": 1, "qty": 2, "selections": {"1": [1], "2": [3, 4]}, "note": "ít ngọt"},
                {"product_id": 2, "qty": 1},
            ],
            "payment_method": "cash",
            "amount_received": 200000,
        },
    )

    assert response.status_code == 201
    items = response.json()["order"]["items"]
    assert [item["subtotal"] for item in items] == [90000, 45000]
    assert items[0]["classification_labels"] == ["Size: M", "Topping: Trân châu, Thạch"]
    assert items[0]["note"] == "ít ngọt"
    assert response.json()["order"]["total_amount"] == 135000
    assert response.json()["change"] == 65000


def test_invalid_discount_code_blocks_checkout():
    client, db = _client_and_db()

    response = client.post(
        "/api/checkout",
        json={**CASH_CHECKOUT_PAYLOAD, "discount_code": "GIAM99"},
    )

    assert response.status_code == 400
    assert db.query(Order).count() == 0


def test_loyalty_checkout_creates_customer_with_earned_points():
    client, db = _client_and_db()

    response = client.post(
        "/api/checkout",
        json={
            "lines": [{"product_id": 2, "qty": 3}],
            "payment_method": "cash",
            "amount_received": 135000,
            "use_loyalty": True,
            "customer_name": LOYALTY_CUSTOMER["name"],
            "customer_phone": LOYALTY_CUSTOMER["phone"],
        },
    )

    assert response.status_code == 201
    assert response.json()["points_earned"] == 13
    customer = db.query(Customer).filter(Customer.phone == LOYALTY_CUSTOMER["phone"]).one()
    assert customer.loyalty_points == 13
    assert response.json()["order"]["customer_id"] == customer.id


def test_loyalty_checkout_debits_and_credits_existing_customer():
    client, db = _client_and_db()
    db.add(Customer(name="Old name", phone=LOYALTY_CUSTOMER["phone"], loyalty_points=50))
    db.commit()

    response = client.post(
        "/api/checkout",
        json={
            "lines": [{"product_id": 2, "qty": 3}],
            "payment_method": "cash",
            "amount_received": 135000,
            "discount_code": "giam10",
            "use_loyalty": True,
            "customer_name": LOYALTY_CUSTOMER["name"],
            "customer_phone": LOYALTY_CUSTOMER["phone"],
            "points_to_use": 20,
        },
    )

    assert response.status_code == 201
    amounts = response.json()["amounts"]
    # 135000 - 13500 discount - 20 * 1000 points
    assert amounts["final_amount"] == 101500
    assert amounts["points_earned"] == 10
    customer = db.query(Customer).filter(Customer.phone == LOYALTY_CUSTOMER["phone"]).one()
    db.refresh(customer)
    assert customer.loyalty_points == 50 - 20 + 10
    assert customer.name == LOYALTY_CUSTOMER["name"]


def test_over_redeeming_points_is_rejected_without_side_effects():
    client, db = _client_and_db()
    db.add(Customer(name="A", phone=LOYALTY_CUSTOMER["phone"], loyalty_points=5))
    db.commit()

    response = client.post(
        "/api/checkout",
        json={
            **CASH_CHECKOUT_PAYLOAD,
            "use_loyalty": True,
            "customer_name": "A",
            "customer_phone": LOYALTY_CUSTOMER["phone"],
            "points_to_use": 6,
        },
    )

    assert response.status_code == 400
    assert "max 5" in response.json()["detail"]
    assert db.query(Order).count() == 0
    assert db.query(Customer).one().loyalty_points == 5


def test_loyalty_requires_name_and_phone():
    client, _db = _client_and_db()

    response = client.post(
        "/api/checkout",
        json={**CASH_CHECKOUT_PAYLOAD, "use_loyalty": True, "customer_phone": LOYALTY_CUSTOMER["phone"]},
    )

    assert response.status_code == 400


def test_empty_cart_and_unknown_payment_method_are_rejected():
    client, _db = _client_and_db()

    empty = client.post("/api/checkout", json={"lines": [], "payment_method": "cash", "amount_received": 0})
    card = client.post("/api/checkout", json={**TRANSFER_CHECKOUT_PAYLOAD, "payment_method": "card"})

    assert empty.status_code == 400
    assert card.status_code == 400


def test_quote_does_not_write():
    client, db = _client_and_db()

    response = client.post(
        "/api/checkout/quote",
        json={"lines": [{"product_id": 2, "qty": 1}], "payment_method": "cash", "discount_code": "GIAM30K"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cart_total"] == 45000
    assert body["discount_amount"] == 30000
    assert body["final_amount"] == 15000
    assert body["change"] is None
    assert db.query(Order).count() == 0


def test_customer_lookup():
    client, db = _client_and_db()
    db.add(Customer(name="A", phone=LOYALTY_CUSTOMER["phone"], loyalty_points=7))
    db.commit()

    found = client.get("/api/customers/lookup", params={"phone": LOYALTY_CUSTOMER["phone"]})
    too_short = client.get("/api/customers/lookup", params={"phone": "0901"})
    missing = client.get("/api/customers/lookup", params={"phone": "0999999999"})

    assert found.status_code == 200
    assert found.json()["loyalty_points"] == 7
    assert too_short.status_code == 400
    assert missing.status_code == 404


def test_checkout_requires_authenticated_staff():
    db = build_session()
    seed_catalog(db)
    client = build_client(db, staff=None)

    response = client.post("/api/checkout", json=CASH_CHECKOUT_PAYLOAD)

    assert response.status_code == 401
