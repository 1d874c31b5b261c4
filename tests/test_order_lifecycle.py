import pytest

from app.core.exceptions import OrderStateError
from app.models.customer import Customer
from app.models.order import Order
from app.services.order_lifecycle import cancel_order, get_order, repay_order
from tests.fixtures_data import (
    CASH_CHECKOUT_PAYLOAD,
    LOYALTY_CUSTOMER,
    MANAGER_USER,
    OTHER_STAFF_USER,
    TRANSFER_CHECKOUT_PAYLOAD,
)
from tests.support import (
    build_client,
    build_session,
    receipt_sequence_value,
    seed_catalog,
    settle_order_directly,
)


def _setup():
    db = build_session()
    seed_catalog(db)
    return build_client(db), db


def _checkout(client, payload) -> dict:
    response = client.post("/api/checkout", json=payload)
    assert response.status_code == 201
    return response.json()["order"]


def test_cancel_pending_order():
    client, db = _setup()
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)

    response = client.post(f"/api/orders/{order['id']}/cancel")
    again = client.post(f"/api/orders/{order['id']}/cancel")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "status": "cancelled", "changed": True}
    assert again.status_code == 200
    assert again.json()["changed"] is False
    stored = db.query(Order).filter(Order.id == order["id"]).one()
    assert stored.income_receipt_code is None
    assert stored.paid_at is None


def test_paid_orders_cannot_be_cancelled():
    client, db = _setup()
    order = _checkout(client, CASH_CHECKOUT_PAYLOAD)

    response = client.post(f"/api/orders/{order['id']}/cancel")

    assert response.status_code == 409
    assert response.json()["detail"] == "Paid orders cannot be cancelled"
    assert db.query(Order).filter(Order.id == order["id"]).one().status == "completed"


def test_cancel_reverses_loyalty_effects():
    client, db = _setup()
    db.add(Customer(name="A", phone=LOYALTY_CUSTOMER["phone"], loyalty_points=30))
    db.commit()
    order = _checkout(
        client,
        {
            **TRANSFER_CHECKOUT_PAYLOAD,
            "lines": [{"product_id": 2, "qty": 3}],
            "use_loyalty": True,
            "customer_name": "A",
            "customer_phone": LOYALTY_CUSTOMER["phone"],
            "points_to_use": 10,
        },
    )
    # 135000 - 10000 = 125000 -> 12 earned
    assert db.query(Customer).one().loyalty_points == 30 - 10 + 12

    response = client.post(f"/api/orders/{order['id']}/cancel")

    assert response.status_code == 200
    customer = db.query(Customer).one()
    db.refresh(customer)
    assert customer.loyalty_points == 30


def test_only_managers_or_creator_can_cancel():
    db = build_session()
    seed_catalog(db)
    order = _checkout(build_client(db), TRANSFER_CHECKOUT_PAYLOAD)

    denied = build_client(db, staff=OTHER_STAFF_USER).post(f"/api/orders/{order['id']}/cancel")
    allowed = build_client(db, staff=MANAGER_USER).post(f"/api/orders/{order['id']}/cancel")

    assert denied.status_code == 403
    assert allowed.status_code == 200


def test_repay_pending_order_with_cash():
    client, _db = _setup()
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)

    short = client.post(f"/api/orders/{order['id']}/repay", json={"payment_method": "cash", "amount_received": "40.000"})
    response = client.post(
        f"/api/orders/{order['id']}/repay",
        json={"payment_method": "cash", "amount_received": "50.000"},
    )
    repeated = client.post(f"/api/orders/{order['id']}/repay", json={"payment_method": "transfer"})

    assert short.status_code == 400
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["change"] == 5000
    assert body["order"]["payment_method"] == "cash"
    assert body["order"]["income_receipt_code"].startswith("IC")
    assert repeated.status_code == 409


def test_cancelled_orders_cannot_be_repaid():
    client, _db = _setup()
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)
    client.post(f"/api/orders/{order['id']}/cancel")

    response = client.post(f"/api/orders/{order['id']}/repay", json={"payment_method": "transfer"})

    assert response.status_code == 409


def test_orm_guard_blocks_leaving_completed():
    client, db = _setup()
    order = _checkout(client, CASH_CHECKOUT_PAYLOAD)
    stored = db.query(Order).filter(Order.id == order["id"]).one()

    with pytest.raises(OrderStateError, match="Paid orders cannot be cancelled"):
        stored.status = "cancelled"
    with pytest.raises(OrderStateError):
        stored.status = "pending"


def test_orm_guard_blocks_leaving_cancelled():
    client, db = _setup()
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)
    client.post(f"/api/orders/{order['id']}/cancel")
    stored = db.query(Order).filter(Order.id == order["id"]).one()
    db.refresh(stored)

    with pytest.raises(OrderStateError):
        stored.status = "pending"


def test_receipt_fields_follow_status_on_orm_writes():
    client, db = _setup()
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)
    stored = db.query(Order).filter(Order.id == order["id"]).one()

    stored.status = "completed"
    db.commit()
    db.refresh(stored)
    first_code = stored.income_receipt_code

    other = _checkout(client, CASH_CHECKOUT_PAYLOAD)

    assert first_code is not None
    assert stored.paid_at is not None
    assert other["income_receipt_code"] != first_code
    assert int(other["income_receipt_code"][-6:]) == int(first_code[-6:]) + 1


def test_list_and_get_orders():
    client, _db = _setup()
    cash = _checkout(client, CASH_CHECKOUT_PAYLOAD)
    transfer = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)

    listed = client.get("/api/orders")
    pending = client.get("/api/orders", params={"status": "pending"})
    searched = client.get("/api/orders", params={"search": cash["order_number"][-6:]})
    detail = client.get(f"/api/orders/{transfer['id']}")
    missing = client.get("/api/orders/999")
    bad_status = client.get("/api/orders", params={"status": "shipped"})

    assert [o["id"] for o in listed.json()] == [transfer["id"], cash["id"]]
    assert [o["id"] for o in pending.json()] == [transfer["id"]]
    assert cash["id"] in [o["id"] for o in searched.json()]
    assert detail.json()["items"][0]["qty"] == 1
    assert missing.status_code == 404
    assert bad_status.status_code == 400


def _stale_pending_order(db):
    client = build_client(db)
    order = _checkout(client, TRANSFER_CHECKOUT_PAYLOAD)
    stale = get_order(db, order["id"])
    assert stale.status == "pending"
    return stale


def test_cancel_that_loses_to_a_payment_is_rejected():
    db = build_session(expire_on_commit=False)
    seed_catalog(db)
    stale = _stale_pending_order(db)
    settle_order_directly(db, stale.id)
    assert stale.status == "pending"

    with pytest.raises(OrderStateError, match="Paid orders cannot be cancelled"):
        cancel_order(db, stale)

    assert stale.status == "completed"
    assert stale.income_receipt_code is not None


def test_cancel_that_loses_to_another_cancel_is_a_no_op():
    db = build_session(expire_on_commit=False)
    seed_catalog(db)
    stale = _stale_pending_order(db)
    settle_order_directly(db, stale.id, status="cancelled")

    assert cancel_order(db, stale) is False
    assert stale.status == "cancelled"


def test_repay_that_loses_the_race_does_not_consume_a_receipt_number():
    db = build_session(expire_on_commit=False)
    seed_catalog(db)
    stale = _stale_pending_order(db)
    settle_order_directly(db, stale.id)
    assert receipt_sequence_value(db) == 1

    with pytest.raises(OrderStateError, match="no longer pending"):
        repay_order(db, stale, payment_method="transfer")

    assert receipt_sequence_value(db) == 1
    db.refresh(stale)
    assert stale.status == "completed"
