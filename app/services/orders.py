import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import LoyaltyError
from app.core.request_context import bind_order
from app.models.customer import Customer
from app.models.order import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    PAYMENT_METHOD_TRANSFER,
    Order,
    utcnow,
)
from app.models.order_item import OrderItem
from app.services import receipts  # noqa: F401  registers the receipt listener
from app.services.checkout import CheckoutDraft
from app.services.text import build_transfer_content, generate_order_number

logger = logging.getLogger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 50


def initial_status_for(payment_method: str) -> str:
    if payment_method == PAYMENT_METHOD_TRANSFER:
        return ORDER_STATUS_PENDING
    return ORDER_STATUS_COMPLETED


def allocate_order_number(db: Session, now: datetime) -> str:
    for offset_ms in range(MAX_ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number(now, offset_ms=offset_ms)
        exists = db.query(Order.id).filter(Order.order_number == candidate).first()
        if not exists:
            return candidate
    raise RuntimeError("Could not allocate a free order number")


def _apply_loyalty(db: Session, draft: CheckoutDraft) -> Customer | None:
    if not draft.use_loyalty:
        return None

    amounts = draft.amounts
    customer = draft.customer
    if customer is None:
        customer = Customer(
            name=draft.customer_name,
            phone=draft.customer_phone,
            loyalty_points=amounts.points_earned,
        )
        db.add(customer)
        db.flush()
        return customer

    balance = int(customer.loyalty_points or 0)
    if amounts.points_used > balance:
        raise LoyaltyError(f"Customer balance changed: only {balance} points available")
    customer.loyalty_points = balance - amounts.points_used + amounts.points_earned
    customer.name = draft.customer_name
    return customer


def create_order_items(db: Session, order_id: int, lines: list[dict]) -> list[OrderItem]:
    order_items: list[OrderItem] = []
    for line in lines:
        order_item = OrderItem(
            order_id=order_id,
            product_id=line.get("product_id"),
            product_name=str(line.get("product_name", "") or "").strip(),
            qty=int(line["qty"]),
            unit_price=int(line["unit_price"]),
            subtotal=int(line["unit_price"]) * int(line["qty"]),
            classification_labels=list(line.get("classification_labels") or []),
            note=line.get("note"),
        )
        db.add(order_item)
        order_items.append(order_item)
    return order_items


def create_order(
    db: Session,
    draft: CheckoutDraft,
    *,
    created_by: str | None = None,
    now: datetime | None = None,
) -> Order:
    """Write the order header, its items and the loyalty balance change in one transaction.

    Nothing is committed unless every item row was written; on any failure the
    whole unit is rolled back and the error propagates to the caller.
    """
    now = now or utcnow()
    amounts = draft.amounts

    try:
        customer = _apply_loyalty(db, draft)
        order_number = allocate_order_number(db, now)
        is_transfer = draft.payment_method == PAYMENT_METHOD_TRANSFER

        order = Order(
            order_number=order_number,
            created_by=created_by,
            customer_id=customer.id if customer else None,
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone,
            note=draft.note,
            total_amount=amounts.final_amount,
            payment_method=draft.payment_method,
            status=initial_status_for(draft.payment_method),
            discount_code=amounts.discount_code,
            discount_amount=amounts.discount_amount,
            loyalty_points_used=amounts.points_used,
            loyalty_points_earned=amounts.points_earned,
            transfer_content=build_transfer_content(order_number) if is_transfer else None,
            paid_at=None if is_transfer else now,
            created_at=now,
        )
        db.add(order)
        db.flush()

        create_order_items(db, order.id, draft.lines)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    bind_order(order.id, order.order_number)
    logger.info(
        "Order created status=%s method=%s total=%s",
        order.status,
        order.payment_method,
        order.total_amount,
    )
    return order
