"""Status transitions after checkout: staff cancel and manual repay.

Every transition is a conditional UPDATE guarded by ``status = 'pending'``;
the affected-row count tells whether this request won the transition.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.exceptions import CheckoutValidationError, InsufficientCashError, OrderStateError
from app.core.request_context import bind_order
from app.models.customer import Customer
from app.models.order import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    PAYMENT_METHOD_CASH,
    PAYMENT_METHODS,
    Order,
    utcnow,
)
from app.services.receipts import next_receipt_code
from app.services.text import parse_amount_input

logger = logging.getLogger(__name__)


def get_order(db: Session, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()


def _transition_pending(db: Session, order_id: int, values: dict[str, Any]) -> bool:
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.status == ORDER_STATUS_PENDING)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _reverse_loyalty(db: Session, order: Order) -> None:
    if not order.customer_id:
        return
    used = int(order.loyalty_points_used or 0)
    earned = int(order.loyalty_points_earned or 0)
    if not used and not earned:
        return
    customer = db.query(Customer).filter(Customer.id == order.customer_id).with_for_update().first()
    if customer is None:
        return
    customer.loyalty_points = max(0, int(customer.loyalty_points or 0) + used - earned)


def cancel_order(db: Session, order: Order) -> bool:
    """Cancel a pending order. Returns False when it was already cancelled.

    Raises OrderStateError for a completed order.
    """
    bind_order(order.id, order.order_number)
    if order.status == ORDER_STATUS_COMPLETED:
        raise OrderStateError("Paid orders cannot be cancelled")
    if order.status == ORDER_STATUS_CANCELLED:
        return False

    try:
        won = _transition_pending(
            db,
            order.id,
            {
                Order.status: ORDER_STATUS_CANCELLED,
                Order.paid_at: None,
                Order.income_receipt_code: None,
                Order.updated_at: utcnow(),
            },
        )
        if not won:
            db.rollback()
            db.refresh(order)
            if order.status == ORDER_STATUS_COMPLETED:
                raise OrderStateError("Paid orders cannot be cancelled")
            return False

        _reverse_loyalty(db, order)
        db.commit()
    except OrderStateError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order cancelled")
    return True


def repay_order(
    db: Session,
    order: Order,
    *,
    payment_method: str,
    amount_received: Any = None,
) -> int | None:
    """Settle a pending order by hand. Returns the change due for cash, else None."""
    bind_order(order.id, order.order_number)
    if order.status == ORDER_STATUS_COMPLETED:
        raise OrderStateError("Order is already paid")
    if order.status == ORDER_STATUS_CANCELLED:
        raise OrderStateError("Cancelled orders cannot be paid")

    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise CheckoutValidationError(f"Unsupported payment method: {payment_method}")

    change = None
    if method == PAYMENT_METHOD_CASH:
        received = parse_amount_input(amount_received)
        if received is None:
            raise InsufficientCashError("Amount received is required for cash payments")
        if received < order.total_amount:
            raise InsufficientCashError(
                f"Amount received {received} is less than the amount due {order.total_amount}"
            )
        change = received - order.total_amount

    now = utcnow()
    try:
        won = _transition_pending(
            db,
            order.id,
            {
                Order.status: ORDER_STATUS_COMPLETED,
                Order.payment_method: method,
                Order.paid_at: now,
                Order.income_receipt_code: next_receipt_code(db, now),
                Order.updated_at: now,
            },
        )
        if not won:
            db.rollback()
            raise OrderStateError("Order is no longer pending")
        db.commit()
    except OrderStateError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order repaid method=%s", method)
    return change
