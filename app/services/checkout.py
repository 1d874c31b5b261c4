from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session

from app.core import config
from app.core.exceptions import CheckoutValidationError, InsufficientCashError, LoyaltyError, PricingError
from app.models.customer import Customer
from app.models.order import PAYMENT_METHOD_CASH, PAYMENT_METHODS
from app.models.product import Product
from app.services.discounts import CheckoutAmounts, resolve_checkout_amounts
from app.services.pricing import cart_total, price_cart_line
from app.services.text import parse_amount_input

logger = logging.getLogger(__name__)

MIN_LOOKUP_PHONE_LENGTH = 9


@dataclass
class CheckoutDraft:
    lines: list[dict]
    payment_method: str
    amounts: CheckoutAmounts
    customer_name: str
    customer_phone: str | None
    use_loyalty: bool = False
    customer: Customer | None = None
    amount_received: int | None = None
    change: int | None = None
    note: str | None = None


def normalize_phone(phone: str | None) -> str:
    return "".join((phone or "").split())


def get_active_product(db: Session, product_id: int) -> Product | None:
    return (
        db.query(Product)
        .filter(Product.id == product_id, Product.is_active.is_(True))
        .first()
    )


def find_customer_by_phone(db: Session, phone: str | None, *, lock: bool = False) -> Customer | None:
    normalized = normalize_phone(phone)
    if not normalized:
        return None
    query = db.query(Customer).filter(Customer.phone == normalized)
    if lock:
        query = query.with_for_update()
    return query.first()


def price_requested_lines(db: Session, requested: Iterable[Mapping[str, Any]]) -> list[dict]:
    """Re-price every requested line from the catalog; client prices are never trusted."""
    priced: list[dict] = []
    for entry in requested:
        product_id = entry.get("product_id")
        product = get_active_product(db, product_id) if product_id is not None else None
        if product is None:
            raise PricingError(f"Unknown product: {product_id}")
        priced.append(
            price_cart_line(
                product,
                entry.get("selections") or {},
                qty=entry.get("qty", 1),
                note=entry.get("note"),
            )
        )
    return priced


def prepare_checkout(
    db: Session,
    *,
    lines: list[Mapping[str, Any]],
    payment_method: str,
    amount_received: Any = None,
    discount_code: str | None = None,
    use_loyalty: bool = False,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    points_to_use: int | None = None,
    note: str | None = None,
    require_cash: bool = True,
    lock_customer: bool = False,
) -> CheckoutDraft:
    """Validate a checkout request and resolve every amount without writing anything."""
    if not lines:
        raise CheckoutValidationError("Cart is empty")

    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise CheckoutValidationError(f"Unsupported payment method: {payment_method}")

    priced = price_requested_lines(db, lines)

    name = (customer_name or "").strip()
    phone = normalize_phone(customer_phone)
    customer = None
    if use_loyalty:
        if not name or not phone:
            raise LoyaltyError("Loyalty requires customer name and phone")
        customer = find_customer_by_phone(db, phone, lock=lock_customer)
    else:
        name = config.WALK_IN_CUSTOMER_NAME
        phone = None

    amounts = resolve_checkout_amounts(
        cart_total(priced),
        discount_code=discount_code,
        customer_points=customer.loyalty_points if customer else 0,
        points_to_use=points_to_use,
        use_loyalty=use_loyalty,
    )

    received = None
    change = None
    if method == PAYMENT_METHOD_CASH:
        received = parse_amount_input(amount_received)
        if received is None:
            if require_cash:
                raise InsufficientCashError("Amount received is required for cash payments")
        elif received < amounts.final_amount:
            raise InsufficientCashError(
                f"Amount received {received} is less than the amount due {amounts.final_amount}"
            )
        else:
            change = received - amounts.final_amount

    return CheckoutDraft(
        lines=priced,
        payment_method=method,
        amounts=amounts,
        customer_name=name,
        customer_phone=phone,
        use_loyalty=use_loyalty,
        customer=customer,
        amount_received=received,
        change=change,
        note=(note or "").strip() or None,
    )
