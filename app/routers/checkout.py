import logging
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import StaffUser, require_staff
from app.models.order import PAYMENT_METHOD_TRANSFER
from app.routers.orders import order_to_dict
from app.services.checkout import get_active_product, prepare_checkout
from app.services.orders import create_order
from app.services.pricing import price_cart_line
from app.services.text import build_transfer_qr_url

router = APIRouter(prefix="/api", tags=["checkout"])
logger = logging.getLogger(__name__)


class CartLineIn(BaseModel):
    product_id: int
    qty: int = Field(1, gt=0)
    selections: Dict[int, List[int]] = Field(default_factory=dict)
    note: Optional[str] = None


class CheckoutIn(BaseModel):
    lines: List[CartLineIn]
    payment_method: str = "cash"
    # keypad input, e.g. "50.000"
    amount_received: Optional[Union[int, str]] = None
    discount_code: Optional[str] = None
    use_loyalty: bool = False
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    points_to_use: Optional[int] = None
    note: Optional[str] = None


def _draft_kwargs(body: CheckoutIn) -> dict:
    return {
        "lines": [line.model_dump() for line in body.lines],
        "payment_method": body.payment_method,
        "amount_received": body.amount_received,
        "discount_code": body.discount_code,
        "use_loyalty": body.use_loyalty,
        "customer_name": body.customer_name,
        "customer_phone": body.customer_phone,
        "points_to_use": body.points_to_use,
        "note": body.note,
    }


@router.post("/cart/lines")
def price_line(
    body: CartLineIn,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    product = get_active_product(db, body.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        return price_cart_line(product, body.selections, qty=body.qty, note=body.note)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/checkout/quote")
def quote(
    body: CheckoutIn,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    try:
        draft = prepare_checkout(db, require_cash=False, **_draft_kwargs(body))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    customer = draft.customer
    return {
        **draft.amounts.to_dict(),
        "lines": draft.lines,
        "payment_method": draft.payment_method,
        "change": draft.change,
        "customer": (
            {"id": customer.id, "name": customer.name, "phone": customer.phone, "loyalty_points": customer.loyalty_points}
            if customer
            else None
        ),
    }


@router.post("/checkout", status_code=201)
def checkout(
    body: CheckoutIn,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    try:
        draft = prepare_checkout(db, lock_customer=True, **_draft_kwargs(body))
        order = create_order(db, draft, created_by=staff.user_id)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Checkout failed")
        raise HTTPException(status_code=500, detail="Could not create order") from exc

    is_transfer = order.payment_method == PAYMENT_METHOD_TRANSFER
    return {
        "ok": True,
        "order": order_to_dict(order, include_items=True),
        "amounts": draft.amounts.to_dict(),
        "change": draft.change,
        "points_earned": draft.amounts.points_earned,
        "transfer_content": order.transfer_content if is_transfer else None,
        "transfer_qr_url": build_transfer_qr_url(order.total_amount, order.transfer_content) if is_transfer else None,
    }
