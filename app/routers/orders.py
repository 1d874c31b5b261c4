import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import OrderStateError
from app.deps import StaffUser, ensure_can_cancel, require_staff
from app.models.order import ORDER_STATUSES, Order
from app.models.order_item import OrderItem
from app.services.order_lifecycle import cancel_order, get_order, repay_order

router = APIRouter(prefix="/api", tags=["orders"])
logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "qty": item.qty,
        "unit_price": item.unit_price,
        "subtotal": item.subtotal,
        "classification_labels": item.classification_labels or [],
        "note": item.note,
    }


def order_to_dict(o: Order, include_items: bool = False) -> Dict[str, Any]:
    data = {
        "id": o.id,
        "order_number": o.order_number,
        "status": o.status,
        "payment_method": o.payment_method,
        "total_amount": o.total_amount,
        "customer_id": o.customer_id,
        "customer_name": o.customer_name,
        "customer_phone": o.customer_phone,
        "note": o.note,
        "discount_code": o.discount_code,
        "discount_amount": o.discount_amount,
        "loyalty_points_used": o.loyalty_points_used,
        "loyalty_points_earned": o.loyalty_points_earned,
        "transfer_content": o.transfer_content,
        "income_receipt_code": o.income_receipt_code,
        "payment_transaction_id": o.payment_transaction_id,
        "created_by": o.created_by,
        "paid_at": _iso(o.paid_at),
        "created_at": _iso(o.created_at),
    }
    if include_items:
        data["items"] = [order_item_to_dict(item) for item in o.order_items]
    return data


def _ensure_order(db: Session, order_id: int) -> Order:
    order = get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/orders")
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    query = db.query(Order)
    if status:
        statuses = [s.strip().lower() for s in status.split(",") if s.strip()]
        unknown = [s for s in statuses if s not in ORDER_STATUSES]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown status: {unknown[0]}")
        query = query.filter(Order.status.in_(statuses))

    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Order.order_number.ilike(pattern),
                Order.customer_name.ilike(pattern),
                Order.customer_phone.ilike(pattern),
            )
        )

    orders = query.order_by(desc(Order.created_at), desc(Order.id)).limit(limit).all()
    return [order_to_dict(o) for o in orders]


@router.get("/orders/{order_id}")
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    return order_to_dict(_ensure_order(db, order_id), include_items=True)


@router.post("/orders/{order_id}/cancel")
def cancel(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    order = _ensure_order(db, order_id)
    ensure_can_cancel(staff, order.created_by, request)

    try:
        changed = cancel_order(db, order)
    except OrderStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Cancel failed", extra={"order_id": order_id})
        raise HTTPException(status_code=500, detail="Could not cancel order") from exc

    return {"ok": True, "status": order.status, "changed": changed}


class RepayIn(BaseModel):
    payment_method: str
    amount_received: Optional[Union[int, str]] = None


@router.post("/orders/{order_id}/repay")
def repay(
    order_id: int,
    body: RepayIn,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    order = _ensure_order(db, order_id)

    try:
        change = repay_order(
            db,
            order,
            payment_method=body.payment_method,
            amount_received=body.amount_received,
        )
    except OrderStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Repay failed", extra={"order_id": order_id})
        raise HTTPException(status_code=500, detail="Could not settle order") from exc

    return {"ok": True, "status": order.status, "change": change, "order": order_to_dict(order)}
