from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import event, insert, select, update
from sqlalchemy.orm import Session

from app.core import config
from app.models.order import ORDER_STATUS_COMPLETED, Order, utcnow
from app.models.receipt_sequence import ReceiptSequence

logger = logging.getLogger(__name__)

INCOME_RECEIPT_SEQUENCE = "income_receipt"

_sequences = ReceiptSequence.__table__


def format_receipt_code(sequence_value: int, moment: datetime, prefix: str | None = None) -> str:
    prefix = prefix or config.RECEIPT_CODE_PREFIX
    return f"{prefix}{moment.strftime('%d%m%y')}{str(sequence_value).zfill(6)}"


def next_receipt_code(db: Session, moment: datetime | None = None) -> str:
    """Draw the next value of the global receipt sequence inside the caller's transaction."""
    moment = moment or utcnow()
    result = db.execute(
        update(_sequences)
        .where(_sequences.c.name == INCOME_RECEIPT_SEQUENCE)
        .values(value=_sequences.c.value + 1)
    )
    if result.rowcount == 0:
        db.execute(insert(_sequences).values(name=INCOME_RECEIPT_SEQUENCE, value=1))
    value = db.execute(
        select(_sequences.c.value).where(_sequences.c.name == INCOME_RECEIPT_SEQUENCE)
    ).scalar_one()
    return format_receipt_code(value, moment)


def apply_receipt_fields(db: Session, order: Order, moment: datetime | None = None) -> None:
    """Receipt code and paid_at exist only while the order is completed, and are assigned once."""
    if order.status == ORDER_STATUS_COMPLETED:
        if order.paid_at is None:
            order.paid_at = moment or utcnow()
        if not order.income_receipt_code:
            order.income_receipt_code = next_receipt_code(db, order.paid_at)
            logger.info(
                "Receipt code assigned",
                extra={"order_id": order.id, "order_number": order.order_number},
            )
    else:
        order.paid_at = None
        order.income_receipt_code = None


@event.listens_for(Session, "before_flush")
def _sync_receipt_fields(session: Session, _flush_context, _instances) -> None:
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Order):
            apply_receipt_fields(session, obj)
