from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, validates

from app.core.database import Base
from app.core.exceptions import OrderStateError

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED}

PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_TRANSFER = "transfer"
PAYMENT_METHODS = {PAYMENT_METHOD_CASH, PAYMENT_METHOD_TRANSFER}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_non_negative"),
        CheckConstraint("loyalty_points_used >= 0", name="ck_orders_points_used_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        Index(
            "orders_income_receipt_code_uidx",
            "income_receipt_code",
            unique=True,
            postgresql_where=sa.text("income_receipt_code IS NOT NULL"),
            sqlite_where=sa.text("income_receipt_code IS NOT NULL"),
        ),
        Index(
            "orders_payment_transaction_id_uidx",
            "payment_transaction_id",
            unique=True,
            postgresql_where=sa.text("payment_transaction_id IS NOT NULL"),
            sqlite_where=sa.text("payment_transaction_id IS NOT NULL"),
        ),
        Index("orders_transfer_lookup_idx", "payment_method", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)

    # platform user id of the cashier who rang up the sale
    created_by = Column(String(64), nullable=True, index=True)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String(120), nullable=False, default="")
    customer_phone = Column(String(30), nullable=True)
    note = Column(Text, nullable=True)

    total_amount = Column(Integer, nullable=False, default=0)
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    discount_code = Column(String(32), nullable=True)
    discount_amount = Column(Integer, nullable=False, default=0)
    loyalty_points_used = Column(Integer, nullable=False, default=0)
    loyalty_points_earned = Column(Integer, nullable=False, default=0)

    transfer_content = Column(String(64), nullable=True)
    income_receipt_code = Column(String(32), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_payload = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    payment_transaction_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    customer = relationship("Customer", back_populates="orders")
    order_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @validates("status")
    def _guard_status_transition(self, _key, value):
        if value not in ORDER_STATUSES:
            raise OrderStateError(f"Unknown order status: {value}")
        current = self.status
        if current is None or current == value:
            return value
        if current == ORDER_STATUS_COMPLETED:
            if value == ORDER_STATUS_CANCELLED:
                raise OrderStateError("Paid orders cannot be cancelled")
            raise OrderStateError("Completed orders cannot change status")
        if current == ORDER_STATUS_CANCELLED:
            raise OrderStateError("Cancelled orders cannot change status")
        return value
