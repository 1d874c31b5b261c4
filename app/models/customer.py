from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.order import utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (CheckConstraint("loyalty_points >= 0", name="ck_customers_loyalty_points_non_negative"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(30), nullable=False, unique=True, index=True)
    loyalty_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    orders = relationship("Order", back_populates="customer")
