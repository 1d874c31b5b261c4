from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.order import utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("selling_price >= 0", name="ck_products_selling_price_non_negative"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    selling_price = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    classification_groups = relationship(
        "ClassificationGroup",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="[ClassificationGroup.sort_order, ClassificationGroup.id]",
    )
