from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base


class ClassificationGroup(Base):
    __tablename__ = "classification_groups"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(120), nullable=False)
    allow_multiple = Column(Boolean, default=False, nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    product = relationship("Product", back_populates="classification_groups")
    options = relationship(
        "ClassificationOption",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="[ClassificationOption.sort_order, ClassificationOption.id]",
    )
