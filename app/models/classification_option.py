from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base


class ClassificationOption(Base):
    __tablename__ = "classification_options"
    __table_args__ = (CheckConstraint("extra_price >= 0", name="ck_classification_options_extra_price_non_negative"),)

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("classification_groups.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(120), nullable=False)
    extra_price = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    group = relationship("ClassificationGroup", back_populates="options")
