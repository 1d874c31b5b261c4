from sqlalchemy import Column, Integer, String

from app.core.database import Base


class ReceiptSequence(Base):
    """Monotonic counter backing income receipt codes."""

    __tablename__ = "receipt_sequences"

    name = Column(String(40), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
