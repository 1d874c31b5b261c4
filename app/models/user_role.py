from sqlalchemy import Column, DateTime, Integer, String

from app.core.database import Base
from app.models.order import utcnow

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_STAFF = "staff"
ROLE_NO_ROLE = "no_role"
STAFF_ROLES = {ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF}
MANAGER_ROLES = {ROLE_ADMIN, ROLE_MANAGER}


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default=ROLE_NO_ROLE)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
