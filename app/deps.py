# app/deps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.user_role import MANAGER_ROLES, ROLE_NO_ROLE, STAFF_ROLES, UserRole
from app.services.auth import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


@dataclass
class StaffUser:
    user_id: str
    role: str

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGER_ROLES


def _normalize_role(role: str | None) -> str:
    return (role or "").strip().lower() or ROLE_NO_ROLE


def _log_access_denied(*, reason: str, staff: StaffUser, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s endpoint=%s",
        reason,
        staff.user_id,
        staff.role,
        endpoint,
    )


def get_current_staff(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> StaffUser:
    """Verify the platform bearer token and resolve the caller's role."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token (missing subject)",
            headers={"WWW-Authenticate": "Bearer"},
        )

    row = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    staff = StaffUser(user_id=user_id, role=_normalize_role(row.role if row else None))
    request.state.staff = staff
    return staff


def require_role(roles: Iterable[str]):
    allowed = {role.strip().lower() for role in roles}
    if "manager" in allowed:
        allowed.add("admin")

    def _dependency(
        request: Request,
        staff: StaffUser = Depends(get_current_staff),
    ) -> StaffUser:
        if staff.role not in allowed:
            _log_access_denied(reason="role_denied", staff=staff, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return staff

    return _dependency


require_staff = require_role(STAFF_ROLES)


def ensure_can_cancel(staff: StaffUser, created_by: str | None, request: Request) -> None:
    if staff.can_manage or (created_by and created_by == staff.user_id):
        return
    _log_access_denied(reason="not_order_owner", staff=staff, request=request)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
