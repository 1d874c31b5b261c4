from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import request_metrics
from app.deps import StaffUser, require_role

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/requests")
def request_metrics_snapshot(_staff: StaffUser = Depends(require_role(["admin"]))):
    return {"endpoints": request_metrics.snapshot()}
