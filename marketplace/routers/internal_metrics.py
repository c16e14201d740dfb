from __future__ import annotations

from fastapi import APIRouter, Depends

from marketplace.core.metrics import request_metrics
from marketplace.deps import require_admin
from marketplace.models.user import User

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def metrics(_admin: User = Depends(require_admin)):
    return {
        "endpoints": request_metrics.snapshot(),
        "roles": request_metrics.snapshot_per_role(),
        "events": request_metrics.snapshot_events(),
    }
