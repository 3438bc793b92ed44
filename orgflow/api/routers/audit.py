from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from orgflow.api.deps import require_permission
from orgflow.core.rbac import Permission
from orgflow.models.employee import Employee
from orgflow.services.container import event_logger


router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/events")
def recent_events(
    limit: int = Query(default=100, ge=1, le=1000),
    event_type: Optional[str] = None,
    actor_id: Optional[str] = None,
    current_employee: Employee = Depends(require_permission(Permission.VIEW_REPORTS)),
) -> list[dict[str, Any]]:
    _ = current_employee
    return event_logger.recent_events(limit=limit, event_type=event_type, actor_id=actor_id)
