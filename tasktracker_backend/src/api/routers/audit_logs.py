from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_user
from ..dependencies import get_task_service
from ..schemas import AuditLogOut, TimelineEntryOut
from ..services import TaskService

router = APIRouter(
    prefix="/api/v1/audit-logs",
    tags=["audit-logs"],
    dependencies=[Depends(get_current_user)],
)


# PUBLIC_INTERFACE
@router.get(
    "/task/{task_id}",
    response_model=List[AuditLogOut],
    summary="Task History",
    description="Audit entries for one task, newest first.",
    responses={
        200: {"description": "History retrieved"},
        404: {"description": "Task not found"},
    },
)
def task_history(task_id: int, service: TaskService = Depends(get_task_service)) -> List[AuditLogOut]:
    task = service.get_task(task_id)
    return [AuditLogOut(**e, task_title=task["title"]) for e in service.task_history(task_id)]


# PUBLIC_INTERFACE
@router.get(
    "/user/{user_id}",
    response_model=List[AuditLogOut],
    summary="User Activity",
    description="Raw audit entries performed by a user on one local calendar day, oldest first.",
    responses={
        200: {"description": "Entries retrieved"},
        404: {"description": "User not found"},
    },
)
def user_activity(
    user_id: int,
    day: Optional[date] = Query(None, alias="date", description="Day as YYYY-MM-DD; defaults to today"),
    service: TaskService = Depends(get_task_service),
) -> List[AuditLogOut]:
    logs = service.user_day_logs(user_id, day or date.today())
    titles = service.task_titles({e["task_id"] for e in logs})
    return [AuditLogOut(**e, task_title=titles.get(e["task_id"])) for e in logs]


# PUBLIC_INTERFACE
@router.get(
    "/user/{user_id}/timeline",
    response_model=List[TimelineEntryOut],
    summary="Daily Timeline",
    description=(
        "Readable activity for a user on one local calendar day. Work sessions opened by "
        "'Working on it' and closed the same day report their duration."
    ),
    responses={
        200: {"description": "Timeline built"},
        404: {"description": "User not found"},
    },
)
def user_timeline(
    user_id: int,
    day: Optional[date] = Query(None, alias="date", description="Day as YYYY-MM-DD; defaults to today"),
    service: TaskService = Depends(get_task_service),
) -> List[TimelineEntryOut]:
    entries = service.daily_timeline(user_id, day or date.today())
    return [
        TimelineEntryOut(
            time=e.time,
            label=e.label,
            kind=e.kind,
            status=e.status,
            task_id=e.task_id,
            timestamp=e.timestamp,
        )
        for e in entries
    ]
