from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_actor, get_current_user
from ..dependencies import get_query_service, get_task_service
from ..models import Actor
from ..queries import TaskQueryService
from ..schemas import CommentCreate, TaskCreate, TaskOut, TaskUpdate
from ..services import TaskService

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
    dependencies=[Depends(get_current_user)],
)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TaskOut],
    summary="List Tasks",
    description=(
        "List tasks for a dashboard tab.\n\n"
        "Query parameters:\n"
        "- tab: my-tasks, unassigned or trash\n"
        "- assigned_to: user id (ignored when tab is set)\n"
        "- status: one of the task statuses, or 'all'\n\n"
        "Tasks with a deadline come first, earliest first; ties go to higher priority."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        422: {"description": "Invalid query parameters"},
    },
)
def list_tasks(
    tab: Optional[str] = Query(None, description="my-tasks, unassigned or trash"),
    assigned_to: Optional[int] = Query(None, description="Only tasks assigned to this user"),
    status_filter: Optional[str] = Query(None, alias="status", description="Status filter or 'all'"),
    actor: Actor = Depends(get_actor),
    queries: TaskQueryService = Depends(get_query_service),
    service: TaskService = Depends(get_task_service),
) -> List[TaskOut]:
    """
    List tasks with tab, assignee and status filters.
    """
    tasks = queries.list_tasks(actor.id, tab=tab, status=status_filter, assigned_to=assigned_to)
    return [TaskOut(**service.populate(t)) for t in tasks]


# PUBLIC_INTERFACE
@router.get(
    "/counts",
    response_model=Dict[str, int],
    summary="Tab Counts",
    description="Number of tasks per assignee (by user id), 'unassigned', 'my-tasks' and 'trash'.",
)
def task_counts(
    actor: Actor = Depends(get_actor),
    queries: TaskQueryService = Depends(get_query_service),
) -> Dict[str, int]:
    return queries.tab_counts(actor.id)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task and record 'Created' (and 'Assigned' when an assignee is given).",
    responses={
        201: {"description": "Task created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_task(
    payload: TaskCreate,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    created = service.create_task(payload, actor)
    return TaskOut(**service.populate(created))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
    },
)
def get_task(
    task_id: int,
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    """
    Retrieve a single task by its ID.
    """
    return TaskOut(**service.populate(service.get_task(task_id)))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Partially update a task. Each changed field is recorded as one audit entry. "
        "When nothing changed the task is returned as-is and no audit entry is written."
    ),
    responses={
        200: {"description": "Task updated (or unchanged)"},
        404: {"description": "Task not found"},
        500: {"description": "Task saved but audit trail could not be recorded"},
    },
)
def update_task(
    task_id: int,
    payload: TaskUpdate,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    updated = service.update_task(task_id, payload.provided(), actor)
    return TaskOut(**service.populate(updated))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/trash",
    response_model=TaskOut,
    summary="Toggle Trash",
    description="Move a task to the trash, or restore it when it is already trashed.",
    responses={
        200: {"description": "Trash flag toggled"},
        404: {"description": "Task not found"},
    },
)
def toggle_trash(
    task_id: int,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    return TaskOut(**service.populate(service.toggle_trash(task_id, actor)))


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/comments",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Comment",
    description="Append a comment to a task. Comments cannot be edited or removed.",
    responses={
        201: {"description": "Comment added"},
        404: {"description": "Task not found"},
        422: {"description": "Comment text missing"},
    },
)
def add_comment(
    task_id: int,
    payload: CommentCreate,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    return TaskOut(**service.populate(service.add_comment(task_id, payload.text, actor)))
