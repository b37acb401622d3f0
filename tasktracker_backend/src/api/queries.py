from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import ACTIVE_STATUSES, TASK_STATUSES, TaskEntity
from .repositories import TaskFilter, TaskRepository

TAB_MY_TASKS = "my-tasks"
TAB_UNASSIGNED = "unassigned"
TAB_TRASH = "trash"
ALL_STATUSES = "all"


# PUBLIC_INTERFACE
def build_filter(
    current_user_id: int,
    tab: Optional[str] = None,
    status: Optional[str] = None,
    assigned_to: Optional[int] = None,
) -> TaskFilter:
    """
    Translate dashboard parameters into a store filter.

    - tab=my-tasks: non-trashed tasks assigned to the current user
    - tab=unassigned: non-trashed tasks without an assignee
    - tab=trash: trashed tasks, any assignee
    - otherwise assigned_to narrows to one user; neither means all non-trashed
    """
    statuses: Optional[Tuple[str, ...]] = None
    if status and status != ALL_STATUSES:
        if status not in TASK_STATUSES:
            raise ValidationError(f"Unknown status '{status}'")
        statuses = (status,)

    if tab == TAB_TRASH:
        return TaskFilter(trashed=True, statuses=statuses)
    if tab == TAB_MY_TASKS:
        return TaskFilter(statuses=statuses, filter_assignee=True, assigned_to=current_user_id)
    if tab == TAB_UNASSIGNED:
        return TaskFilter(statuses=statuses, filter_assignee=True, assigned_to=None)
    if assigned_to is not None:
        return TaskFilter(statuses=statuses, filter_assignee=True, assigned_to=assigned_to)
    return TaskFilter(statuses=statuses)


def _deadline_key(task: TaskEntity) -> Tuple[int, date, float]:
    deadline = task["finished_by"]
    if deadline is None:
        return (1, date.max, -task["priority"])
    return (0, deadline.date(), -task["priority"])


# PUBLIC_INTERFACE
def order_tasks(tasks: List[TaskEntity]) -> List[TaskEntity]:
    """
    Deadline-bearing tasks first, earliest deadline first; tasks without a
    deadline after them. Ties go to higher priority, then newer tasks.
    """
    ordered = sorted(tasks, key=lambda t: t["created_at"], reverse=True)
    ordered.sort(key=_deadline_key)
    return ordered


# PUBLIC_INTERFACE
class TaskQueryService:
    """Read-only views over the task store."""

    def __init__(self, tasks: TaskRepository) -> None:
        self._tasks = tasks

    def list_tasks(
        self,
        current_user_id: int,
        tab: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[int] = None,
    ) -> List[TaskEntity]:
        flt = build_filter(current_user_id, tab=tab, status=status, assigned_to=assigned_to)
        return order_tasks(self._tasks.list(flt))

    def tab_counts(self, current_user_id: int) -> Dict[str, int]:
        """
        Count tasks per dashboard tab.

        Keys are user ids as strings, plus 'unassigned', 'trash' and
        'my-tasks' (the current user's bucket repeated under its tab name).
        """
        grouped = self._tasks.count_by_assignee()
        counts: Dict[str, int] = {TAB_UNASSIGNED: 0}
        for assignee, n in grouped.items():
            key = TAB_UNASSIGNED if assignee is None else str(assignee)
            counts[key] = counts.get(key, 0) + n
        counts[TAB_MY_TASKS] = grouped.get(current_user_id, 0)
        counts[TAB_TRASH] = self._tasks.count_trashed()
        return counts

    def user_stats(self, user_id: int) -> Dict[str, int]:
        def count(statuses: Optional[Tuple[str, ...]]) -> int:
            return self._tasks.count(
                TaskFilter(statuses=statuses, filter_assignee=True, assigned_to=user_id)
            )

        return {
            "completed_tasks": count(("Finished",)),
            "active_tasks": count(ACTIVE_STATUSES),
            "total_tasks": count(None),
        }
