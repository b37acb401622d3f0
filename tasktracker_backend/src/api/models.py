from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple, TypedDict, Union

# Fixed status enumeration; order matters for display only.
TASK_STATUSES: Tuple[str, ...] = (
    "Assigned",
    "Working on it",
    "Waiting for review",
    "Pause for something else",
    "Finished",
    "Cancelled",
)

DEFAULT_STATUS = "Assigned"
ACTIVE_STATUSES: Tuple[str, ...] = (
    "Assigned",
    "Working on it",
    "Waiting for review",
    "Pause for something else",
)

USER_ROLES: Tuple[str, ...] = ("Admin", "User")

Priority = Union[int, float]


class SubTask(TypedDict):
    title: str
    completed: bool


class Comment(TypedDict):
    text: str
    author_name: str
    author_id: int
    created_at: datetime


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A task record as held by the task store.

    Fields:
    - id: Unique integer identifier
    - title: Non-empty after trim
    - description: Free text, '' by default
    - status: One of TASK_STATUSES
    - assigned_to: User id or None when unassigned
    - priority: Unbounded number, 0 by default
    - finished_by: Optional deadline; only its calendar date is significant
    - is_trashed: Soft-delete flag, reversible
    - sub_tasks: Ordered checklist owned by the task
    - comments: Append-only discussion owned by the task
    - created_by / updated_by: User ids of the creator and last modifier
    - created_at / updated_at: Local timestamps
    """

    id: int
    title: str
    description: str
    status: str
    assigned_to: Optional[int]
    priority: Priority
    finished_by: Optional[datetime]
    is_trashed: bool
    sub_tasks: List[SubTask]
    comments: List[Comment]
    created_by: int
    updated_by: Optional[int]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class AuditLogEntity(TypedDict):
    """
    An immutable audit trail entry.

    performed_by is the actor's name as it was when the entry was written;
    it is never joined against the live user record.
    """

    id: int
    task_id: int
    action: str
    field_changed: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    performed_by: str
    performed_by_id: int
    timestamp: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    id: int
    name: str
    role: str
    password_hash: str


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing a mutation."""

    id: int
    name: str
