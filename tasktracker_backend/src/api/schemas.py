from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import DEFAULT_STATUS, TASK_STATUSES, Priority

# Shared type for incoming deadlines which can be a date, datetime, or ISO8601 string
DeadlineInput = Union[date, datetime, str]


def _parse_deadline(value: Optional[DeadlineInput]) -> Optional[datetime]:
    """
    Internal helper to normalize finished_by input into a datetime.
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, return as-is.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(
                    "Invalid finished_by format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError("Invalid type for finished_by; expected date, datetime, or ISO8601 string.")


def _check_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if value not in TASK_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(TASK_STATUSES)}")
    return value


def _check_title(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    s = value.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


class SubTaskIn(BaseModel):
    """A checklist item as submitted by clients."""

    title: str = Field(..., min_length=1, description="Sub-task title")
    completed: bool = Field(default=False, description="Whether the sub-task is done")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("sub-task title must not be empty")
        return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Prepare release notes",
                "description": "Collect merged PRs since v1.4",
                "status": "Assigned",
                "assigned_to": 2,
                "priority": 3,
                "finished_by": "2025-02-01",
                "sub_tasks": [{"title": "Draft", "completed": False}],
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default="", description="Optional detailed description")
    status: str = Field(default=DEFAULT_STATUS, description="Initial status")
    assigned_to: Optional[int] = Field(default=None, description="Assignee user id, null when unassigned")
    priority: Priority = Field(default=0, description="Higher sorts first among equal deadlines")
    finished_by: Optional[datetime] = Field(
        default=None,
        description="Deadline. Accepts ISO8601 date or datetime; only the calendar date is significant",
    )
    sub_tasks: List[SubTaskIn] = Field(default_factory=list, description="Ordered checklist")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if v is None:
            raise ValueError("title is required")
        return _check_title(v)  # type: ignore[return-value]

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_status(v)  # type: ignore[return-value]

    @field_validator("finished_by", mode="before")
    @classmethod
    def parse_finished_by(cls, v: Optional[DeadlineInput]) -> Optional[datetime]:
        return _parse_deadline(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.

    All fields are optional; only fields present in the request body are
    compared and written (see model_fields_set). Sending sub_tasks always
    replaces the checklist, even with an identical list.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "Working on it",
                "priority": 5,
                "finished_by": "2025-02-02",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Detailed description")
    status: Optional[str] = Field(default=None, description="New status")
    assigned_to: Optional[int] = Field(default=None, description="Assignee user id, null to unassign")
    priority: Optional[Priority] = Field(default=None, description="New priority")
    finished_by: Optional[datetime] = Field(default=None, description="Deadline, null to clear")
    sub_tasks: Optional[List[SubTaskIn]] = Field(default=None, description="Replacement checklist")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        return _check_title(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_status(v)

    @field_validator("finished_by", mode="before")
    @classmethod
    def parse_finished_by(cls, v: Optional[DeadlineInput]) -> Optional[datetime]:
        return _parse_deadline(v)

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "TaskUpdate":
        # assigned_to, finished_by and description may be cleared; the rest may not.
        for name in ("title", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def provided(self) -> dict:
        """Return only the fields present in the request body, sub-tasks as plain dicts."""
        data = self.model_dump(include=self.model_fields_set)
        if "description" in data and data["description"] is None:
            data["description"] = ""
        if "sub_tasks" in data and data["sub_tasks"] is None:
            data["sub_tasks"] = []
        return data


# PUBLIC_INTERFACE
class CommentCreate(BaseModel):
    """Schema for appending a comment to a task."""

    text: Optional[str] = Field(default=None, description="Comment body; must not be blank")


class UserRef(BaseModel):
    """Populated reference to a user (id and display name)."""

    id: int
    name: str


class SubTaskOut(BaseModel):
    title: str
    completed: bool


class CommentOut(BaseModel):
    text: str
    author_name: str
    author_id: int
    created_at: datetime


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task, with user references populated.
    """

    id: int = Field(..., description="Unique identifier of the task")
    title: str
    description: str
    status: str
    assigned_to: Optional[UserRef] = Field(default=None, description="Assignee, null when unassigned")
    priority: Priority
    finished_by: Optional[datetime] = None
    is_trashed: bool
    sub_tasks: List[SubTaskOut]
    comments: List[CommentOut]
    created_by: Optional[UserRef] = None
    updated_by: Optional[UserRef] = None
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class AuditLogOut(BaseModel):
    """An audit trail entry as returned by the API."""

    id: int
    task_id: int
    task_title: Optional[str] = Field(default=None, description="Current title of the task, when it still resolves")
    action: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: str
    performed_by_id: int
    timestamp: datetime


# PUBLIC_INTERFACE
class TimelineEntryOut(BaseModel):
    """A human-readable activity line for a user's daily timeline."""

    time: str = Field(..., description="Wall-clock time, e.g. '9:05 AM'")
    label: str
    kind: str = Field(..., description="start, finish, pause, review, status or other")
    status: Optional[str] = None
    task_id: int
    timestamp: datetime


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    """A user without credentials."""

    id: int
    name: str
    role: str


class UserStats(BaseModel):
    completed_tasks: int
    active_tasks: int
    total_tasks: int


# PUBLIC_INTERFACE
class UserStatsOut(BaseModel):
    user: UserOut
    stats: UserStats


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    password: Optional[str] = Field(default=None, description="The user's password")
