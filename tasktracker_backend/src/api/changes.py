"""
Field-level change detection for task mutations.

Each mutable field has a rule that compares the stored value against the
value in a partial update and returns a Change when they differ. Rules are
looked up by field name and evaluated in FIELD_ORDER, so the audit entries
of one update always come out in the same order.

Two comparisons are intentionally coarse:
- sub_tasks: any submitted list counts as a change, identical or not
- finished_by: only the calendar date is compared
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from .models import TaskEntity, UserEntity

UNASSIGNED = "Unassigned"
UNKNOWN_USER = "Unknown"
NO_DEADLINE = "None"


class UserLookup(Protocol):
    def get(self, user_id: int) -> Optional[UserEntity]: ...


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Change:
    """
    One detected modification. old_value/new_value hold raw values; the
    audit recorder stringifies them when persisting.
    """

    action: str
    field: Optional[str]
    old_value: Any = None
    new_value: Any = None


# PUBLIC_INTERFACE
@dataclass
class DetectionResult:
    """The changes found in an update and the field values to write back."""

    changes: List[Change] = field(default_factory=list)
    updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.changes)


# PUBLIC_INTERFACE
def stringify(value: Any) -> Optional[str]:
    """
    Render a field value the way it is compared and stored in the audit log.

    None stays None, booleans become 'true'/'false', integral floats drop
    their fractional part so that 3 and 3.0 compare equal.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def resolve_user_name(users: UserLookup, user_id: Optional[int]) -> str:
    """Display name for an assignee id: 'Unassigned' for None, 'Unknown' when it does not resolve."""
    if user_id is None:
        return UNASSIGNED
    user = users.get(user_id)
    return user["name"] if user else UNKNOWN_USER


def format_deadline(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value is not None else NO_DEADLINE


class FieldRule(ABC):
    """Compares one task field against its submitted value."""

    field: str

    @abstractmethod
    def diff(self, old: Any, new: Any, users: UserLookup) -> Optional[Change]:
        """Return the change for old -> new, or None when nothing changed."""


class ScalarRule(FieldRule):
    """Plain fields compared by their string representation."""

    def __init__(self, field: str, action: str) -> None:
        self.field = field
        self.action = action

    def diff(self, old: Any, new: Any, users: UserLookup) -> Optional[Change]:
        if stringify(old) == stringify(new):
            return None
        return Change(self.action, self.field, old, new)


class AssigneeRule(FieldRule):
    field = "assigned_to"

    def diff(self, old: Any, new: Any, users: UserLookup) -> Optional[Change]:
        # None is the unassigned state on both sides.
        if old == new:
            return None
        return Change(
            "Updated Assignment",
            self.field,
            resolve_user_name(users, old),
            resolve_user_name(users, new),
        )


class SubTasksRule(FieldRule):
    field = "sub_tasks"

    def diff(self, old: Any, new: Any, users: UserLookup) -> Optional[Change]:
        # Every submission is a change; the lists are not compared.
        return Change("Updated Sub-tasks", self.field)


class DeadlineRule(FieldRule):
    field = "finished_by"

    def diff(self, old: Any, new: Any, users: UserLookup) -> Optional[Change]:
        old_day = old.date() if old is not None else None
        new_day = new.date() if new is not None else None
        if old_day == new_day:
            return None
        return Change("Updated Finished By", self.field, format_deadline(old), format_deadline(new))


FIELD_ORDER: Tuple[str, ...] = (
    "title",
    "description",
    "status",
    "assigned_to",
    "priority",
    "finished_by",
    "sub_tasks",
)

FIELD_RULES: Dict[str, FieldRule] = {
    "title": ScalarRule("title", "Updated Title"),
    "description": ScalarRule("description", "Updated Description"),
    "status": ScalarRule("status", "Updated Status"),
    "assigned_to": AssigneeRule(),
    "priority": ScalarRule("priority", "Updated Priority"),
    "finished_by": DeadlineRule(),
    "sub_tasks": SubTasksRule(),
}


# PUBLIC_INTERFACE
def detect_changes(task: TaskEntity, payload: Mapping[str, Any], users: UserLookup) -> DetectionResult:
    """
    Compare a partial update against the stored task.

    Only fields present in payload are considered; unknown keys are ignored.
    A field is written back only when its rule reported a change.
    """
    result = DetectionResult()
    for name in FIELD_ORDER:
        if name not in payload:
            continue
        new_value = payload[name]
        change = FIELD_RULES[name].diff(task.get(name), new_value, users)  # type: ignore[misc]
        if change is None:
            continue
        result.changes.append(change)
        result.updates[name] = new_value
    return result


# PUBLIC_INTERFACE
def creation_changes(title: str, assigned_to: Optional[int], users: UserLookup) -> List[Change]:
    """A new task records 'Created', plus 'Assigned' when it starts with an assignee."""
    changes = [Change("Created", None, None, title)]
    if assigned_to is not None:
        changes.append(Change("Assigned", "assigned_to", None, resolve_user_name(users, assigned_to)))
    return changes


# PUBLIC_INTERFACE
def trash_change(was_trashed: bool) -> Change:
    now_trashed = not was_trashed
    return Change("Trashed" if now_trashed else "Restored", "is_trashed", was_trashed, now_trashed)


# PUBLIC_INTERFACE
def comment_change(text: str) -> Change:
    return Change("Added Comment", "comments", None, text)
