from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .models import AuditLogEntity, Comment, TaskEntity, UserEntity
from .settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskFilter:
    """
    Store-level filter for listing and counting tasks.

    filter_assignee distinguishes "no assignee filter" from "assigned_to is
    None" (the unassigned bucket).
    """
    trashed: bool = False
    statuses: Optional[Tuple[str, ...]] = None
    filter_assignee: bool = False
    assigned_to: Optional[int] = None

    def matches(self, task: TaskEntity) -> bool:
        if bool(task["is_trashed"]) != self.trashed:
            return False
        if self.statuses is not None and task["status"] not in self.statuses:
            return False
        if self.filter_assignee and task["assigned_to"] != self.assigned_to:
            return False
        return True


# PUBLIC_INTERFACE
class TaskRepository(ABC):
    """Abstract contract for task storage backends."""

    @abstractmethod
    def insert(self, data: Dict[str, Any]) -> TaskEntity:
        """Persist a new task (all fields but id) and return it with its id."""

    @abstractmethod
    def get(self, task_id: int) -> Optional[TaskEntity]:
        """Return a task by id, or None if not found."""

    @abstractmethod
    def save(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        """
        Write only the given fields of an existing task and return the stored
        task, or None if it does not exist. Other fields keep whatever the
        store currently holds.
        """

    @abstractmethod
    def append_comment(
        self, task_id: int, comment: Comment, fields: Mapping[str, Any]
    ) -> Optional[TaskEntity]:
        """Append one comment and write the given fields in a single step; None if the task does not exist."""

    @abstractmethod
    def list(self, flt: Optional[TaskFilter] = None) -> List[TaskEntity]:
        """Return tasks matching the filter in insertion order."""

    @abstractmethod
    def count(self, flt: Optional[TaskFilter] = None) -> int:
        """Return the number of tasks matching the filter."""

    @abstractmethod
    def count_by_assignee(self) -> Dict[Optional[int], int]:
        """Group non-trashed tasks by assignee id (None for unassigned) and count them."""

    @abstractmethod
    def count_trashed(self) -> int:
        """Return the number of trashed tasks."""


# PUBLIC_INTERFACE
class AuditLogRepository(ABC):
    """
    Append-only contract for audit entries.

    There is deliberately no update or delete operation.
    """

    @abstractmethod
    def insert_many(self, entries: List[Dict[str, Any]]) -> List[AuditLogEntity]:
        """Persist entries (all fields but id) in order and return them with ids."""

    @abstractmethod
    def list_for_task(self, task_id: int) -> List[AuditLogEntity]:
        """Return a task's entries, newest first."""

    @abstractmethod
    def list_for_user(self, user_id: int, start: datetime, end: datetime) -> List[AuditLogEntity]:
        """Return entries performed by a user with start <= timestamp < end, oldest first."""


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Contract for the user directory."""

    @abstractmethod
    def create(self, name: str, role: str, password_hash: str) -> UserEntity:
        """Create a user. Raises ValidationError if the name is taken."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[UserEntity]:
        """Return a user by unique name, or None."""

    @abstractmethod
    def list(self) -> List[UserEntity]:
        """Return all users ordered by id."""

    @abstractmethod
    def rename(self, user_id: int, name: str) -> Optional[UserEntity]:
        """Change a user's display name. Existing audit entries keep the old name."""


def _sort_newest_first(entries: Iterable[AuditLogEntity]) -> List[AuditLogEntity]:
    # Stable on id so entries sharing a batch timestamp keep insertion order reversed.
    return sorted(entries, key=lambda e: (e["timestamp"], e["id"]), reverse=True)


class InMemoryTaskRepository(TaskRepository):
    """
    Thread-safe in-memory task store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[int, TaskEntity] = {}
        self._next_id = 1

    def insert(self, data: Dict[str, Any]) -> TaskEntity:
        with self._lock:
            entity: TaskEntity = copy.deepcopy(data)  # type: ignore[assignment]
            entity["id"] = self._next_id
            self._next_id += 1
            self._items[entity["id"]] = entity
            return copy.deepcopy(entity)

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            return None if item is None else copy.deepcopy(item)

    def save(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            if item is None:
                return None
            item.update(copy.deepcopy(dict(fields)))  # type: ignore[typeddict-item]
            return copy.deepcopy(item)

    def append_comment(
        self, task_id: int, comment: Comment, fields: Mapping[str, Any]
    ) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            if item is None:
                return None
            item["comments"].append(copy.deepcopy(comment))
            item.update(copy.deepcopy(dict(fields)))  # type: ignore[typeddict-item]
            return copy.deepcopy(item)

    def list(self, flt: Optional[TaskFilter] = None) -> List[TaskEntity]:
        f = flt or TaskFilter()
        with self._lock:
            return [copy.deepcopy(t) for t in self._items.values() if f.matches(t)]

    def count(self, flt: Optional[TaskFilter] = None) -> int:
        f = flt or TaskFilter()
        with self._lock:
            return sum(1 for t in self._items.values() if f.matches(t))

    def count_by_assignee(self) -> Dict[Optional[int], int]:
        counts: Dict[Optional[int], int] = {}
        with self._lock:
            for t in self._items.values():
                if t["is_trashed"]:
                    continue
                counts[t["assigned_to"]] = counts.get(t["assigned_to"], 0) + 1
        return counts

    def count_trashed(self) -> int:
        with self._lock:
            return sum(1 for t in self._items.values() if t["is_trashed"])


class InMemoryAuditLogRepository(AuditLogRepository):
    """Thread-safe append-only in-memory audit log."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: List[AuditLogEntity] = []
        self._next_id = 1

    def insert_many(self, entries: List[Dict[str, Any]]) -> List[AuditLogEntity]:
        created: List[AuditLogEntity] = []
        with self._lock:
            for data in entries:
                entity: AuditLogEntity = dict(data)  # type: ignore[assignment]
                entity["id"] = self._next_id
                self._next_id += 1
                self._items.append(entity)
                created.append(dict(entity))  # type: ignore[arg-type]
        return created

    def list_for_task(self, task_id: int) -> List[AuditLogEntity]:
        with self._lock:
            matching = [dict(e) for e in self._items if e["task_id"] == task_id]
        return _sort_newest_first(matching)  # type: ignore[arg-type]

    def list_for_user(self, user_id: int, start: datetime, end: datetime) -> List[AuditLogEntity]:
        with self._lock:
            matching = [
                dict(e)
                for e in self._items
                if e["performed_by_id"] == user_id and start <= e["timestamp"] < end
            ]
        return sorted(matching, key=lambda e: (e["timestamp"], e["id"]))  # type: ignore[arg-type,return-value]


class InMemoryUserRepository(UserRepository):
    """Thread-safe in-memory user directory."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[int, UserEntity] = {}
        self._next_id = 1

    def create(self, name: str, role: str, password_hash: str) -> UserEntity:
        with self._lock:
            if any(u["name"] == name for u in self._items.values()):
                raise ValidationError(f"User name '{name}' is already taken")
            user: UserEntity = {
                "id": self._next_id,
                "name": name,
                "role": role,
                "password_hash": password_hash,
            }
            self._next_id += 1
            self._items[user["id"]] = user
            return dict(user)  # type: ignore[return-value]

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._lock:
            user = self._items.get(user_id)
            return None if user is None else dict(user)  # type: ignore[return-value]

    def get_by_name(self, name: str) -> Optional[UserEntity]:
        with self._lock:
            for user in self._items.values():
                if user["name"] == name:
                    return dict(user)  # type: ignore[return-value]
        return None

    def list(self) -> List[UserEntity]:
        with self._lock:
            return [dict(self._items[k]) for k in sorted(self._items)]  # type: ignore[misc]

    def rename(self, user_id: int, name: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._items.get(user_id)
            if user is None:
                return None
            if any(u["name"] == name and u["id"] != user_id for u in self._items.values()):
                raise ValidationError(f"User name '{name}' is already taken")
            user["name"] = name
            return dict(user)  # type: ignore[return-value]


@dataclass
class Stores:
    """The three stores a request works against."""

    tasks: TaskRepository
    audit_logs: AuditLogRepository
    users: UserRepository


# PUBLIC_INTERFACE
def build_stores(backend: str = "memory", sqlite_db_path: Optional[str] = None) -> Stores:
    """
    Construct a fresh set of stores for the given backend.
    - memory: in-memory repositories
    - sqlite: SQLite repositories sharing one database file
    """
    if backend == "sqlite":
        from .db import SQLiteAuditLogRepository, SQLiteTaskRepository, SQLiteUserRepository

        path = sqlite_db_path or "./data/tasks.db"
        return Stores(
            tasks=SQLiteTaskRepository(path),
            audit_logs=SQLiteAuditLogRepository(path),
            users=SQLiteUserRepository(path),
        )
    return Stores(
        tasks=InMemoryTaskRepository(),
        audit_logs=InMemoryAuditLogRepository(),
        users=InMemoryUserRepository(),
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_stores() -> Stores:
    """
    Return the process-wide stores configured by settings, seeding the users
    listed in TEAM_USERS that do not exist yet.
    """
    from .auth import hash_password

    settings = get_settings()
    stores = build_stores(settings.persistence_backend, settings.sqlite_db_path)
    for seed in settings.team_users:
        if stores.users.get_by_name(seed.name) is None:
            stores.users.create(seed.name, seed.role, hash_password(seed.password))
            logger.info("Seeded user name=%s role=%s", seed.name, seed.role)
    logger.info("Stores ready backend=%s", settings.persistence_backend)
    return stores
