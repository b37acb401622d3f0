from __future__ import annotations

import json
import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Mapping, Optional, Tuple

from .errors import StoreError, ValidationError
from .models import AuditLogEntity, Comment, TaskEntity, UserEntity
from .repositories import AuditLogRepository, TaskFilter, TaskRepository, UserRepository

logger = logging.getLogger(__name__)


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    # Fixed width keeps lexicographic order equal to chronological order.
    return value.isoformat(timespec="microseconds") if value is not None else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


_TASK_COLUMNS: Tuple[str, ...] = (
    "title",
    "description",
    "status",
    "assigned_to",
    "priority",
    "finished_by",
    "is_trashed",
    "sub_tasks",
    "comments",
    "created_by",
    "updated_by",
    "created_at",
    "updated_at",
)
_TASK_DEFAULTS: Dict[str, Any] = {
    "description": "",
    "priority": 0,
    "is_trashed": False,
    "sub_tasks": [],
    "comments": [],
}


def _comment_out(comment: Comment) -> Dict[str, Any]:
    return {**comment, "created_at": _dt_out(comment["created_at"])}


def _encode_task_column(column: str, value: Any) -> Any:
    if column in ("finished_by", "created_at", "updated_at"):
        return _dt_out(value)
    if column == "is_trashed":
        return 1 if value else 0
    if column == "sub_tasks":
        return json.dumps(value or [])
    if column == "comments":
        return json.dumps([_comment_out(c) for c in value or []])
    return value


class _SQLiteBase(ABC):
    """
    Shared connection handling for the SQLite repositories.

    Each operation opens its own connection, commits on success and always
    closes it. sqlite3 errors surface as StoreError.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0)
        except sqlite3.Error as e:
            raise StoreError("Database unavailable", detail=str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError("Database operation failed", detail=str(e)) from e
        finally:
            conn.close()

    @abstractmethod
    def _init_db(self) -> None:
        """Create tables and indexes if missing."""


class SQLiteTaskRepository(_SQLiteBase, TaskRepository):
    """
    SQLite task store. Sub-tasks and comments are kept as JSON text columns
    on the task row since they are owned exclusively by it.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'Assigned',
                    assigned_to INTEGER NULL,
                    priority NUMERIC NOT NULL DEFAULT 0,
                    finished_by TEXT NULL,
                    is_trashed INTEGER NOT NULL DEFAULT 0,
                    sub_tasks TEXT NOT NULL DEFAULT '[]',
                    comments TEXT NOT NULL DEFAULT '[]',
                    created_by INTEGER NOT NULL,
                    updated_by INTEGER NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_finished_by ON tasks(finished_by, priority)")

    @staticmethod
    def _row_to_entity(row: sqlite3.Row) -> TaskEntity:
        comments = [
            {**c, "created_at": _dt_in(c["created_at"])}
            for c in json.loads(row["comments"] or "[]")
        ]
        return {
            "id": int(row["id"]),
            "title": str(row["title"]),
            "description": row["description"] or "",
            "status": str(row["status"]),
            "assigned_to": row["assigned_to"],
            "priority": row["priority"],
            "finished_by": _dt_in(row["finished_by"]),
            "is_trashed": bool(row["is_trashed"]),
            "sub_tasks": json.loads(row["sub_tasks"] or "[]"),
            "comments": comments,  # type: ignore[typeddict-item]
            "created_by": int(row["created_by"]),
            "updated_by": row["updated_by"],
            "created_at": _dt_in(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _dt_in(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    @staticmethod
    def _columns(data: Dict[str, Any]) -> Tuple[Any, ...]:
        return tuple(_encode_task_column(c, data.get(c, _TASK_DEFAULTS.get(c))) for c in _TASK_COLUMNS)

    def insert(self, data: Dict[str, Any]) -> TaskEntity:
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) VALUES ({', '.join('?' for _ in _TASK_COLUMNS)})",
                self._columns(data),
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (cur.lastrowid,)).fetchone()
            assert row is not None
            return self._row_to_entity(row)

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    @staticmethod
    def _assignments(fields: Mapping[str, Any]) -> Tuple[List[str], List[Any]]:
        unknown = sorted(set(fields) - set(_TASK_COLUMNS))
        if unknown:
            raise StoreError("Unknown task fields", detail=unknown)
        return (
            [f"{c} = ?" for c in fields],
            [_encode_task_column(c, v) for c, v in fields.items()],
        )

    def save(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        clauses, params = self._assignments(fields)
        with self._conn() as conn:
            if clauses:
                conn.execute(f"UPDATE tasks SET {', '.join(clauses)} WHERE id = ?", (*params, task_id))
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def append_comment(
        self, task_id: int, comment: Comment, fields: Mapping[str, Any]
    ) -> Optional[TaskEntity]:
        clauses, params = self._assignments(fields)
        clauses.insert(0, "comments = json_insert(comments, '$[#]', json(?))")
        params.insert(0, json.dumps(_comment_out(comment)))
        with self._conn() as conn:
            conn.execute(f"UPDATE tasks SET {', '.join(clauses)} WHERE id = ?", (*params, task_id))
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    @staticmethod
    def _where(flt: TaskFilter) -> Tuple[str, List[Any]]:
        clauses = ["is_trashed = ?"]
        params: List[Any] = [1 if flt.trashed else 0]
        if flt.statuses is not None:
            if not flt.statuses:
                clauses.append("0")
            else:
                clauses.append(f"status IN ({', '.join('?' for _ in flt.statuses)})")
                params.extend(flt.statuses)
        if flt.filter_assignee:
            if flt.assigned_to is None:
                clauses.append("assigned_to IS NULL")
            else:
                clauses.append("assigned_to = ?")
                params.append(flt.assigned_to)
        return "WHERE " + " AND ".join(clauses), params

    def list(self, flt: Optional[TaskFilter] = None) -> List[TaskEntity]:
        where_sql, params = self._where(flt or TaskFilter())
        with self._conn() as conn:
            rows = conn.execute(f"SELECT * FROM tasks {where_sql} ORDER BY id", params).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def count(self, flt: Optional[TaskFilter] = None) -> int:
        where_sql, params = self._where(flt or TaskFilter())
        with self._conn() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM tasks {where_sql}", params).fetchone()
            return int(row["cnt"]) if row else 0

    def count_by_assignee(self) -> Dict[Optional[int], int]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT assigned_to, COUNT(*) AS cnt FROM tasks WHERE is_trashed = 0 GROUP BY assigned_to"
            ).fetchall()
            return {r["assigned_to"]: int(r["cnt"]) for r in rows}

    def count_trashed(self) -> int:
        with self._conn() as conn:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM tasks WHERE is_trashed = 1").fetchone()
            return int(row["cnt"]) if row else 0


class SQLiteAuditLogRepository(_SQLiteBase, AuditLogRepository):
    """Append-only SQLite audit log; no UPDATE or DELETE statement is ever issued."""

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    action TEXT NOT NULL,
                    field_changed TEXT NULL,
                    old_value TEXT NULL,
                    new_value TEXT NULL,
                    performed_by TEXT NOT NULL,
                    performed_by_id INTEGER NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_logs_task ON audit_logs(task_id, timestamp)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_logs_actor ON audit_logs(performed_by_id, timestamp)"
            )

    @staticmethod
    def _row_to_entity(row: sqlite3.Row) -> AuditLogEntity:
        return {
            "id": int(row["id"]),
            "task_id": int(row["task_id"]),
            "action": str(row["action"]),
            "field_changed": row["field_changed"],
            "old_value": row["old_value"],
            "new_value": row["new_value"],
            "performed_by": str(row["performed_by"]),
            "performed_by_id": int(row["performed_by_id"]),
            "timestamp": _dt_in(row["timestamp"]),  # type: ignore[typeddict-item]
        }

    def insert_many(self, entries: List[Dict[str, Any]]) -> List[AuditLogEntity]:
        created: List[AuditLogEntity] = []
        with self._conn() as conn:
            for e in entries:
                cur = conn.execute(
                    """
                    INSERT INTO audit_logs (task_id, action, field_changed, old_value, new_value,
                        performed_by, performed_by_id, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        e["task_id"],
                        e["action"],
                        e.get("field_changed"),
                        e.get("old_value"),
                        e.get("new_value"),
                        e["performed_by"],
                        e["performed_by_id"],
                        _dt_out(e["timestamp"]),
                    ),
                )
                created.append({**e, "id": int(cur.lastrowid)})  # type: ignore[typeddict-item]
        return created

    def list_for_task(self, task_id: int) -> List[AuditLogEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_logs WHERE task_id = ? ORDER BY timestamp DESC, id DESC",
                (task_id,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def list_for_user(self, user_id: int, start: datetime, end: datetime) -> List[AuditLogEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM audit_logs
                WHERE performed_by_id = ? AND timestamp >= ? AND timestamp < ?
                ORDER BY timestamp ASC, id ASC
                """,
                (user_id, _dt_out(start), _dt_out(end)),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]


class SQLiteUserRepository(_SQLiteBase, UserRepository):
    """SQLite user directory with a unique name constraint."""

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL DEFAULT 'User',
                    password_hash TEXT NOT NULL
                )
                """
            )

    @staticmethod
    def _row_to_entity(row: sqlite3.Row) -> UserEntity:
        return {
            "id": int(row["id"]),
            "name": str(row["name"]),
            "role": str(row["role"]),
            "password_hash": str(row["password_hash"]),
        }

    def create(self, name: str, role: str, password_hash: str) -> UserEntity:
        try:
            with self._conn() as conn:
                cur = conn.execute(
                    "INSERT INTO users (name, role, password_hash) VALUES (?, ?, ?)",
                    (name, role, password_hash),
                )
                row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
                assert row is not None
                return self._row_to_entity(row)
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"User name '{name}' is already taken") from e

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def get_by_name(self, name: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE name = ?", (name,)).fetchone()
            return self._row_to_entity(row) if row else None

    def list(self) -> List[UserEntity]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
            return [self._row_to_entity(r) for r in rows]

    def rename(self, user_id: int, name: str) -> Optional[UserEntity]:
        try:
            with self._conn() as conn:
                conn.execute("UPDATE users SET name = ? WHERE id = ?", (name, user_id))
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                return self._row_to_entity(row) if row else None
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"User name '{name}' is already taken") from e
