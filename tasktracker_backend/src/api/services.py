from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .audit import AuditRecorder
from .changes import UNKNOWN_USER, comment_change, creation_changes, detect_changes, trash_change
from .errors import NotFoundError, ValidationError
from .models import TASK_STATUSES, Actor, AuditLogEntity, Comment, TaskEntity, UserEntity
from .repositories import Stores
from .schemas import TaskCreate
from .timeline import TimelineEntry, day_bounds, reconstruct_timeline

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TaskService:
    """
    Task mutations and their audit trail.

    Every mutation reads the current task, works out the changes, writes the
    task and only then appends the audit entries. An audit failure after the
    task write surfaces as StoreError and leaves the task write in place.
    """

    def __init__(self, stores: Stores, clock: Callable[[], datetime] = datetime.now) -> None:
        self._stores = stores
        self._clock = clock
        self._recorder = AuditRecorder(stores.audit_logs, clock=clock)

    def _require_task(self, task_id: int) -> TaskEntity:
        task = self._stores.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task not found", detail={"task_id": task_id})
        return task

    def _require_user(self, user_id: int) -> UserEntity:
        user = self._stores.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found", detail={"user_id": user_id})
        return user

    def _touched(self, fields: Mapping[str, Any], actor: Actor) -> Dict[str, Any]:
        return {**fields, "updated_by": actor.id, "updated_at": self._clock()}

    @staticmethod
    def _written(task_id: int, task: Optional[TaskEntity]) -> TaskEntity:
        if task is None:
            raise NotFoundError("Task not found", detail={"task_id": task_id})
        return task

    # ---- mutations ----

    def create_task(self, payload: TaskCreate, actor: Actor) -> TaskEntity:
        title = (payload.title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        now = self._clock()
        task = self._stores.tasks.insert(
            {
                "title": title,
                "description": payload.description or "",
                "status": payload.status,
                "assigned_to": payload.assigned_to,
                "priority": payload.priority or 0,
                "finished_by": payload.finished_by,
                "is_trashed": False,
                "sub_tasks": [s.model_dump() for s in payload.sub_tasks],
                "comments": [],
                "created_by": actor.id,
                "updated_by": actor.id,
                "created_at": now,
                "updated_at": now,
            }
        )
        changes = creation_changes(title, payload.assigned_to, self._stores.users)
        self._recorder.record(task["id"], changes, actor)
        logger.info("Task created id=%s by=%s assigned_to=%s", task["id"], actor.name, task["assigned_to"])
        return task

    def update_task(self, task_id: int, updates: Mapping[str, Any], actor: Actor) -> TaskEntity:
        """
        Apply a partial update. Returns the task unchanged, without touching
        updated_by/updated_at or writing anything, when no change is detected.
        """
        if "title" in updates and not str(updates["title"] or "").strip():
            raise ValidationError("Title is required")
        if "status" in updates and updates["status"] not in TASK_STATUSES:
            raise ValidationError(f"Unknown status '{updates['status']}'")

        task = self._require_task(task_id)
        normalized = dict(updates)
        if "title" in normalized:
            normalized["title"] = str(normalized["title"]).strip()

        result = detect_changes(task, normalized, self._stores.users)
        if not result.changed:
            logger.debug("No changes for task id=%s by=%s", task_id, actor.name)
            return task

        saved = self._written(task_id, self._stores.tasks.save(task_id, self._touched(result.updates, actor)))
        self._recorder.record(task_id, result.changes, actor)
        logger.info(
            "Task updated id=%s by=%s fields=%s",
            task_id,
            actor.name,
            ",".join(c.field or "-" for c in result.changes),
        )
        return saved

    def toggle_trash(self, task_id: int, actor: Actor) -> TaskEntity:
        task = self._require_task(task_id)
        change = trash_change(bool(task["is_trashed"]))
        fields = self._touched({"is_trashed": change.new_value}, actor)
        saved = self._written(task_id, self._stores.tasks.save(task_id, fields))
        self._recorder.record(task_id, [change], actor)
        logger.info("Task %s id=%s by=%s", change.action.lower(), task_id, actor.name)
        return saved

    def add_comment(self, task_id: int, text: Optional[str], actor: Actor) -> TaskEntity:
        body = (text or "").strip()
        if not body:
            raise ValidationError("Comment text is required")

        now = self._clock()
        comment: Comment = {"text": body, "author_name": actor.name, "author_id": actor.id, "created_at": now}
        saved = self._written(
            task_id,
            self._stores.tasks.append_comment(task_id, comment, {"updated_by": actor.id, "updated_at": now}),
        )
        self._recorder.record(task_id, [comment_change(body)], actor)
        logger.info("Comment added task_id=%s by=%s", task_id, actor.name)
        return saved

    # ---- reads ----

    def get_task(self, task_id: int) -> TaskEntity:
        return self._require_task(task_id)

    def task_history(self, task_id: int) -> List[AuditLogEntity]:
        self._require_task(task_id)
        return self._stores.audit_logs.list_for_task(task_id)

    def user_day_logs(self, user_id: int, day: date) -> List[AuditLogEntity]:
        self._require_user(user_id)
        start, end = day_bounds(day)
        return self._stores.audit_logs.list_for_user(user_id, start, end)

    def daily_timeline(self, user_id: int, day: date) -> List[TimelineEntry]:
        logs = self.user_day_logs(user_id, day)
        return reconstruct_timeline(logs, self.task_titles({e["task_id"] for e in logs}))

    def task_titles(self, task_ids: Any) -> Dict[int, str]:
        titles: Dict[int, str] = {}
        for task_id in task_ids:
            task = self._stores.tasks.get(task_id)
            if task is not None:
                titles[task_id] = task["title"]
        return titles

    def populate(self, task: TaskEntity) -> Dict[str, Any]:
        """
        Replace user ids on a task with {id, name} references for responses.
        An id that no longer resolves keeps its id with the name 'Unknown'.
        """
        cache: Dict[int, Optional[Dict[str, Any]]] = {}

        def ref(user_id: Optional[int]) -> Optional[Dict[str, Any]]:
            if user_id is None:
                return None
            if user_id not in cache:
                user = self._stores.users.get(user_id)
                cache[user_id] = {"id": user_id, "name": user["name"] if user else UNKNOWN_USER}
            return cache[user_id]

        out: Dict[str, Any] = dict(task)
        out["assigned_to"] = ref(task["assigned_to"])
        out["created_by"] = ref(task["created_by"])
        out["updated_by"] = ref(task["updated_by"])
        return out
