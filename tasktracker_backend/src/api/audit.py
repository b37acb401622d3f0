from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Sequence

from .changes import Change, stringify
from .errors import StoreError
from .models import Actor, AuditLogEntity
from .repositories import AuditLogRepository

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class AuditRecorder:
    """
    Persists one audit entry per change.

    All entries of a batch share a single timestamp; their order is the
    order of the changes. The actor's name is copied onto every entry.
    """

    def __init__(self, audit_logs: AuditLogRepository, clock: Callable[[], datetime] = datetime.now) -> None:
        self._audit_logs = audit_logs
        self._clock = clock

    def build_entries(self, task_id: int, changes: Sequence[Change], actor: Actor) -> List[Dict[str, Any]]:
        timestamp = self._clock()
        return [
            {
                "task_id": task_id,
                "action": c.action,
                "field_changed": c.field,
                "old_value": stringify(c.old_value),
                "new_value": stringify(c.new_value),
                "performed_by": actor.name,
                "performed_by_id": actor.id,
                "timestamp": timestamp,
            }
            for c in changes
        ]

    def record(self, task_id: int, changes: Sequence[Change], actor: Actor) -> List[AuditLogEntity]:
        """
        Append the entries for a committed task mutation.

        Raises:
            StoreError if the audit store rejects the write. The task write
            that preceded it is not undone.
        """
        if not changes:
            return []
        entries = self.build_entries(task_id, changes, actor)
        try:
            return self._audit_logs.insert_many(entries)
        except StoreError:
            logger.exception("Audit write failed task_id=%s entries=%d", task_id, len(entries))
            raise
        except Exception as e:
            logger.exception("Audit write failed task_id=%s entries=%d", task_id, len(entries))
            raise StoreError(
                "Task was saved but its audit trail could not be recorded",
                detail={"task_id": task_id},
            ) from e
