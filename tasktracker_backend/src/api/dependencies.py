from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import Depends

from .queries import TaskQueryService
from .repositories import Stores, get_stores
from .services import TaskService

Clock = Callable[[], datetime]


def get_clock() -> Clock:
    """Source of 'now' for mutations; overridden in tests."""
    return datetime.now


def get_task_service(stores: Stores = Depends(get_stores), clock: Clock = Depends(get_clock)) -> TaskService:
    return TaskService(stores, clock=clock)


def get_query_service(stores: Stores = Depends(get_stores)) -> TaskQueryService:
    return TaskQueryService(stores.tasks)
