from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..dependencies import get_query_service
from ..errors import NotFoundError
from ..queries import TaskQueryService
from ..repositories import Stores, get_stores
from ..schemas import UserOut, UserStats, UserStatsOut

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
    dependencies=[Depends(get_current_user)],
)


# PUBLIC_INTERFACE
@router.get("/", response_model=List[UserOut], summary="List Users")
def list_users(stores: Stores = Depends(get_stores)) -> List[UserOut]:
    """All team members, without credentials."""
    return [UserOut(id=u["id"], name=u["name"], role=u["role"]) for u in stores.users.list()]


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}/stats",
    response_model=UserStatsOut,
    summary="User Stats",
    description="Completed, active and total non-trashed tasks assigned to a user.",
    responses={
        200: {"description": "Stats computed"},
        404: {"description": "User not found"},
    },
)
def user_stats(
    user_id: int,
    stores: Stores = Depends(get_stores),
    queries: TaskQueryService = Depends(get_query_service),
) -> UserStatsOut:
    user = stores.users.get(user_id)
    if user is None:
        raise NotFoundError("User not found", detail={"user_id": user_id})
    return UserStatsOut(
        user=UserOut(id=user["id"], name=user["name"], role=user["role"]),
        stats=UserStats(**queries.user_stats(user_id)),
    )
