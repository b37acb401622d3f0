from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..auth import find_user_by_password, get_current_user
from ..errors import ValidationError
from ..models import UserEntity
from ..repositories import Stores, get_stores
from ..schemas import LoginRequest, UserOut

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["auth"],
)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=UserOut,
    summary="Login",
    description=(
        "Identify a team member by password alone. The returned name is the "
        "username for HTTP Basic credentials on every other endpoint."
    ),
    responses={
        200: {"description": "Password matched a user"},
        401: {"description": "Invalid password"},
        422: {"description": "Password missing"},
    },
)
def login(payload: LoginRequest, stores: Stores = Depends(get_stores)) -> UserOut:
    if not payload.password:
        raise ValidationError("Password is required")
    user = find_user_by_password(stores.users, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")
    return UserOut(id=user["id"], name=user["name"], role=user["role"])


# PUBLIC_INTERFACE
@router.get("/me", response_model=UserOut, summary="Current User")
def me(user: UserEntity = Depends(get_current_user)) -> UserOut:
    return UserOut(id=user["id"], name=user["name"], role=user["role"])
