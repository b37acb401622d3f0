from __future__ import annotations

from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .models import Actor, UserEntity
from .repositories import Stores, UserRepository, get_stores

_security = HTTPBasic(auto_error=False)

_ROUNDS = 12


# PUBLIC_INTERFACE
def hash_password(password: str, *, rounds: int = _ROUNDS) -> str:
    """Return the bcrypt hash of a password."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


# PUBLIC_INTERFACE
def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a bcrypt hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# PUBLIC_INTERFACE
def find_user_by_password(users: UserRepository, password: str) -> Optional[UserEntity]:
    """
    Return the first user whose password matches.

    Team members log in with their password alone; names are unique but are
    not asked for at login.
    """
    for user in users.list():
        if verify_password(password, user["password_hash"]):
            return user
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


# PUBLIC_INTERFACE
def get_current_user(
    creds: Optional[HTTPBasicCredentials] = Depends(_security),
    stores: Stores = Depends(get_stores),
) -> UserEntity:
    """
    Resolve the authenticated user from HTTP Basic credentials
    (username = user name).

    Raises:
        HTTPException(401) if credentials are missing or invalid.
    """
    if creds is None or not creds.username or creds.password is None:
        raise _unauthorized("Not authenticated")

    user = stores.users.get_by_name(creds.username)
    if user is None or not verify_password(creds.password, user["password_hash"]):
        raise _unauthorized("Invalid authentication credentials")
    return user


# PUBLIC_INTERFACE
def get_actor(user: UserEntity = Depends(get_current_user)) -> Actor:
    """The acting identity recorded on audit entries."""
    return Actor(id=user["id"], name=user["name"])
