import base64
import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from src.api.auth import hash_password  # noqa: E402
from src.api.dependencies import get_clock  # noqa: E402
from src.api.main import app  # noqa: E402
from src.api.repositories import build_stores, get_stores  # noqa: E402

PASSWORDS = {"Nemo": "nemo-secret", "Tony": "tony-secret", "Lamim": "lamim-secret"}
ROLES = {"Nemo": "Admin", "Tony": "User", "Lamim": "User"}


class FakeClock:
    """A controllable 'now' for mutations."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def basic_auth(name: str) -> dict:
    token = base64.b64encode(f"{name}:{PASSWORDS[name]}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture()
def auth_as():
    """Authorization headers for one of the seeded users."""
    return basic_auth


@pytest.fixture()
def stores():
    return build_stores("memory")


@pytest.fixture()
def users(stores):
    # Minimum bcrypt cost keeps the per-request password check fast.
    return {
        name: stores.users.create(name, ROLES[name], hash_password(pw, rounds=4))
        for name, pw in PASSWORDS.items()
    }


@pytest.fixture()
def clock():
    return FakeClock(datetime(2025, 3, 10, 9, 0, 0))


@pytest.fixture()
def client(stores, users, clock):
    app.dependency_overrides[get_stores] = lambda: stores
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        c.headers.update(basic_auth("Nemo"))
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_task():
    """Build a stored-shape task dict for unit tests."""
    counter = {"id": 0}

    def _make(**overrides):
        counter["id"] += 1
        now = datetime(2025, 3, 10, 8, 0, 0) + timedelta(minutes=counter["id"])
        task = {
            "id": counter["id"],
            "title": f"Task {counter['id']}",
            "description": "",
            "status": "Assigned",
            "assigned_to": None,
            "priority": 0,
            "finished_by": None,
            "is_trashed": False,
            "sub_tasks": [],
            "comments": [],
            "created_by": 1,
            "updated_by": 1,
            "created_at": now,
            "updated_at": now,
        }
        task.update(overrides)
        return task

    return _make
