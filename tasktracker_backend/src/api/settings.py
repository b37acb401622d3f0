from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SeedUser:
    """A user created at startup when absent from the user directory."""

    name: str
    role: str
    password: str


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - TEAM_USERS: comma-separated 'name:role:password' entries seeded at startup
    - LOG_LEVEL: root log level for the console handler (default: INFO)
    - LOG_FILE: optional path of a debug log file
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    team_users: Tuple[SeedUser, ...]
    log_level: str
    log_file: Optional[str]


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _parse_team_users(raw: str) -> Tuple[SeedUser, ...]:
    """
    Parse 'Nemo:Admin:secret,Tony:User:hunter2' into seed users.

    Entries with a missing name or password are skipped; an unknown role
    falls back to 'User'. The password is everything after the second colon.
    """
    users: List[SeedUser] = []
    for chunk in raw.split(","):
        parts = chunk.strip().split(":", 2)
        if len(parts) != 3:
            continue
        name, role, password = parts[0].strip(), parts[1].strip(), parts[2]
        if not name or not password:
            continue
        if role not in {"Admin", "User"}:
            role = "User"
        users.append(SeedUser(name=name, role=role, password=password))
    return tuple(users)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/tasks.db").strip()
    cors_raw = _get_env("CORS_ALLOW_ORIGINS", "*")
    log_file = os.getenv("LOG_FILE") or None

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=_parse_origins(cors_raw),
        team_users=_parse_team_users(os.getenv("TEAM_USERS", "")),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_file=log_file.strip() if log_file else None,
    )
