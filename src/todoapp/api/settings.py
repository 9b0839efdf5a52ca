from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

BACKENDS = ("memory", "sqlite")
DEV_JWT_SECRET = "dev-secret-change-me"


@dataclass(frozen=True)
class Settings:
    """
    Backend configuration, read once from the process environment.

    Env vars:
    - PERSISTENCE_BACKEND: where users and todos live, 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: database file for the sqlite backend. Default './data/todos.db'
    - CORS_ALLOW_ORIGINS: '*' (default) or a comma-separated origin list
    - JWT_SECRET: HMAC key for access tokens; the dev default must be overridden in production
    - JWT_ALGORITHM: token signing algorithm (default: HS256)
    - JWT_EXPIRES_DAYS: token lifetime in days (default: 30)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    jwt_secret: str
    jwt_algorithm: str
    jwt_expires_days: int

    @property
    def token_max_age_seconds(self) -> int:
        return self.jwt_expires_days * 24 * 60 * 60


def _env(name: str, default: str) -> str:
    """Stripped value of `name`; unset or blank falls back to `default`."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _positive_int(raw: str, default: int) -> int:
    try:
        number = int(raw)
    except ValueError:
        return default
    return number if number > 0 else default


def _origin_list(raw: str) -> List[str]:
    # '*' stays a one-element list; main.py turns it into a wildcard CORS policy
    if raw == "*":
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Build `Settings` from the environment. Unknown backends fall back to 'memory'."""
    backend = _env("PERSISTENCE_BACKEND", "memory").lower()
    return Settings(
        persistence_backend=backend if backend in BACKENDS else "memory",
        sqlite_db_path=_env("SQLITE_DB_PATH", "./data/todos.db"),
        cors_allow_origins=_origin_list(_env("CORS_ALLOW_ORIGINS", "*")),
        jwt_secret=_env("JWT_SECRET", DEV_JWT_SECRET),
        jwt_algorithm=_env("JWT_ALGORITHM", "HS256"),
        jwt_expires_days=_positive_int(_env("JWT_EXPIRES_DAYS", "30"), 30),
    )
