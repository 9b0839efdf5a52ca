from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ClientSettings:
    """
    Sync client settings loaded from environment variables.

    Env vars:
    - TODO_API_URL: base URL of the API including the '/api' prefix. Default 'http://localhost:8000/api'
    - TODO_STORAGE_PATH: JSON file holding the local cache and offline queue; unset keeps state in memory
    - TODO_SYNC_INTERVAL_SECONDS: period of the reconciliation timer (default: 60)
    - TODO_HTTP_TIMEOUT: per-request timeout in seconds (default: 10)
    """

    api_url: str
    storage_path: Optional[str]
    sync_interval_seconds: float
    http_timeout: float


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_seconds(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


# PUBLIC_INTERFACE
def get_client_settings() -> ClientSettings:
    """Return client settings loaded from environment variables."""
    storage_path = os.getenv("TODO_STORAGE_PATH", "").strip() or None
    return ClientSettings(
        api_url=_get_env("TODO_API_URL", "http://localhost:8000/api").strip(),
        storage_path=storage_path,
        sync_interval_seconds=_parse_seconds(_get_env("TODO_SYNC_INTERVAL_SECONDS", "60"), 60.0),
        http_timeout=_parse_seconds(_get_env("TODO_HTTP_TIMEOUT", "10"), 10.0),
    )
