"""
Durable string-keyed storage for the client, modelled on browser localStorage,
plus the typed `LocalCache` view over it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import Todo, dump_model_list, parse_model_list

logger = logging.getLogger(__name__)

TODOS_KEY = "todos"
QUEUE_KEY = "offlineQueue"
ID_MAP_KEY = "offlineIdMap"
AUTH_TOKEN_KEY = "authToken"
USER_EMAIL_KEY = "userEmail"
MIGRATION_KEY = "migrationComplete"


# PUBLIC_INTERFACE
class KeyValueStore(ABC):
    """String-keyed, string-valued durable store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value. May raise OSError."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete `key` if present."""


class MemoryStorage(KeyValueStore):
    """Volatile store; handy for tests and short-lived sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage(KeyValueStore):
    """
    Store backed by a single JSON object on disk.

    Every write rewrites the whole file through a temporary file and
    `os.replace`, so readers never observe a half-written document.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                decoded = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return {}
        if not isinstance(decoded, dict):
            logger.warning("Ignoring storage file %s: expected a JSON object", self._path)
            return {}
        return {str(k): v for k, v in decoded.items() if isinstance(v, str)}

    def _flush(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".storage-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        updated = {**self._data, key: value}
        self._flush(updated)
        self._data = updated

    def remove_item(self, key: str) -> None:
        if key not in self._data:
            return
        updated = {k: v for k, v in self._data.items() if k != key}
        self._flush(updated)
        self._data = updated


# PUBLIC_INTERFACE
class LocalCache:
    """
    Typed access to the persisted client state: the last-known todo list,
    the stored credentials and the one-shot migration flag.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # Todos

    def load_todos(self) -> List[Todo]:
        return parse_model_list(self.store.get_item(TODOS_KEY), Todo, "cached todo list")

    def save_todos(self, todos: List[Todo]) -> bool:
        try:
            self.store.set_item(TODOS_KEY, dump_model_list(list(todos)))
        except OSError as exc:
            logger.warning("Could not persist todo list: %s", exc)
            return False
        return True

    # Credentials

    @property
    def token(self) -> Optional[str]:
        return self.store.get_item(AUTH_TOKEN_KEY) or None

    @property
    def user_email(self) -> Optional[str]:
        return self.store.get_item(USER_EMAIL_KEY) or None

    def is_authenticated(self) -> bool:
        return self.token is not None

    def set_credentials(self, token: str, email: str) -> None:
        self.store.set_item(AUTH_TOKEN_KEY, token)
        self.store.set_item(USER_EMAIL_KEY, email)

    def clear_credentials(self) -> None:
        self.store.remove_item(AUTH_TOKEN_KEY)
        self.store.remove_item(USER_EMAIL_KEY)

    # Migration

    @property
    def migration_complete(self) -> bool:
        return bool(self.store.get_item(MIGRATION_KEY))

    def mark_migration_complete(self) -> None:
        self.store.set_item(MIGRATION_KEY, "true")
