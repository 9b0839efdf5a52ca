from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from itertools import count
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import TodoEntity, UserEntity
from .schemas import Category, TodoCreate, TodoUpdate
from .settings import get_settings

SORT_FIELDS = {"created_at", "updated_at", "due_date"}
DEFAULT_SORT = "-created_at"


@dataclass(frozen=True)
class ListQuery:
    """Filters, ordering and page window for `Repository.list`."""

    limit: int = 50
    offset: int = 0
    completed: Optional[bool] = None
    category: Optional[str] = None
    search: Optional[str] = None
    sort: str = DEFAULT_SORT


def normalize_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Split '[-]field' into (field, descending). Unknown fields mean newest first."""
    key = (sort or DEFAULT_SORT).strip().lower()
    descending = key.startswith("-")
    field = key.lstrip("-")
    if field not in SORT_FIELDS:
        return "created_at", True
    return field, descending


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Storage contract for todos. Every method takes the owner's email first; a
    todo owned by another user is indistinguishable from a missing one.
    """

    @abstractmethod
    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        """Persist a new todo for `owner` and return it with id and timestamps."""

    @abstractmethod
    def get(self, owner: str, todo_id: int) -> Optional[TodoEntity]:
        ...

    @abstractmethod
    def update(self, owner: str, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        """Apply the fields set on `data`; None when the todo is not the owner's."""

    @abstractmethod
    def delete(self, owner: str, todo_id: int) -> bool:
        ...

    @abstractmethod
    def list(self, owner: str, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        """
        One page of the owner's todos plus the number matching the filters.
        Text search is a case-insensitive substring match; undated todos sort
        last when ordering by due_date.
        """


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract repository contract for registered accounts."""

    @abstractmethod
    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        """Create and return a new UserEntity. Raises ValueError if the email is taken."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return the account registered under `email`, or None."""


def _matches(todo: TodoEntity, q: ListQuery) -> bool:
    if q.completed is not None and todo["completed"] != q.completed:
        return False
    if q.category and todo["category"] != q.category:
        return False
    if q.search and q.search.lower() not in todo["text"].lower():
        return False
    return True


def _sort_key(field: str, descending: bool) -> Callable[[TodoEntity], Any]:
    if field != "due_date":
        return lambda todo: todo[field]  # type: ignore[literal-required]

    # Undated todos go last in both directions
    def due_key(todo: TodoEntity) -> Tuple[bool, datetime]:
        due = todo["due_date"]
        dated_first = (due is not None) if descending else (due is None)
        return dated_first, due or datetime.min

    return due_key


class InMemoryRepository(Repository):
    """
    Todos held in a dict guarded by an RLock; FastAPI runs the sync routes in a
    threadpool. Used by default and by the test-suite.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._todos: Dict[int, TodoEntity] = {}
        self._ids = count(1)

    def _owned(self, owner: str, todo_id: int) -> Optional[TodoEntity]:
        todo = self._todos.get(todo_id)
        return todo if todo is not None and todo["user_email"] == owner else None

    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        with self._lock:
            stamp = datetime.now()
            todo: TodoEntity = {
                "id": next(self._ids),
                "text": data.text,
                "completed": data.completed,
                "category": data.category.value,
                "due_date": data.due_date,
                "user_email": owner,
                "created_at": stamp,
                "updated_at": stamp,
            }
            self._todos[todo["id"]] = todo
            return dict(todo)  # type: ignore[return-value]

    def get(self, owner: str, todo_id: int) -> Optional[TodoEntity]:
        with self._lock:
            todo = self._owned(owner, todo_id)
            return dict(todo) if todo is not None else None  # type: ignore[return-value]

    def update(self, owner: str, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        changes = data.model_dump(exclude_unset=True)
        # null only clears the due date; for the other fields it means "leave alone"
        changes = {k: v for k, v in changes.items() if v is not None or k == "due_date"}
        if isinstance(changes.get("category"), Category):
            changes["category"] = changes["category"].value

        with self._lock:
            current = self._owned(owner, todo_id)
            if current is None:
                return None
            merged: TodoEntity = {**current, **changes, "updated_at": datetime.now()}  # type: ignore[typeddict-item]
            self._todos[todo_id] = merged
            return dict(merged)  # type: ignore[return-value]

    def delete(self, owner: str, todo_id: int) -> bool:
        with self._lock:
            if self._owned(owner, todo_id) is None:
                return False
            del self._todos[todo_id]
            return True

    def list(self, owner: str, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or ListQuery()
        field, descending = normalize_sort(q.sort)
        with self._lock:
            hits = [t for t in self._todos.values() if t["user_email"] == owner and _matches(t, q)]
        hits.sort(key=_sort_key(field, descending), reverse=descending)
        start = max(q.offset, 0)
        page = hits[start:start + max(q.limit, 0)]
        return [dict(t) for t in page], len(hits)  # type: ignore[misc]


class InMemoryUserRepository(UserRepository):
    """Accounts keyed by lower-cased email."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._by_email: Dict[str, UserEntity] = {}
        self._ids = count(1)

    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        key = email.strip().lower()
        with self._lock:
            if key in self._by_email:
                raise ValueError("User already exists")
            self._by_email[key] = {
                "id": next(self._ids),
                "username": username,
                "email": key,
                "password_hash": password_hash,
                "created_at": datetime.now(),
            }
            return dict(self._by_email[key])  # type: ignore[return-value]

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._by_email.get(email.strip().lower())
            return dict(user) if user is not None else None  # type: ignore[return-value]



# PUBLIC_INTERFACE
@lru_cache(maxsize=None)
def get_repository() -> Repository:
    """
    The todo store selected by PERSISTENCE_BACKEND. Cached, so every request
    shares one instance; tests swap it through `app.dependency_overrides`.
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path)
    return InMemoryRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=None)
def get_user_repository() -> UserRepository:
    """The account store, selected and cached like `get_repository`."""
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteUserRepository

        return SQLiteUserRepository(settings.sqlite_db_path)
    return InMemoryUserRepository()
