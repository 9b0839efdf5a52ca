from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Tuple

from .models import TodoEntity, UserEntity
from .repositories import ListQuery, Repository, UserRepository, normalize_sort
from .schemas import Category, TodoCreate, TodoUpdate

SCHEMA = """
CREATE TABLE IF NOT EXISTS todos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    text TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    category TEXT NOT NULL DEFAULT 'personal',
    due_date TEXT NULL,
    user_email TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_todos_owner_created ON todos (user_email, created_at);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


# Datetimes are stored as ISO8601 text; naive values sort correctly as strings
def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


class _SQLiteStore:
    """Opens a short-lived connection per operation; the schema is created on first use."""

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        with self._conn() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()


class SQLiteRepository(_SQLiteStore, Repository):
    """Todos in a SQLite file. Every statement carries the owner in its WHERE clause."""

    @staticmethod
    def _todo(row: sqlite3.Row) -> TodoEntity:
        return {
            "id": row["id"],
            "text": row["text"],
            "completed": bool(row["completed"]),
            "category": row["category"],
            "due_date": _from_text(row["due_date"]),
            "user_email": row["user_email"],
            "created_at": _from_text(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _from_text(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    @staticmethod
    def _select_owned(conn: sqlite3.Connection, owner: str, todo_id: int) -> Optional[sqlite3.Row]:
        return conn.execute("SELECT * FROM todos WHERE id = ? AND user_email = ?", (todo_id, owner)).fetchone()

    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        stamp = datetime.now().isoformat()
        with self._conn() as conn:
            cur = conn.execute(
                "INSERT INTO todos (text, completed, category, due_date, user_email, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (data.text, int(data.completed), data.category.value, _to_text(data.due_date), owner, stamp, stamp),
            )
            return self._todo(self._select_owned(conn, owner, cur.lastrowid))

    def get(self, owner: str, todo_id: int) -> Optional[TodoEntity]:
        with self._conn() as conn:
            row = self._select_owned(conn, owner, todo_id)
        return self._todo(row) if row is not None else None

    def update(self, owner: str, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        changes: Dict[str, Any] = {}
        for name, value in data.model_dump(exclude_unset=True).items():
            if name == "due_date":
                changes[name] = _to_text(value)
            elif value is None:
                continue
            elif isinstance(value, Category):
                changes[name] = value.value
            elif isinstance(value, bool):
                changes[name] = int(value)
            else:
                changes[name] = value
        changes["updated_at"] = datetime.now().isoformat()

        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE todos SET {assignments} WHERE id = ? AND user_email = ?",
                (*changes.values(), todo_id, owner),
            )
            if cur.rowcount == 0:
                return None
            return self._todo(self._select_owned(conn, owner, todo_id))

    def delete(self, owner: str, todo_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM todos WHERE id = ? AND user_email = ?", (todo_id, owner))
            return cur.rowcount > 0

    def list(self, owner: str, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or ListQuery()
        where = ["user_email = ?"]
        params: List[Any] = [owner]
        if q.completed is not None:
            where.append("completed = ?")
            params.append(int(q.completed))
        if q.category:
            where.append("category = ?")
            params.append(q.category)
        if q.search:
            # LIKE is case-insensitive for ASCII in SQLite
            where.append("text LIKE ?")
            params.append(f"%{q.search}%")
        where_sql = " AND ".join(where)

        # field comes from SORT_FIELDS, never from the request verbatim
        field, descending = normalize_sort(q.sort)
        order_sql = f"{field} IS NULL, {field} {'DESC' if descending else 'ASC'}"

        with self._conn() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM todos WHERE {where_sql}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM todos WHERE {where_sql} ORDER BY {order_sql} LIMIT ? OFFSET ?",
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
        return [self._todo(row) for row in rows], int(total)


class SQLiteUserRepository(_SQLiteStore, UserRepository):
    """Accounts in the same database file as the todos."""

    @staticmethod
    def _user(row: sqlite3.Row) -> UserEntity:
        return {
            "id": row["id"],
            "username": row["username"],
            "email": row["email"],
            "password_hash": row["password_hash"],
            "created_at": _from_text(row["created_at"]),  # type: ignore[typeddict-item]
        }

    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        key = email.strip().lower()
        with self._conn() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO users (username, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                    (username, key, password_hash, datetime.now().isoformat()),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError("User already exists") from e
            return self._user(conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone())

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),)).fetchone()
        return self._user(row) if row is not None else None
