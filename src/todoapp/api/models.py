from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A stored todo as the repositories hand it around.

    `category` holds the enum value ('work', 'personal' or 'errands') and
    `user_email` the owner; nothing is shared between users. Timestamps are
    naive local datetimes, due dates naive UTC.
    """

    id: int
    text: str
    completed: bool
    category: str
    due_date: Optional[datetime]
    user_email: str
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """A registered account. `password_hash` holds the bcrypt digest, never the password."""

    id: int
    username: str
    email: str
    password_hash: str
    created_at: datetime
