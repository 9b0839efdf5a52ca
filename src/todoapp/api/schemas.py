from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

TEXT_MAX_LENGTH = 500

DUE_DATE_HELP = "ISO8601 date or datetime; a bare date means midnight, an empty string means no due date"


# PUBLIC_INTERFACE
class Category(str, Enum):
    """Fixed set of todo categories."""

    WORK = "work"
    PERSONAL = "personal"
    ERRANDS = "errands"


def _naive_utc(value: datetime) -> datetime:
    # Stored due dates are naive; offsets are folded into UTC so they stay comparable
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def coerce_due_date(value: Any) -> Optional[datetime]:
    """
    Accept what browsers and the client send for a due date: None, '', a date,
    a datetime or an ISO8601 string (a trailing 'Z' is read as UTC).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if not isinstance(value, str):
        raise ValueError("due_date must be a date, a datetime or an ISO8601 string")

    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return _naive_utc(datetime.fromisoformat(raw))
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(raw), datetime.min.time())
    except ValueError as e:
        raise ValueError(f"due_date {value!r} is not an ISO8601 date or datetime (e.g. '2025-01-31')") from e


class _TodoInput(BaseModel):
    """Validators shared by create and update payloads."""

    @field_validator("text", check_fields=False)
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("text must not be blank")
        return stripped

    @field_validator("due_date", mode="before", check_fields=False)
    @classmethod
    def parse_due_date(cls, v: Any) -> Optional[datetime]:
        return coerce_due_date(v)


# PUBLIC_INTERFACE
class TodoCreate(_TodoInput):
    """
    Body of POST /api/todos. Unknown keys, such as a client-side temporary id
    or timestamps from an offline replay, are ignored.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"text": "Buy groceries", "completed": False, "category": "errands", "due_date": "2025-02-01"}
        }
    )

    text: str = Field(..., description="What needs to be done", min_length=1, max_length=TEXT_MAX_LENGTH)
    completed: bool = Field(default=False, description="Completion status flag")
    category: Category = Field(default=Category.PERSONAL, description="Todo category")
    due_date: Optional[datetime] = Field(default=None, description=DUE_DATE_HELP)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Any:
        # Clients may send an explicit null/empty category
        return v or Category.PERSONAL.value


# PUBLIC_INTERFACE
class TodoUpdate(_TodoInput):
    """Body of PUT /api/todos/{id}; only the fields that are present change."""

    model_config = ConfigDict(json_schema_extra={"example": {"completed": True}})

    text: Optional[str] = Field(default=None, min_length=1, max_length=TEXT_MAX_LENGTH)
    completed: Optional[bool] = None
    category: Optional[Category] = None
    due_date: Optional[datetime] = Field(default=None, description=DUE_DATE_HELP)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 123,
                "text": "Buy groceries",
                "completed": False,
                "category": "errands",
                "due_date": "2025-02-01T00:00:00",
                "user_email": "ada@example.com",
                "created_at": "2025-01-25T10:15:30.123456",
                "updated_at": "2025-01-26T09:00:00.000001",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the todo item")
    text: str = Field(..., description="What needs to be done")
    completed: bool = Field(..., description="Completion status flag")
    category: Category = Field(..., description="Todo category")
    due_date: Optional[datetime] = Field(
        default=None, description="Due date/time of the todo item as an ISO8601 datetime"
    )
    user_email: str = Field(..., description="Email of the owning user")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


# PUBLIC_INTERFACE
class RegisterRequest(BaseModel):
    """Payload for creating an account."""

    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("username is required")
        return s


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# PUBLIC_INTERFACE
class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str = Field(..., description="Bearer token for the /api/todos endpoints")
    email: str


class MessageResponse(BaseModel):
    message: str
