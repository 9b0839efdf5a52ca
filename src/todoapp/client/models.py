from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..api.schemas import Category, coerce_due_date

logger = logging.getLogger(__name__)

# Server ids are integers; local ids are millisecond timestamps. Strings are
# tolerated for caches written by other clients.
TodoId = Union[int, str]

M = TypeVar("M", bound=BaseModel)


def now_ms() -> int:
    return int(time.time() * 1000)


# PUBLIC_INTERFACE
class Todo(BaseModel):
    """
    Client-side view of a todo, used both for server responses and for
    optimistic local entries that have not reached the server yet.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[TodoId] = None
    text: str = Field(..., min_length=1)
    completed: bool = False
    category: Category = Category.PERSONAL
    due_date: Optional[datetime] = None
    user_email: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("text must not be blank")
        return stripped

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Any:
        return v or Category.PERSONAL.value

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Any) -> Optional[datetime]:
        # Same rules as the server: '' clears, bare dates mean midnight, offsets fold into UTC
        return coerce_due_date(v)

    def to_payload(self) -> Dict[str, Any]:
        """Fields the server accepts on create, JSON-ready."""
        return self.model_dump(mode="json", include={"text", "completed", "category", "due_date"})


# PUBLIC_INTERFACE
class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# PUBLIC_INTERFACE
class QueuedOperation(BaseModel):
    """
    A mutation recorded while offline or signed out.

    `data` is the full todo for create, {"id", "updates"} for update and {"id"}
    for delete. `timestamp` is the enqueue time in epoch milliseconds.
    """

    operation: OperationKind
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)


def parse_model_list(raw: Optional[str], model: Type[M], label: str) -> List[M]:
    """
    Decode a JSON array persisted by this client.

    Corrupt JSON or a non-list yields an empty list; entries that fail validation
    are dropped. Both cases are logged rather than raised.
    """
    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        logger.warning("Discarding corrupt %s: not valid JSON", label)
        return []
    if not isinstance(decoded, list):
        logger.warning("Discarding corrupt %s: expected a list, got %s", label, type(decoded).__name__)
        return []

    parsed: List[M] = []
    for entry in decoded:
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Dropping invalid %s entry: %s", label, exc.errors()[:1])
    return parsed


def dump_model_list(items: List[BaseModel]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items])
