from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user
from ..models import TodoEntity
from ..repositories import ListQuery, Repository, get_repository, normalize_sort
from ..schemas import Category, MessageResponse, TodoCreate, TodoOut, TodoUpdate

router = APIRouter(
    prefix="/api/todos",
    tags=["todos"],
    responses={401: {"description": "Missing or invalid bearer token"}},
)

NOT_FOUND = "Todo not found"


class PaginationEnvelope(BaseModel):
    """One page of the caller's todos. Keep requesting the next offset while `has_more` is true."""

    items: List[TodoOut] = Field(..., description="Todos on this page")
    total: int = Field(..., description="Number of the caller's todos matching the filters")
    limit: int = Field(..., description="Page size requested")
    offset: int = Field(..., description="Position of the first item in the full result")
    has_more: bool = Field(..., description="True when todos remain past this page")

    @classmethod
    def page(cls, rows: List[TodoEntity], total: int, limit: int, offset: int) -> "PaginationEnvelope":
        return cls(
            items=[TodoOut(**row) for row in rows],  # type: ignore[arg-type]
            total=total,
            limit=limit,
            offset=offset,
            has_more=bool(rows) and offset + len(rows) < total,
        )


def _resolve_sort(sort: Optional[str], order: Optional[str]) -> str:
    """Combine `sort` and the optional `order` override into one '-field' / 'field' key."""
    field, descending = normalize_sort(sort)
    if order is not None:
        direction = order.strip().lower()
        if direction not in ("asc", "desc"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="order must be 'asc' or 'desc'")
        descending = direction == "desc"
    return f"-{field}" if descending else field


def _found(row: Optional[TodoEntity]) -> TodoOut:
    # Todos owned by someone else look exactly like missing ones
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return TodoOut(**row)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a todo owned by the caller. Unknown fields such as a client-side id are ignored.",
    responses={201: {"description": "Todo created successfully"}},
)
def create_todo(
    payload: TodoCreate,
    user: CurrentUser = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TodoOut:
    return TodoOut(**repo.create(user.email, payload))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Todos",
    description=(
        "Page through the caller's todos.\n\n"
        "- completed / category / q narrow the result (q is a case-insensitive substring of the text)\n"
        "- sort is created_at, updated_at or due_date, '-' prefix for descending; todos without a "
        "due date sort last either way\n"
        "- order ('asc' | 'desc') overrides the direction given in sort"
    ),
    responses={400: {"description": "Invalid order parameter"}},
)
def list_todos(
    limit: int = Query(50, ge=0, le=1000, description="Page size"),
    offset: int = Query(0, ge=0, description="Items to skip"),
    completed: Optional[bool] = Query(None, description="Only completed (true) or open (false) todos"),
    category: Optional[Category] = Query(None, description="Only todos in this category"),
    q: Optional[str] = Query(None, description="Text search"),
    sort: Optional[str] = Query("-created_at", description="Sort key"),
    order: Optional[str] = Query(None, description="Sort direction override"),
    user: CurrentUser = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> PaginationEnvelope:
    query = ListQuery(
        limit=limit,
        offset=offset,
        completed=completed,
        category=category.value if category is not None else None,
        search=(q or "").strip() or None,
        sort=_resolve_sort(sort, order),
    )
    rows, total = repo.list(user.email, query)
    return PaginationEnvelope.page(rows, total, limit, offset)


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    responses={404: {"description": NOT_FOUND}},
)
def get_todo(
    todo_id: int,
    user: CurrentUser = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TodoOut:
    return _found(repo.get(user.email, todo_id))


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description="Partial update: only the fields present in the body change.",
    responses={404: {"description": NOT_FOUND}},
)
def update_todo(
    todo_id: int,
    payload: TodoUpdate,
    user: CurrentUser = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TodoOut:
    return _found(repo.update(user.email, todo_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    response_model=MessageResponse,
    summary="Delete Todo",
    responses={404: {"description": NOT_FOUND}},
)
def delete_todo(
    todo_id: int,
    user: CurrentUser = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> MessageResponse:
    if not repo.delete(user.email, todo_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return MessageResponse(message="Todo deleted successfully")
