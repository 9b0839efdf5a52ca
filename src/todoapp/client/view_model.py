"""
In-memory todo list for the presentation layer.

Each mutation picks one of two paths:

- signed in and online: call the server directly; failures set `error`, and a
  failed toggle is rolled back;
- offline or signed out: change the local list at once and record the change
  in the offline queue. While signed out the list is also written to the
  local cache after every change, so it works as a standalone offline store.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..api.schemas import Category, TodoUpdate
from .api import RemoteError
from .connectivity import Connectivity
from .migration import migrate_local_storage_to_database
from .models import OperationKind, Todo, TodoId, now_ms
from .offline_queue import OfflineQueue
from .reconcile import ReconcileResult, Reconciler, RemoteTodoStore
from .storage import LocalCache

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TodoViewModel:
    def __init__(
        self,
        *,
        remote: RemoteTodoStore,
        cache: LocalCache,
        queue: OfflineQueue,
        connectivity: Connectivity,
        reconciler: Optional[Reconciler] = None,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._queue = queue
        self._connectivity = connectivity
        self._reconciler = reconciler
        self._last_local_id = 0

        self.todos: List[Todo] = []
        self.loading = False
        self.error: Optional[str] = None

    @property
    def direct_mode(self) -> bool:
        """True when mutations go straight to the server."""
        return self._connectivity.online and self._cache.is_authenticated()

    def _next_local_id(self) -> int:
        # Millisecond timestamp, bumped when two todos land in the same millisecond
        self._last_local_id = max(now_ms(), self._last_local_id + 1)
        return self._last_local_id

    def _find(self, todo_id: TodoId) -> int:
        for i, todo in enumerate(self.todos):
            if todo.id == todo_id:
                return i
        return -1

    def _server_id(self, todo_id: TodoId) -> TodoId:
        return self._reconciler.resolve_id(todo_id) if self._reconciler is not None else todo_id

    def _persist_local(self) -> None:
        if not self._cache.is_authenticated():
            self._cache.save_todos(self.todos)

    async def load_todos(self) -> None:
        self.loading = True
        self.error = None
        try:
            if self._cache.is_authenticated():
                self.todos = await self._remote.get_all_todos()
            else:
                self.todos = self._cache.load_todos()
        except RemoteError as exc:
            logger.error("Failed to load todos: %s", exc)
            self.error = "Failed to load todos"
        finally:
            self.loading = False

    async def add_todo(
        self,
        text: str,
        category: Union[Category, str] = Category.PERSONAL,
        due_date: Optional[datetime] = None,
    ) -> Optional[Todo]:
        if not text or not text.strip():
            return None

        todo = Todo(text=text.strip(), category=category, due_date=due_date)

        if self.direct_mode:
            try:
                saved = await self._remote.create_todo(todo)
            except RemoteError as exc:
                logger.error("Failed to add todo: %s", exc)
                self.error = "Failed to add todo"
                return None
            self.todos.append(saved)
            return saved

        todo.id = self._next_local_id()
        self._queue.enqueue(OperationKind.CREATE, todo.model_dump(mode="json"))
        self.todos.append(todo)
        self._persist_local()
        return todo

    async def remove_todo(self, todo_id: TodoId) -> None:
        if self.direct_mode:
            try:
                await self._remote.delete_todo(self._server_id(todo_id))
            except RemoteError as exc:
                logger.error("Failed to remove todo: %s", exc)
                self.error = "Failed to remove todo"
        else:
            self._queue.enqueue(OperationKind.DELETE, {"id": todo_id})

        self.todos = [todo for todo in self.todos if todo.id != todo_id]
        self._persist_local()

    async def toggle_todo_complete(self, todo_id: TodoId) -> Optional[Todo]:
        i = self._find(todo_id)
        if i < 0:
            return None

        todo = self.todos[i]
        todo.completed = not todo.completed

        if self.direct_mode:
            try:
                await self._remote.update_todo(self._server_id(todo_id), {"completed": todo.completed})
            except RemoteError as exc:
                todo.completed = not todo.completed
                logger.error("Failed to update todo: %s", exc)
                self.error = "Failed to update todo"
        else:
            self._queue.enqueue(OperationKind.UPDATE, {"id": todo_id, "updates": {"completed": todo.completed}})
            self._persist_local()
        return todo

    @staticmethod
    def _clean_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run `updates` through the server's update schema and return the JSON-ready
        changes. A null field means "leave alone", except `due_date` where it
        clears the date. Raises ValidationError on input the server would reject.
        """
        changes = TodoUpdate.model_validate(updates).model_dump(mode="json", exclude_unset=True)
        return {name: value for name, value in changes.items() if value is not None or name == "due_date"}

    async def update_todo(self, todo_id: TodoId, updates: Dict[str, Any]) -> Optional[Todo]:
        i = self._find(todo_id)
        if i < 0:
            return None

        try:
            changes = self._clean_updates(updates)
        except ValidationError as exc:
            logger.warning("Rejected update for todo %s: %s", todo_id, exc.errors()[:1])
            self.error = "Invalid todo update"
            return None
        if not changes:
            return self.todos[i]

        current = self.todos[i]
        self.todos[i] = Todo.model_validate({**current.model_dump(), **changes})

        if self.direct_mode:
            try:
                await self._remote.update_todo(self._server_id(todo_id), changes)
            except RemoteError as exc:
                logger.error("Failed to update todo: %s", exc)
                self.error = "Failed to update todo"
        else:
            self._queue.enqueue(OperationKind.UPDATE, {"id": todo_id, "updates": changes})
            self._persist_local()
        return self.todos[i]

    def get_filtered_todos(self, filter_name: str = "all") -> List[Todo]:
        if filter_name == "active":
            return [todo for todo in self.todos if not todo.completed]
        if filter_name == "completed":
            return [todo for todo in self.todos if todo.completed]
        return list(self.todos)

    async def initialize(self) -> None:
        """Initial load, followed by the one-shot migration for signed-in users."""
        await self.load_todos()
        if self._cache.is_authenticated():
            await migrate_local_storage_to_database(self._cache, self._remote)

    async def sync(self) -> ReconcileResult:
        """Run a reconciliation pass and refresh from the server if anything was applied."""
        if self._reconciler is None:
            return ReconcileResult(skipped=True)
        result = await self._reconciler.process_queue()
        if result.processed and self.direct_mode:
            await self.load_todos()
        return result
