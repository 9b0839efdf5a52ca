"""
Replays the offline queue against the server.

A pass walks a snapshot of the queue in insertion order and awaits each remote
call before starting the next. A successful operation is removed from the
queue and the queue is persisted right away, so a crash mid-pass never loses
operations that had not been confirmed yet. A failed operation moves to the
tail of the queue and is retried on the next pass, indefinitely.

Delivery is at-least-once: a create whose response is lost is sent again and
produces a second todo on the server.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from .api import RemoteError
from .connectivity import Connectivity
from .models import OperationKind, QueuedOperation, Todo, TodoId
from .offline_queue import OfflineQueue
from .storage import ID_MAP_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class RemoteTodoStore(Protocol):
    async def get_all_todos(self) -> List[Todo]: ...

    async def create_todo(self, todo: Union[Todo, Mapping[str, Any]]) -> Todo: ...

    async def update_todo(self, todo_id: TodoId, updates: Mapping[str, Any]) -> Todo: ...

    async def delete_todo(self, todo_id: TodoId) -> None: ...


@dataclass
class ReconcileResult:
    processed: int = 0
    failed: int = 0
    skipped: bool = False


# PUBLIC_INTERFACE
class Reconciler:
    """
    Drains an `OfflineQueue` into a remote store.

    Triggers are the connectivity "became online" event, a fixed timer and
    direct calls to `process_queue`. Passes never overlap: a trigger that fires
    while one is running returns a skipped result.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        remote: RemoteTodoStore,
        connectivity: Connectivity,
        *,
        store: Optional[KeyValueStore] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._queue = queue
        self._remote = remote
        self._connectivity = connectivity
        self._store = store
        self._interval = interval
        self._lock = asyncio.Lock()
        self._timer: Optional["asyncio.Task[None]"] = None
        self._unsubscribe = None
        self._id_map: Dict[str, TodoId] = self._load_id_map()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # Local id -> server id

    def _load_id_map(self) -> Dict[str, TodoId]:
        raw = self._store.get_item(ID_MAP_KEY) if self._store is not None else None
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt id map")
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def _save_id_map(self) -> None:
        if self._store is None:
            return
        try:
            self._store.set_item(ID_MAP_KEY, json.dumps(self._id_map))
        except OSError as exc:
            logger.warning("Could not persist id map: %s", exc)

    def _remember(self, local_id: TodoId, remote_id: TodoId) -> None:
        self._id_map[str(local_id)] = remote_id
        self._save_id_map()

    def _forget(self, local_id: TodoId) -> None:
        # A deleted todo is never addressed again
        if self._id_map.pop(str(local_id), None) is not None:
            self._save_id_map()

    def resolve_id(self, todo_id: TodoId) -> TodoId:
        """Server id for a todo created offline, or `todo_id` unchanged."""
        return self._id_map.get(str(todo_id), todo_id)

    # Replay

    @staticmethod
    def _target_id(op: QueuedOperation) -> TodoId:
        todo_id = op.data.get("id")
        if todo_id is None:
            raise ValueError(f"queued {op.operation.value} operation has no id")
        return todo_id

    async def _replay(self, op: QueuedOperation) -> None:
        if op.operation is OperationKind.CREATE:
            payload = dict(op.data)
            local_id = payload.pop("id", None)
            created = await self._remote.create_todo(payload)
            if local_id is not None and created.id is not None:
                self._remember(local_id, created.id)
        elif op.operation is OperationKind.UPDATE:
            updates = op.data.get("updates") or {}
            await self._remote.update_todo(self.resolve_id(self._target_id(op)), updates)
        elif op.operation is OperationKind.DELETE:
            todo_id = self._target_id(op)
            await self._remote.delete_todo(self.resolve_id(todo_id))
            self._forget(todo_id)

    async def process_queue(self) -> ReconcileResult:
        if not self._connectivity.online or len(self._queue) == 0:
            return ReconcileResult(skipped=True)
        if self._lock.locked():
            logger.debug("Reconciliation already in flight; skipping trigger")
            return ReconcileResult(skipped=True)

        async with self._lock:
            result = ReconcileResult()
            for op in self._queue.snapshot():
                try:
                    await self._replay(op)
                except (RemoteError, ValueError) as exc:
                    logger.warning("Failed to process offline %s operation: %s", op.operation.value, exc)
                    self._queue.requeue(op)
                    result.failed += 1
                else:
                    self._queue.remove(op)
                    result.processed += 1
            logger.info(
                "Reconciliation pass done: %d applied, %d re-queued, %d pending",
                result.processed,
                result.failed,
                len(self._queue),
            )
            return result

    # Triggers

    async def _on_online(self) -> None:
        await self.process_queue()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._connectivity.online:
                continue
            try:
                # Shielded so stop() cancels the wait, never a pass in progress
                await asyncio.shield(self.process_queue())
            except Exception:
                logger.exception("Reconciliation pass crashed; retrying on next tick")

    def start(self) -> None:
        """Listen for reconnects and start the periodic timer on the running loop."""
        if self.running:
            return
        self._unsubscribe = self._connectivity.subscribe(self._on_online)
        self._timer = asyncio.get_running_loop().create_task(self._tick())

    async def stop(self) -> None:
        """Stop triggering passes and wait for a pass that is already running to finish."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        # The shielded pass outlives the timer; callers close the transport after this returns
        async with self._lock:
            pass
