from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Union

from .models import OperationKind, QueuedOperation, dump_model_list, parse_model_list
from .storage import QUEUE_KEY, KeyValueStore

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class OfflineQueue:
    """
    Ordered log of mutations waiting to be replayed against the server.

    The whole queue is serialized under one key on every change, so the stored
    copy is always a complete snapshot. When the store refuses a write the
    in-memory queue is still updated and survives for the current session.

    No coalescing happens here: several operations on the same todo are kept
    and replayed in the order they were made.
    """

    def __init__(self, store: KeyValueStore, key: str = QUEUE_KEY) -> None:
        self._store = store
        self._key = key
        self._items: List[QueuedOperation] = []

    def load(self) -> None:
        """Replace the in-memory queue with the persisted one (corrupt data loads as empty)."""
        self._items = parse_model_list(self._store.get_item(self._key), QueuedOperation, "offline queue")

    def save(self) -> bool:
        try:
            self._store.set_item(self._key, dump_model_list(self._items))
        except OSError as exc:
            logger.warning("Could not persist offline queue (%d pending): %s", len(self._items), exc)
            return False
        return True

    def enqueue(self, kind: Union[OperationKind, str], payload: Mapping[str, Any]) -> QueuedOperation:
        op = QueuedOperation(operation=OperationKind(kind), data=dict(payload))
        self._items.append(op)
        self.save()
        logger.debug("Queued %s operation (%d pending)", op.operation.value, len(self._items))
        return op

    def snapshot(self) -> List[QueuedOperation]:
        return list(self._items)

    def _index(self, op: QueuedOperation) -> int:
        for i, item in enumerate(self._items):
            if item is op:
                return i
        return -1

    def remove(self, op: QueuedOperation) -> bool:
        """Drop `op` (matched by identity) and persist. False if it was not queued."""
        i = self._index(op)
        if i < 0:
            return False
        del self._items[i]
        self.save()
        return True

    def requeue(self, op: QueuedOperation) -> None:
        """Move `op` to the tail of the queue and persist."""
        i = self._index(op)
        if i >= 0:
            del self._items[i]
        self._items.append(op)
        self.save()

    def clear(self) -> None:
        self._items = []
        self.save()

    def pending(self) -> List[Dict[str, Any]]:
        return [op.model_dump(mode="json") for op in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[QueuedOperation]:
        return iter(list(self._items))
