"""
Offline-first sync client for the Todo API.

Mutations made while offline or signed out are applied locally and recorded
in an `OfflineQueue`; a `Reconciler` replays them once the server is
reachable. `TodoApp` wires the pieces together.
"""

from .api import ApiClient, AuthService, RemoteError, TodoService
from .app import TodoApp
from .connectivity import Connectivity
from .migration import migrate_local_storage_to_database
from .models import OperationKind, QueuedOperation, Todo
from .offline_queue import OfflineQueue
from .reconcile import ReconcileResult, Reconciler
from .storage import FileStorage, KeyValueStore, LocalCache, MemoryStorage
from .view_model import TodoViewModel

__all__ = [
    "ApiClient",
    "AuthService",
    "Connectivity",
    "FileStorage",
    "KeyValueStore",
    "LocalCache",
    "MemoryStorage",
    "OfflineQueue",
    "OperationKind",
    "QueuedOperation",
    "ReconcileResult",
    "Reconciler",
    "RemoteError",
    "Todo",
    "TodoApp",
    "TodoService",
    "TodoViewModel",
    "migrate_local_storage_to_database",
]
