from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .api import ApiClient, AuthService, TodoService
from .connectivity import Connectivity
from .offline_queue import OfflineQueue
from .reconcile import Reconciler
from .settings import ClientSettings, get_client_settings
from .storage import FileStorage, KeyValueStore, LocalCache, MemoryStorage
from .view_model import TodoViewModel

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TodoApp:
    """
    Wires the client together: one store, one queue, one reconciler and the
    view model that shares them.

    Usage:
        async with TodoApp.from_settings() as app:
            await app.auth.login("ada@example.com", "secret")
            await app.todos.initialize()
            await app.todos.add_todo("Buy milk", "errands")
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        store: Optional[KeyValueStore] = None,
        connectivity: Optional[Connectivity] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        if store is None:
            store = FileStorage(settings.storage_path) if settings.storage_path else MemoryStorage()
        self.store = store
        self.cache = LocalCache(store)
        self.connectivity = connectivity or Connectivity(online=True)
        self.api = ApiClient(settings.api_url, self.cache, timeout=settings.http_timeout, transport=transport)
        self.auth = AuthService(self.api, self.cache)
        self.remote = TodoService(self.api)
        self.queue = OfflineQueue(store)
        self.queue.load()
        self.reconciler = Reconciler(
            self.queue,
            self.remote,
            self.connectivity,
            store=store,
            interval=settings.sync_interval_seconds,
        )
        self.todos = TodoViewModel(
            remote=self.remote,
            cache=self.cache,
            queue=self.queue,
            connectivity=self.connectivity,
            reconciler=self.reconciler,
        )

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "TodoApp":
        return cls(get_client_settings(), **kwargs)

    async def start(self) -> None:
        """Begin background reconciliation (reconnect events plus the periodic timer)."""
        self.reconciler.start()
        logger.info("Sync client started (%d operations pending)", len(self.queue))

    async def close(self) -> None:
        await self.reconciler.stop()
        await self.api.aclose()

    async def __aenter__(self) -> "TodoApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
