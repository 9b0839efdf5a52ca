from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Set

logger = logging.getLogger(__name__)

OnlineListener = Callable[[], Awaitable[None]]


# PUBLIC_INTERFACE
class Connectivity:
    """
    Online/offline indicator with a "became online" event.

    Listeners are coroutine functions. They are scheduled on the running loop
    when the state flips from offline to online and are not awaited by
    `set_online`, like DOM event handlers.
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: List[OnlineListener] = []
        self._pending: Set["asyncio.Task[None]"] = set()

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: OnlineListener) -> Callable[[], None]:
        """Register `listener`; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> List["asyncio.Task[None]"]:
        """
        Update the flag. On an offline -> online transition every listener is
        scheduled as a task; the tasks are returned so callers may await them.
        """
        was_online = self._online
        self._online = online
        if online == was_online:
            return []
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        if not online:
            return []

        loop = asyncio.get_running_loop()
        tasks = []
        for listener in list(self._listeners):
            task = loop.create_task(listener())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def refresh(self, probe: Callable[[], Awaitable[bool]]) -> bool:
        """Set the flag from `probe()`, e.g. `ApiClient.ping`."""
        reachable = await probe()
        self.set_online(reachable)
        return reachable
