from __future__ import annotations

import asyncio
import logging

from .api import RemoteError
from .reconcile import RemoteTodoStore
from .storage import LocalCache

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def migrate_local_storage_to_database(cache: LocalCache, remote: RemoteTodoStore) -> int:
    """
    Upload todos kept locally while signed out to the user's account.

    Runs only when authenticated and the migration flag is unset. Todos are
    uploaded concurrently without their local ids; the flag is set once every
    upload succeeded. A failure is logged and leaves the flag unset, and some
    todos may already have been created on the server. Nothing here retries.

    Returns the number of todos the server accepted.
    """
    if not cache.is_authenticated() or cache.migration_complete:
        return 0

    local_todos = cache.load_todos()
    if not local_todos:
        cache.mark_migration_complete()
        return 0

    logger.info("Migrating %d todos to the database...", len(local_todos))
    results = await asyncio.gather(
        *(remote.create_todo(todo.to_payload()) for todo in local_todos),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    for error in errors:
        if not isinstance(error, RemoteError):
            raise error
    if errors:
        logger.error("Migration failed: %d of %d uploads rejected: %s", len(errors), len(results), errors[0])
        return len(results) - len(errors)

    cache.mark_migration_complete()
    logger.info("Migration complete!")
    return len(local_todos)
