"""Workspace-scoped mutual exclusion for metadata mutations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class WorkspaceLocks:
    """One asyncio.Lock per workspace.

    Mutations on the same workspace are serialized; different workspaces
    never wait on each other. Readers do not take these locks.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, workspace_id: str) -> asyncio.Lock:
        return self._locks.setdefault(workspace_id, asyncio.Lock())

    @asynccontextmanager
    async def hold(self, workspace_id: str) -> AsyncIterator[None]:
        async with self._lock_for(workspace_id):
            yield

    def is_locked(self, workspace_id: str) -> bool:
        lock = self._locks.get(workspace_id)
        return lock is not None and lock.locked()
