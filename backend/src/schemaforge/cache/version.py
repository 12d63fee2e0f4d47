"""Per-workspace metadata version counter.

The version is a generation token: caches remember the version they were
built from and recompute when the current version differs.
"""

from __future__ import annotations

import logging

from schemaforge.errors import ConcurrentModificationError
from schemaforge.metadata.catalog import CatalogStore

logger = logging.getLogger(__name__)


class VersionManager:
    def __init__(self, store: CatalogStore):
        self.store = store

    async def current(self, workspace_id: str) -> int:
        """Latest committed version, 0 for a workspace never mutated."""
        return await self.store.get_version(workspace_id)

    async def bump(self, workspace_id: str, expected: int | None = None) -> int:
        """Atomically increment and return the new version.

        Args:
            workspace_id: Workspace to bump.
            expected: If given, only bump when the current version equals it.

        Raises:
            ConcurrentModificationError: If ``expected`` no longer matches.
        """
        new_version = await self.store.increment_version(workspace_id, expected)
        if new_version is None:
            raise ConcurrentModificationError(
                f"Workspace {workspace_id} metadata version is no longer {expected}"
            )
        logger.info("Workspace %s metadata version is now %d", workspace_id, new_version)
        return new_version
