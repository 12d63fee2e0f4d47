"""MetadataCatalog: the authoritative store of object and field metadata.

The catalog talks to a :class:`CatalogStore`, which decides how rows are
persisted (in memory, SQL, ...). The pipeline never builds queries itself;
it reads whole objects and writes :class:`CatalogChanges` batches.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from schemaforge.errors import ConcurrentModificationError
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata

logger = logging.getLogger(__name__)


@dataclass
class CatalogChanges:
    """One atomic catalog write.

    ``upserts`` replace the stored object, field set included. Deletes by
    id ignore ids that are already gone.
    """

    upserts: list[ObjectMetadata] = field(default_factory=list)
    deleted_field_ids: list[str] = field(default_factory=list)
    deleted_object_ids: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.upserts or self.deleted_field_ids or self.deleted_object_ids)


@runtime_checkable
class CatalogStore(Protocol):
    """Interface every catalog storage adapter implements."""

    async def load_objects(self, workspace_id: str) -> list[ObjectMetadata]: ...

    async def get_object(self, workspace_id: str, object_id: str) -> ObjectMetadata | None: ...

    async def get_field(self, workspace_id: str, field_id: str) -> FieldMetadata | None: ...

    async def apply_changes(
        self,
        workspace_id: str,
        changes: CatalogChanges,
        expected_version: int | None = None,
    ) -> None:
        """Write ``changes`` atomically.

        Raises:
            ConcurrentModificationError: If ``expected_version`` is given and
                the stored workspace version differs.
        """
        ...

    async def delete_workspace(self, workspace_id: str) -> None: ...

    async def get_version(self, workspace_id: str) -> int: ...

    async def increment_version(
        self, workspace_id: str, expected: int | None = None
    ) -> int | None:
        """Increment and return the new version; None if ``expected`` mismatched."""
        ...


def _matches(obj: ObjectMetadata, filter: dict[str, Any]) -> bool:
    return all(getattr(obj, key) == value for key, value in filter.items())


class MetadataCatalog:
    """Typed read/write access to a workspace's metadata rows."""

    def __init__(self, store: CatalogStore):
        self.store = store

    async def load_workspace(self, workspace_id: str) -> list[ObjectMetadata]:
        start = time.perf_counter()
        objects = await self.store.load_objects(workspace_id)
        logger.debug(
            "metadata query time: %.1f ms (%d objects, workspace %s)",
            (time.perf_counter() - start) * 1000,
            len(objects),
            workspace_id,
        )
        return objects

    async def get(self, workspace_id: str, object_id: str) -> ObjectMetadata | None:
        return await self.store.get_object(workspace_id, object_id)

    async def get_field(self, workspace_id: str, field_id: str) -> FieldMetadata | None:
        return await self.store.get_field(workspace_id, field_id)

    async def find_one(self, workspace_id: str, **filter: Any) -> ObjectMetadata | None:
        """First object matching attribute equality filters, e.g. name_singular="task"."""
        for obj in await self.load_workspace(workspace_id):
            if _matches(obj, filter):
                return obj
        return None

    async def find_many(self, workspace_id: str, **filter: Any) -> list[ObjectMetadata]:
        objects = await self.load_workspace(workspace_id)
        return sorted(
            (o for o in objects if _matches(o, filter)),
            key=lambda o: o.name_singular,
        )

    async def save(
        self,
        workspace_id: str,
        changes: CatalogChanges,
        expected_version: int | None = None,
    ) -> None:
        if changes.is_empty():
            return
        await self.store.apply_changes(workspace_id, changes, expected_version)
        logger.debug(
            "Catalog write for workspace %s: %d upserts, %d field deletes, %d object deletes",
            workspace_id,
            len(changes.upserts),
            len(changes.deleted_field_ids),
            len(changes.deleted_object_ids),
        )

    async def delete_many(
        self,
        workspace_id: str,
        *,
        field_ids: list[str] | None = None,
        object_ids: list[str] | None = None,
        expected_version: int | None = None,
    ) -> None:
        await self.save(
            workspace_id,
            CatalogChanges(
                deleted_field_ids=list(field_ids or []),
                deleted_object_ids=list(object_ids or []),
            ),
            expected_version,
        )

    async def delete_workspace(self, workspace_id: str) -> None:
        await self.store.delete_workspace(workspace_id)


def check_expected_version(workspace_id: str, stored: int, expected: int | None) -> None:
    """Shared compare step for stores implementing ``apply_changes``."""
    if expected is not None and stored != expected:
        raise ConcurrentModificationError(
            f"Workspace {workspace_id} metadata moved from version {expected} to {stored} "
            "while the change was being planned"
        )
