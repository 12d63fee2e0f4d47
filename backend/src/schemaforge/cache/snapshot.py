"""Metadata snapshot: an immutable, versioned view of a workspace catalog.

A snapshot is built once from the catalog and never mutated. Lookups that
would otherwise need relation loading (field → owning object, relation
counterpart) go through id-indexed maps built at construction time.

:class:`SnapshotCache` hands out the snapshot for the current workspace
version and swaps in a freshly built one when the version moves.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from schemaforge.cache.version import VersionManager
from schemaforge.core.naming import normalize
from schemaforge.metadata.catalog import MetadataCatalog
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataSnapshot:
    """Complete point-in-time view of one workspace's metadata."""

    workspace_id: str
    version: int
    objects_by_id: Mapping[str, ObjectMetadata] = field(default_factory=dict)
    fields_by_id: Mapping[str, FieldMetadata] = field(default_factory=dict)
    object_id_by_field_id: Mapping[str, str] = field(default_factory=dict)
    object_id_by_name: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls, workspace_id: str, version: int, objects: list[ObjectMetadata]
    ) -> MetadataSnapshot:
        objects_by_id: dict[str, ObjectMetadata] = {}
        fields_by_id: dict[str, FieldMetadata] = {}
        object_id_by_field_id: dict[str, str] = {}
        object_id_by_name: dict[str, str] = {}

        for obj in objects:
            objects_by_id[obj.id] = obj
            object_id_by_name[normalize(obj.name_singular)] = obj.id
            for f in obj.fields.values():
                fields_by_id[f.id] = f
                object_id_by_field_id[f.id] = obj.id

        return cls(
            workspace_id=workspace_id,
            version=version,
            objects_by_id=MappingProxyType(objects_by_id),
            fields_by_id=MappingProxyType(fields_by_id),
            object_id_by_field_id=MappingProxyType(object_id_by_field_id),
            object_id_by_name=MappingProxyType(object_id_by_name),
        )

    @classmethod
    def empty(cls, workspace_id: str) -> MetadataSnapshot:
        return cls.build(workspace_id, 0, [])

    def get_object(self, object_id: str) -> ObjectMetadata | None:
        return self.objects_by_id.get(object_id)

    def get_object_by_name(self, name_singular: str) -> ObjectMetadata | None:
        object_id = self.object_id_by_name.get(normalize(name_singular))
        return self.objects_by_id.get(object_id) if object_id else None

    def get_field(self, field_id: str) -> FieldMetadata | None:
        return self.fields_by_id.get(field_id)

    def owner_of(self, field_id: str) -> ObjectMetadata | None:
        object_id = self.object_id_by_field_id.get(field_id)
        return self.objects_by_id.get(object_id) if object_id else None

    def active_objects(self) -> list[ObjectMetadata]:
        return [o for o in self.objects_by_id.values() if o.is_active]

    def counterpart_of(self, relation_field: FieldMetadata) -> FieldMetadata | None:
        """The field on the other side of a relation, if it still exists."""
        if relation_field.relation is None:
            return None
        return self.fields_by_id.get(relation_field.relation.target_field_id)


class SnapshotCache:
    """Process-wide snapshots keyed by workspace.

    ``get`` compares the cached snapshot's version with the current
    version and rebuilds when they differ. Rebuilds for one workspace are
    serialized so concurrent readers trigger a single catalog load; the
    new snapshot replaces the old one wholesale.
    """

    def __init__(self, catalog: MetadataCatalog, versions: VersionManager):
        self.catalog = catalog
        self.versions = versions
        self._snapshots: dict[str, MetadataSnapshot] = {}
        self._rebuild_locks: dict[str, asyncio.Lock] = {}

    async def get(self, workspace_id: str) -> MetadataSnapshot:
        version = await self.versions.current(workspace_id)
        cached = self._snapshots.get(workspace_id)
        if cached is not None and cached.version == version:
            return cached

        lock = self._rebuild_locks.setdefault(workspace_id, asyncio.Lock())
        async with lock:
            cached = self._snapshots.get(workspace_id)
            if cached is not None and cached.version == version:
                return cached
            objects = await self.catalog.load_workspace(workspace_id)
            snapshot = MetadataSnapshot.build(workspace_id, version, objects)
            # Never replace a newer snapshot with an older one
            if cached is None or cached.version <= version:
                self._snapshots[workspace_id] = snapshot
            logger.debug(
                "Rebuilt metadata snapshot for workspace %s at version %d", workspace_id, version
            )
            return snapshot

    def cached_version(self, workspace_id: str) -> int | None:
        cached = self._snapshots.get(workspace_id)
        return cached.version if cached else None

    def invalidate(self, workspace_id: str) -> None:
        self._snapshots.pop(workspace_id, None)
