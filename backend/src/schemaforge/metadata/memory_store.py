"""In-process catalog store, used by tests and single-process tooling."""

from __future__ import annotations

from dataclasses import replace

from schemaforge.metadata.catalog import CatalogChanges, check_expected_version
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata


class InMemoryCatalogStore:
    """Keeps objects (with embedded fields) per workspace in dicts.

    Methods never await, so each call is atomic with respect to other
    coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._objects: dict[str, dict[str, ObjectMetadata]] = {}
        self._versions: dict[str, int] = {}

    async def load_objects(self, workspace_id: str) -> list[ObjectMetadata]:
        return list(self._objects.get(workspace_id, {}).values())

    async def get_object(self, workspace_id: str, object_id: str) -> ObjectMetadata | None:
        return self._objects.get(workspace_id, {}).get(object_id)

    async def get_field(self, workspace_id: str, field_id: str) -> FieldMetadata | None:
        for obj in self._objects.get(workspace_id, {}).values():
            if field_id in obj.fields:
                return obj.fields[field_id]
        return None

    async def apply_changes(
        self,
        workspace_id: str,
        changes: CatalogChanges,
        expected_version: int | None = None,
    ) -> None:
        check_expected_version(workspace_id, self._versions.get(workspace_id, 0), expected_version)
        objects = dict(self._objects.get(workspace_id, {}))

        for obj in changes.upserts:
            objects[obj.id] = obj

        doomed = set(changes.deleted_field_ids)
        if doomed:
            for object_id, obj in objects.items():
                if doomed & obj.fields.keys():
                    kept = {k: v for k, v in obj.fields.items() if k not in doomed}
                    objects[object_id] = replace(obj, fields=kept)

        for object_id in changes.deleted_object_ids:
            objects.pop(object_id, None)

        self._objects[workspace_id] = objects

    async def delete_workspace(self, workspace_id: str) -> None:
        self._objects.pop(workspace_id, None)

    async def get_version(self, workspace_id: str) -> int:
        return self._versions.get(workspace_id, 0)

    async def increment_version(
        self, workspace_id: str, expected: int | None = None
    ) -> int | None:
        current = self._versions.get(workspace_id, 0)
        if expected is not None and current != expected:
            return None
        self._versions[workspace_id] = current + 1
        return current + 1
