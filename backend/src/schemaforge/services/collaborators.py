"""Contracts of the subsystems notified around a metadata mutation.

Each contract comes with a default implementation that does nothing but
log, so the mutation service can run without any of them wired in.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from schemaforge.metadata.models import ObjectMetadata

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteRelationProvider(Protocol):
    """Foreign-key metadata for objects whose data is hosted remotely."""

    async def create_foreign_keys(
        self,
        workspace_id: str,
        obj: ObjectMetadata,
        primary_key_settings: dict[str, Any] | None,
        primary_key_column_type: str,
    ) -> None: ...

    async def delete_foreign_keys(self, workspace_id: str, obj: ObjectMetadata) -> None: ...


@runtime_checkable
class SearchIndexSync(Protocol):
    async def create_field(self, obj: ObjectMetadata) -> None: ...

    async def update_field(
        self, object_id: str, field_specs: list[dict[str, str]], workspace_id: str
    ) -> None: ...


@runtime_checkable
class RelatedRecordsSync(Protocol):
    """Saved views and other records derived from an object's metadata."""

    async def create_defaults(self, obj: ObjectMetadata) -> None: ...

    async def update_views(self, obj: ObjectMetadata, workspace_id: str) -> None: ...

    async def delete_views(self, obj: ObjectMetadata, workspace_id: str) -> None: ...


@runtime_checkable
class PermissionsCacheInvalidator(Protocol):
    async def invalidate(self, workspace_id: str) -> None: ...


@runtime_checkable
class LabelResolver(Protocol):
    async def resolve_overridable_string(
        self, obj: ObjectMetadata, label_key: str, locale: str | None
    ) -> str: ...


class NullRemoteRelationProvider:
    async def create_foreign_keys(self, workspace_id, obj, primary_key_settings, primary_key_column_type):
        logger.warning(
            "No remote relation provider configured; foreign keys of remote object '%s' not created",
            obj.name_singular,
        )

    async def delete_foreign_keys(self, workspace_id, obj):
        logger.warning(
            "No remote relation provider configured; foreign keys of remote object '%s' not deleted",
            obj.name_singular,
        )


class NullSearchIndexSync:
    async def create_field(self, obj):
        logger.debug("Search index sync disabled (create_field %s)", obj.name_singular)

    async def update_field(self, object_id, field_specs, workspace_id):
        logger.debug("Search index sync disabled (update_field %s)", object_id)


class NullRelatedRecordsSync:
    async def create_defaults(self, obj):
        logger.debug("Related records sync disabled (create_defaults %s)", obj.name_singular)

    async def update_views(self, obj, workspace_id):
        logger.debug("Related records sync disabled (update_views %s)", obj.name_singular)

    async def delete_views(self, obj, workspace_id):
        logger.debug("Related records sync disabled (delete_views %s)", obj.name_singular)


class NullPermissionsCacheInvalidator:
    async def invalidate(self, workspace_id):
        logger.debug("Permissions cache invalidation disabled (workspace %s)", workspace_id)


class DefaultLabelResolver:
    """Raw labels for custom objects, optional overrides for standard ones.

    Args:
        translations: ``{locale: {raw label: translated label}}``
    """

    def __init__(self, translations: dict[str, dict[str, str]] | None = None):
        self.translations = translations or {}

    async def resolve_overridable_string(
        self, obj: ObjectMetadata, label_key: str, locale: str | None
    ) -> str:
        raw = getattr(obj, label_key, None) or ""
        if obj.is_custom or locale is None:
            return raw
        return self.translations.get(locale, {}).get(raw, raw)
