"""Object metadata service.

Entry point for creating, updating and deleting object definitions. Every
mutation runs the same pipeline under the workspace lock:

    snapshot -> validate -> relation delta -> migration plan -> apply
    -> catalog write -> version bump

and then notifies collaborators (search index, views, permissions) once
the change is committed. Collaborator failures are logged and queued for
replay; they never undo a committed change.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any

from schemaforge.cache.snapshot import MetadataSnapshot, SnapshotCache
from schemaforge.cache.version import VersionManager
from schemaforge.core.naming import capitalize
from schemaforge.core.types import is_searchable_field_type
from schemaforge.errors import (
    ConcurrentModificationError,
    IssueKind,
    MetadataIssue,
    NotFoundError,
    SchemaForgeError,
    raise_for_issues,
)
from schemaforge.metadata.catalog import CatalogChanges, MetadataCatalog
from schemaforge.metadata.defaults import (
    build_default_fields_for_custom_object,
    find_default_label_identifier,
)
from schemaforge.metadata.models import CreateObjectInput, ObjectMetadata, UpdateObjectPatch
from schemaforge.metadata.names import NameValidator, validate_identifier_fields
from schemaforge.migrations.executor import PhysicalSchemaExecutor
from schemaforge.migrations.planner import MigrationPlanner, compute_indexes
from schemaforge.migrations.runner import MigrationRunner, run_to_completion
from schemaforge.migrations.types import MigrationPlan, MigrationStep
from schemaforge.persistence.config import ServiceSettings
from schemaforge.relations.manager import RelationDelta, RelationManager
from schemaforge.services.collaborators import (
    DefaultLabelResolver,
    LabelResolver,
    NullPermissionsCacheInvalidator,
    NullRelatedRecordsSync,
    NullRemoteRelationProvider,
    NullSearchIndexSync,
    PermissionsCacheInvalidator,
    RelatedRecordsSync,
    RemoteRelationProvider,
    SearchIndexSync,
)
from schemaforge.services.locks import WorkspaceLocks
from schemaforge.services.post_commit import PostCommitDispatcher

logger = logging.getLogger(__name__)


class ObjectMetadataService:
    def __init__(
        self,
        catalog: MetadataCatalog,
        executor: PhysicalSchemaExecutor,
        *,
        remote_relations: RemoteRelationProvider | None = None,
        search_index: SearchIndexSync | None = None,
        related_records: RelatedRecordsSync | None = None,
        permissions: PermissionsCacheInvalidator | None = None,
        label_resolver: LabelResolver | None = None,
        relation_manager: RelationManager | None = None,
        planner: MigrationPlanner | None = None,
        settings: ServiceSettings | None = None,
    ):
        settings = settings or ServiceSettings()
        self.catalog = catalog
        self.versions = VersionManager(catalog.store)
        self.snapshots = SnapshotCache(catalog, self.versions)
        self.runner = MigrationRunner(executor)
        self.names = NameValidator()
        self.relations = relation_manager or RelationManager()
        self.planner = planner or MigrationPlanner()
        self.locks = WorkspaceLocks()
        self.post_commit = PostCommitDispatcher(
            attempts=settings.sync_retry_attempts,
            wait_seconds=settings.sync_retry_wait_seconds,
            max_pending=settings.sync_max_pending,
        )
        self.replay_interval = settings.sync_replay_interval_seconds
        self.remote_relations = remote_relations or NullRemoteRelationProvider()
        self.search_index = search_index or NullSearchIndexSync()
        self.related_records = related_records or NullRelatedRecordsSync()
        self.permissions = permissions or NullPermissionsCacheInvalidator()
        self.label_resolver = label_resolver or DefaultLabelResolver()

    # -- reads ---------------------------------------------------------

    async def find_one_in_workspace(self, workspace_id: str, **filter: Any) -> ObjectMetadata | None:
        return await self.catalog.find_one(workspace_id, **filter)

    async def find_many_in_workspace(self, workspace_id: str, **filter: Any) -> list[ObjectMetadata]:
        return await self.catalog.find_many(workspace_id, **filter)

    async def resolve_overridable_string(
        self, obj: ObjectMetadata, label_key: str, locale: str | None = None
    ) -> str:
        return await self.label_resolver.resolve_overridable_string(obj, label_key, locale)

    # -- create --------------------------------------------------------

    async def create_object(self, data: CreateObjectInput) -> ObjectMetadata:
        """Create an object, its default fields, relations and table.

        Raises:
            ValidationError: If names or labels are invalid or taken.
            PlanningError: If the target table name is already in use.
            SchemaExecutionError: If the physical schema change failed.
            ConcurrentModificationError: If the workspace changed meanwhile.
        """
        workspace_id = data.workspace_id
        data.label_singular = capitalize(data.label_singular)
        data.label_plural = capitalize(data.label_plural)

        async with self.locks.hold(workspace_id):
            snapshot = await self.snapshots.get(workspace_id)
            raise_for_issues(
                self.names.validate_against(
                    snapshot,
                    name_singular=data.name_singular,
                    name_plural=data.name_plural,
                    label_singular=data.label_singular,
                    label_plural=data.label_plural,
                    is_label_synced_with_name=data.is_label_synced_with_name,
                )
            )

            obj = ObjectMetadata(
                id=str(uuid.uuid4()),
                workspace_id=workspace_id,
                name_singular=data.name_singular,
                name_plural=data.name_plural,
                label_singular=data.label_singular,
                label_plural=data.label_plural,
                description=data.description,
                icon=data.icon,
                is_custom=not data.is_remote,
                is_remote=data.is_remote,
                is_searchable=not data.is_remote,
                is_label_synced_with_name=data.is_label_synced_with_name,
            )

            if data.is_remote:
                await self._ensure_fresh(snapshot)
                await run_to_completion(self._create_remote(snapshot, obj, data))
            else:
                obj, delta = self._build_custom_object(obj, snapshot)
                plan = self.planner.plan(None, obj, delta, snapshot)
                teardown = self.planner.plan_delete(
                    obj, RelationDelta(removed=list(delta.created))
                )
                changes = CatalogChanges(upserts=[obj, *delta.updated_objects.values()])
                await self._ensure_fresh(snapshot)
                await run_to_completion(self._commit(snapshot, plan, changes, compensation=teardown))

        logger.info("Created object '%s' in workspace %s", obj.name_singular, workspace_id)

        if not obj.is_remote:
            await self.post_commit.dispatch("search_index.create_field", self.search_index.create_field, obj)
        await self.post_commit.dispatch(
            "related_records.create_defaults", self.related_records.create_defaults, obj
        )
        await self.post_commit.dispatch("permissions.invalidate", self.permissions.invalidate, workspace_id)
        return obj

    async def _create_remote(
        self, snapshot: MetadataSnapshot, obj: ObjectMetadata, data: CreateObjectInput
    ) -> None:
        """Save the remote object's row, then let the provider link it.

        The row is removed again if the provider fails; the version is
        bumped only once both succeeded.
        """
        workspace_id = snapshot.workspace_id
        await self._commit(
            snapshot, MigrationPlan(workspace_id), CatalogChanges(upserts=[obj]), bump=False
        )
        try:
            await self.remote_relations.create_foreign_keys(
                workspace_id,
                obj,
                data.primary_key_field_settings,
                data.primary_key_column_type,
            )
        except Exception:
            logger.error(
                "Remote foreign keys failed for '%s' in workspace %s, removing its row",
                obj.name_singular,
                workspace_id,
            )
            try:
                await self.catalog.save(
                    workspace_id,
                    CatalogChanges(deleted_object_ids=[obj.id]),
                    expected_version=snapshot.version,
                )
            except Exception as e:
                logger.error("Could not remove remote object row %s: %s", obj.id, e)
            raise
        await self.versions.bump(workspace_id, expected=snapshot.version)

    def _build_custom_object(
        self, obj: ObjectMetadata, snapshot: MetadataSnapshot
    ) -> tuple[ObjectMetadata, RelationDelta]:
        fields = build_default_fields_for_custom_object(obj.workspace_id, obj.id, searchable=obj.is_searchable)
        label_identifier = find_default_label_identifier(fields)
        if label_identifier is None:
            raise SchemaForgeError(
                "Label identifier field metadata not created properly",
                code="MISSING_DEFAULT_LABEL_IDENTIFIER",
            )
        obj = replace(
            obj,
            fields={f.id: f for f in fields},
            label_identifier_field_id=label_identifier.id,
        )
        obj, delta = self.relations.plan_relations_for_create(obj, snapshot)
        return replace(obj, indexes=compute_indexes(obj)), delta

    # -- update --------------------------------------------------------

    async def update_object(
        self, object_id: str, patch: UpdateObjectPatch, workspace_id: str
    ) -> ObjectMetadata:
        """Apply a partial update to an object.

        Renaming the object renames its table, its enum types, and the
        join columns and foreign keys of relations pointing at it.

        Raises:
            NotFoundError: If the object does not exist in the workspace.
            ValidationError: If the merged names, labels or identifier
                fields are invalid.
            PlanningError: If a relation of the object is dangling or the
                new table name is taken.
            SchemaExecutionError: If the physical schema change failed.
            ConcurrentModificationError: If the workspace changed meanwhile.
        """
        changes = patch.changes()
        for key in ("label_singular", "label_plural"):
            if key in changes:
                changes[key] = capitalize(changes[key])

        search_identifier = None
        async with self.locks.hold(workspace_id):
            snapshot = await self.snapshots.get(workspace_id)
            current = snapshot.get_object(object_id)
            if current is None:
                raise NotFoundError(f"Object '{object_id}' does not exist", code="OBJECT_NOT_FOUND")

            proposed = replace(current, **changes)
            issues = self.names.validate_against(
                snapshot,
                name_singular=proposed.name_singular,
                name_plural=proposed.name_plural,
                label_singular=proposed.label_singular,
                label_plural=proposed.label_plural,
                is_label_synced_with_name=proposed.is_label_synced_with_name,
                exclude_object_id=current.id,
            )
            issues += validate_identifier_fields(
                current.fields.values(),
                changes.get("label_identifier_field_id"),
                changes.get("image_identifier_field_id"),
            )
            if not issues and not proposed.is_remote and proposed.is_active:
                if proposed.label_identifier_field_id not in proposed.fields:
                    issues.append(
                        MetadataIssue(
                            IssueKind.INVALID_IDENTIFIER_FIELD,
                            "MISSING_LABEL_IDENTIFIER",
                            "An active object must have a label identifier field",
                            "labelIdentifierFieldId",
                        )
                    )
            raise_for_issues(issues)

            delta = self.relations.plan_relations_for_update(current, proposed, snapshot)
            # Self-relations: the renamed counterpart lives on this object
            own = delta.updated_objects.pop(current.id, None)
            if own is not None:
                proposed = replace(proposed, fields={**proposed.fields, **own.fields})
            if current.target_table_name != proposed.target_table_name:
                proposed = replace(proposed, indexes=compute_indexes(proposed))

            plan = self.planner.plan(current, proposed, delta, snapshot)
            revert = self.planner.plan_update(proposed, current, delta.inverted())
            catalog_changes = CatalogChanges(upserts=[proposed, *delta.updated_objects.values()])
            await self._ensure_fresh(snapshot)
            await run_to_completion(
                self._commit(snapshot, plan, catalog_changes, compensation=revert, bump=False)
            )

            try:
                if "label_identifier_field_id" in changes:
                    search_identifier = await self._rebuild_search_vector(proposed)
            finally:
                await run_to_completion(self.versions.bump(workspace_id, expected=snapshot.version))

        logger.info("Updated object '%s' in workspace %s", proposed.name_singular, workspace_id)

        if search_identifier is not None:
            await self.post_commit.dispatch(
                "search_index.update_field",
                self.search_index.update_field,
                proposed.id,
                [{"name": search_identifier.name, "type": search_identifier.type}],
                workspace_id,
            )
        if plan.views_need_update:
            await self.post_commit.dispatch(
                "related_records.update_views", self.related_records.update_views, proposed, workspace_id
            )
        await self.post_commit.dispatch("permissions.invalidate", self.permissions.invalidate, workspace_id)
        return proposed

    async def _rebuild_search_vector(self, obj: ObjectMetadata):
        """Second pass after a label identifier change."""
        identifier = await self.catalog.get_field(obj.workspace_id, obj.label_identifier_field_id)
        if identifier is None:
            raise NotFoundError(
                f"Label identifier field '{obj.label_identifier_field_id}' not found",
                code="FIELD_NOT_FOUND",
            )
        if not is_searchable_field_type(identifier.type):
            return None
        plan = self.planner.plan_search_vector_update(obj, identifier)
        await run_to_completion(self.runner.run(plan))
        return identifier

    # -- delete --------------------------------------------------------

    async def delete_object(self, object_id: str, workspace_id: str) -> ObjectMetadata:
        """Delete an object with its fields, relation counterparts and table.

        Raises:
            NotFoundError: If the object does not exist in the workspace.
            SchemaExecutionError: If the physical teardown failed.
            ConcurrentModificationError: If the workspace changed meanwhile.
        """
        async with self.locks.hold(workspace_id):
            snapshot = await self.snapshots.get(workspace_id)
            obj = snapshot.get_object(object_id)
            if obj is None:
                raise NotFoundError(f"Object '{object_id}' does not exist", code="OBJECT_NOT_FOUND")

            delta = self.relations.plan_relations_for_delete(obj, snapshot)
            if obj.is_remote:
                plan = MigrationPlan(workspace_id)
            else:
                plan = self.planner.plan(obj, None, delta)

            changes = CatalogChanges(
                deleted_field_ids=[*obj.fields, *delta.removed_field_ids],
                deleted_object_ids=[obj.id],
            )
            await self._ensure_fresh(snapshot)
            if obj.is_remote:
                await self.remote_relations.delete_foreign_keys(workspace_id, obj)
            await run_to_completion(self._commit(snapshot, plan, changes))

        logger.info("Deleted object '%s' from workspace %s", obj.name_singular, workspace_id)

        await self.post_commit.dispatch(
            "related_records.delete_views", self.related_records.delete_views, obj, workspace_id
        )
        await self.post_commit.dispatch("permissions.invalidate", self.permissions.invalidate, workspace_id)
        return obj

    async def delete_all_for_workspace(self, workspace_id: str) -> None:
        """Drop every metadata row of a workspace (workspace teardown)."""
        async with self.locks.hold(workspace_id):
            await self.catalog.delete_workspace(workspace_id)
            await self.versions.bump(workspace_id)
            self.snapshots.invalidate(workspace_id)
        logger.info("Deleted all object metadata of workspace %s", workspace_id)

    # -- post-commit replay --------------------------------------------

    async def retry_post_commit(self) -> int:
        """Replay queued collaborator calls. Returns how many still fail."""
        if not self.post_commit.pending:
            return 0
        logger.info("Replaying %d post-commit task(s)", len(self.post_commit.pending))
        return await self.post_commit.retry_pending()

    async def run_post_commit_retries(self, interval: float | None = None) -> None:
        """Replay queued collaborator calls every ``interval`` seconds until cancelled."""
        interval = self.replay_interval if interval is None else interval
        while True:
            await asyncio.sleep(interval)
            await self.retry_post_commit()

    # -- pipeline ------------------------------------------------------

    async def _ensure_fresh(self, snapshot: MetadataSnapshot) -> None:
        current = await self.versions.current(snapshot.workspace_id)
        if current != snapshot.version:
            raise ConcurrentModificationError(
                f"Workspace {snapshot.workspace_id} metadata moved from version "
                f"{snapshot.version} to {current}; retry the change"
            )

    async def _commit(
        self,
        snapshot: MetadataSnapshot,
        plan: MigrationPlan,
        changes: CatalogChanges,
        *,
        compensation: MigrationPlan | None = None,
        bump: bool = True,
    ) -> list[MigrationStep]:
        """Apply ``plan``, then write ``changes`` and bump the version.

        The catalog is only written once the plan is APPLIED. If that write
        fails, ``compensation`` is run to undo the physical change.
        """
        workspace_id = snapshot.workspace_id
        applied = await self.runner.run(plan)
        try:
            await self.catalog.save(workspace_id, changes, expected_version=snapshot.version)
        except Exception:
            if compensation is not None and applied:
                logger.error(
                    "Catalog write failed for workspace %s, reverting %d applied step(s)",
                    workspace_id,
                    len(applied),
                )
                try:
                    await self.runner.run(compensation)
                except Exception as e:
                    logger.error("Compensation failed for workspace %s: %s", workspace_id, e)
            raise
        if bump:
            await self.versions.bump(workspace_id, expected=snapshot.version)
        return applied
