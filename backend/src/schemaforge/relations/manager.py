"""Relation manager: relation metadata implied by object changes.

Relations are pairs of fields pointing at each other. Only the
MANY_TO_ONE side owns a physical join column (``<fieldName>Id``) carrying
a foreign key to the other object's table. Every lookup goes through the
snapshot's id maps; nothing is loaded lazily.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace

from schemaforge.cache.snapshot import MetadataSnapshot
from schemaforge.core.naming import compute_join_column_name, generate_foreign_key_name
from schemaforge.errors import DanglingRelationError
from schemaforge.metadata.models import (
    MANY_TO_ONE,
    ONE_TO_MANY,
    FieldMetadata,
    ObjectMetadata,
    RelationRef,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StandardRelationTarget:
    """A standard object every custom object gets linked to."""

    object_name: str  # name_singular of the standard object
    field_name: str  # ONE_TO_MANY field added on the custom object
    field_label: str
    icon: str


STANDARD_RELATION_TARGETS = (
    StandardRelationTarget("timelineActivity", "timelineActivities", "Timeline Activities", "IconTimelineEvent"),
    StandardRelationTarget("favorite", "favorites", "Favorites", "IconHeart"),
    StandardRelationTarget("attachment", "attachments", "Attachments", "IconFileImport"),
    StandardRelationTarget("noteTarget", "noteTargets", "Notes", "IconNotes"),
    StandardRelationTarget("taskTarget", "taskTargets", "Tasks", "IconCheckbox"),
)


@dataclass(frozen=True)
class ForeignKeyRef:
    """Physical side of a relation: a join column and its foreign key."""

    relation_id: str
    table_name: str
    column_name: str
    referenced_table: str
    on_delete: str = "CASCADE"

    @property
    def constraint_name(self) -> str:
        return generate_foreign_key_name(self.table_name, self.column_name)


@dataclass(frozen=True)
class RelationRename:
    old: ForeignKeyRef
    new: ForeignKeyRef

    @property
    def relation_id(self) -> str:
        return self.new.relation_id

    @property
    def column_renamed(self) -> bool:
        return self.old.column_name != self.new.column_name


@dataclass
class RelationDelta:
    """Relation additions, renames and removals implied by one change.

    ``updated_objects`` are other objects whose counterpart fields were
    added or renamed and must be persisted alongside the change;
    ``removed_field_ids`` are counterpart fields to delete.
    """

    created: list[ForeignKeyRef] = field(default_factory=list)
    renamed: list[RelationRename] = field(default_factory=list)
    removed: list[ForeignKeyRef] = field(default_factory=list)
    updated_objects: dict[str, ObjectMetadata] = field(default_factory=dict)
    removed_field_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.renamed or self.removed)

    def inverted(self) -> RelationDelta:
        """The renames of this delta, run backwards."""
        return RelationDelta(renamed=[RelationRename(old=r.new, new=r.old) for r in self.renamed])


class RelationManager:
    def __init__(self, standard_targets: tuple[StandardRelationTarget, ...] = STANDARD_RELATION_TARGETS):
        self.standard_targets = standard_targets

    def plan_relations_for_create(
        self, obj: ObjectMetadata, snapshot: MetadataSnapshot
    ) -> tuple[ObjectMetadata, RelationDelta]:
        """Link a new custom object to the standard objects of its workspace.

        Returns the object with its ONE_TO_MANY fields added, and the delta
        holding the MANY_TO_ONE counterparts and their foreign keys.
        """
        delta = RelationDelta()
        own_fields = dict(obj.fields)

        for target in self.standard_targets:
            target_obj = snapshot.get_object_by_name(target.object_name)
            if target_obj is None or not target_obj.is_active:
                logger.debug(
                    "Standard object '%s' not in workspace %s, skipping relation",
                    target.object_name,
                    obj.workspace_id,
                )
                continue

            own_field_id = str(uuid.uuid4())
            counterpart_id = str(uuid.uuid4())
            join_column = compute_join_column_name(obj.name_singular)

            own_field = FieldMetadata(
                id=own_field_id,
                object_id=obj.id,
                workspace_id=obj.workspace_id,
                name=target.field_name,
                label=target.field_label,
                type="RELATION",
                is_system=True,
                icon=target.icon,
                relation=RelationRef(
                    type=ONE_TO_MANY,
                    target_object_id=target_obj.id,
                    target_field_id=counterpart_id,
                ),
            )
            counterpart = FieldMetadata(
                id=counterpart_id,
                object_id=target_obj.id,
                workspace_id=obj.workspace_id,
                name=obj.name_singular,
                label=obj.label_singular,
                type="RELATION",
                is_custom=True,
                icon=obj.icon,
                relation=RelationRef(
                    type=MANY_TO_ONE,
                    target_object_id=obj.id,
                    target_field_id=own_field_id,
                    join_column_name=join_column,
                    on_delete="CASCADE",
                ),
            )
            own_fields[own_field_id] = own_field

            owner = delta.updated_objects.get(target_obj.id, target_obj)
            delta.updated_objects[target_obj.id] = replace(
                owner, fields={**owner.fields, counterpart_id: counterpart}
            )
            delta.created.append(
                ForeignKeyRef(
                    relation_id=counterpart_id,
                    table_name=target_obj.target_table_name,
                    column_name=join_column,
                    referenced_table=obj.target_table_name,
                    on_delete="CASCADE",
                )
            )

        delta.created.sort(key=lambda fk: fk.relation_id)
        return replace(obj, fields=own_fields), delta

    def plan_relations_for_update(
        self,
        current: ObjectMetadata,
        proposed: ObjectMetadata,
        snapshot: MetadataSnapshot,
    ) -> RelationDelta:
        """Renames implied by an object whose target table changed.

        Counterpart fields auto-named after the object follow the new name,
        and their join columns are renamed. Foreign keys are re-created on
        both sides because constraint names embed table and column names.

        Raises:
            DanglingRelationError: If a counterpart field cannot be resolved.
        """
        delta = RelationDelta()
        if current.target_table_name == proposed.target_table_name:
            return delta

        for own_field in proposed.relation_fields():
            counterpart = snapshot.counterpart_of(own_field)
            owner = snapshot.owner_of(counterpart.id) if counterpart else None
            if counterpart is None or owner is None or counterpart.relation is None:
                raise DanglingRelationError(
                    f"Relation field '{own_field.name}' on '{current.name_singular}' points to "
                    f"missing field '{own_field.relation.target_field_id}'"
                )

            if counterpart.relation.type == MANY_TO_ONE:
                delta.renamed.append(
                    self._rename_counterpart(current, proposed, counterpart, owner, delta)
                )
            elif own_field.relation.type == MANY_TO_ONE and owner.id != current.id:
                column = own_field.relation.join_column_name or compute_join_column_name(own_field.name)
                delta.renamed.append(
                    RelationRename(
                        old=ForeignKeyRef(
                            own_field.id,
                            current.target_table_name,
                            column,
                            owner.target_table_name,
                            own_field.relation.on_delete,
                        ),
                        new=ForeignKeyRef(
                            own_field.id,
                            proposed.target_table_name,
                            column,
                            owner.target_table_name,
                            own_field.relation.on_delete,
                        ),
                    )
                )

        delta.renamed.sort(key=lambda r: r.relation_id)
        return delta

    def _rename_counterpart(
        self,
        current: ObjectMetadata,
        proposed: ObjectMetadata,
        counterpart: FieldMetadata,
        owner: ObjectMetadata,
        delta: RelationDelta,
    ) -> RelationRename:
        relation = counterpart.relation
        old_column = relation.join_column_name or compute_join_column_name(counterpart.name)

        new_name, new_label = counterpart.name, counterpart.label
        if counterpart.name == current.name_singular:
            new_name = proposed.name_singular
        if counterpart.label == current.label_singular:
            new_label = proposed.label_singular
        new_column = compute_join_column_name(new_name)

        renamed_field = replace(
            counterpart,
            name=new_name,
            label=new_label,
            relation=replace(relation, join_column_name=new_column),
        )
        latest_owner = delta.updated_objects.get(owner.id, owner)
        delta.updated_objects[owner.id] = replace(
            latest_owner, fields={**latest_owner.fields, counterpart.id: renamed_field}
        )

        # A self-relation's join column lives in the table being renamed
        table_before = current.target_table_name if owner.id == current.id else owner.target_table_name
        table_after = proposed.target_table_name if owner.id == current.id else owner.target_table_name
        return RelationRename(
            old=ForeignKeyRef(
                counterpart.id, table_before, old_column, current.target_table_name, relation.on_delete
            ),
            new=ForeignKeyRef(
                counterpart.id, table_after, new_column, proposed.target_table_name, relation.on_delete
            ),
        )

    def plan_relations_for_delete(
        self, obj: ObjectMetadata, snapshot: MetadataSnapshot
    ) -> RelationDelta:
        """Foreign keys and counterpart fields to remove with an object.

        Counterparts already gone (an earlier attempt failed half way) are
        skipped rather than treated as dangling.
        """
        delta = RelationDelta()
        for own_field in obj.relation_fields():
            relation = own_field.relation
            counterpart = snapshot.counterpart_of(own_field)
            owner = snapshot.owner_of(counterpart.id) if counterpart else None

            if counterpart is not None and owner is not None and owner.id != obj.id:
                delta.removed_field_ids.append(counterpart.id)

            if relation.type == MANY_TO_ONE:
                column = relation.join_column_name or compute_join_column_name(own_field.name)
                referenced = owner.target_table_name if owner else ""
                delta.removed.append(
                    ForeignKeyRef(own_field.id, obj.target_table_name, column, referenced, relation.on_delete)
                )
            elif counterpart is not None and owner is not None and owner.id != obj.id:
                column = counterpart.relation.join_column_name or compute_join_column_name(counterpart.name)
                delta.removed.append(
                    ForeignKeyRef(
                        counterpart.id,
                        owner.target_table_name,
                        column,
                        obj.target_table_name,
                        counterpart.relation.on_delete,
                    )
                )
            else:
                logger.info(
                    "Counterpart of relation field '%s' on '%s' already removed",
                    own_field.name,
                    obj.name_singular,
                )

        delta.removed.sort(key=lambda fk: fk.relation_id)
        return delta
