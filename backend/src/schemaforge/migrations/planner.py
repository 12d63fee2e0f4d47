"""Migration planner.

Turns a validated object change (plus the relation delta computed for it)
into an ordered MigrationPlan. Steps always follow dependency order:
tables before columns, columns before relations, relations before
indexes; teardown runs the other way round.
"""

from __future__ import annotations

from schemaforge.cache.snapshot import MetadataSnapshot
from schemaforge.core.naming import compute_enum_type_name, generate_index_name
from schemaforge.core.types import get_field_type
from schemaforge.errors import PlanningError
from schemaforge.metadata.models import FieldMetadata, IndexMetadata, ObjectMetadata
from schemaforge.migrations.types import (
    AddColumn,
    AddRelation,
    ColumnSpec,
    CreateIndex,
    CreateTable,
    DropColumn,
    DropIndex,
    DropRelation,
    DropTable,
    MigrationPlan,
    MigrationStep,
    RecomputeEnum,
    RenameColumn,
    RenameTable,
)
from schemaforge.relations.manager import ForeignKeyRef, RelationDelta

SEARCH_VECTOR_FIELD = "searchVector"


def columns_for_field(f: FieldMetadata, table_name: str) -> list[ColumnSpec]:
    """Physical columns backing a field (none for relation fields)."""
    field_type = get_field_type(f.type)
    if not field_type.has_column:
        return []
    if field_type.sub_columns:
        return [
            ColumnSpec(
                name=f"{f.name}{sub.suffix}",
                storage_type=sub.storage_type,
                nullable=f.is_nullable,
                enum_name=(
                    compute_enum_type_name(table_name, f"{f.name}{sub.suffix}")
                    if sub.storage_type == "ENUM"
                    else None
                ),
                enum_values=sub.enum_values,
            )
            for sub in field_type.sub_columns
        ]
    return [
        ColumnSpec(
            name=f.name,
            storage_type=field_type.storage_type,
            nullable=f.is_nullable,
            primary_key=f.name == "id",
            enum_name=compute_enum_type_name(table_name, f.name) if field_type.enum_backed else None,
            enum_values=list(f.options or []) if field_type.enum_backed else None,
        )
    ]


def enum_columns(obj: ObjectMetadata) -> list[str]:
    """Names of the enum-typed columns of an object's table."""
    names = []
    for f in obj.fields.values():
        for column in columns_for_field(f, obj.target_table_name):
            if column.enum_name:
                names.append(column.name)
    return sorted(names)


def compute_indexes(obj: ObjectMetadata) -> tuple[IndexMetadata, ...]:
    """Default indexes: the label identifier column and the search vector."""
    table = obj.target_table_name
    indexes = []

    identifier = obj.fields.get(obj.label_identifier_field_id or "")
    if identifier is not None:
        columns = tuple(c.name for c in columns_for_field(identifier, table))
        if columns:
            indexes.append(IndexMetadata(generate_index_name(table, columns), table, columns))

    search = obj.field_by_name(SEARCH_VECTOR_FIELD)
    if obj.is_searchable and search is not None:
        columns = (search.name,)
        indexes.append(
            IndexMetadata(generate_index_name(table, columns), table, columns, index_type="GIN")
        )
    return tuple(indexes)


def _ordered_fields(obj: ObjectMetadata) -> list[FieldMetadata]:
    # id first, then declaration order
    return sorted(obj.fields.values(), key=lambda f: f.name != "id")


class MigrationPlanner:
    """Builds migration plans for object create, update and delete."""

    def plan(
        self,
        current: ObjectMetadata | None,
        proposed: ObjectMetadata | None,
        relation_delta: RelationDelta,
        snapshot: MetadataSnapshot | None = None,
    ) -> MigrationPlan:
        """Plan the physical change from ``current`` to ``proposed``.

        ``current`` is None for a create, ``proposed`` is None for a delete.

        Raises:
            PlanningError: If the proposed table name is already used by
                another object of the snapshot, active or not.
        """
        if current is None and proposed is None:
            raise PlanningError("Nothing to plan: both current and proposed are missing")
        if proposed is not None and snapshot is not None:
            self.check_table_collision(proposed, snapshot)

        if current is None:
            return self.plan_create(proposed, relation_delta)
        if proposed is None:
            return self.plan_delete(current, relation_delta)
        return self.plan_update(current, proposed, relation_delta)

    def check_table_collision(self, proposed: ObjectMetadata, snapshot: MetadataSnapshot) -> None:
        table = proposed.target_table_name
        # Inactive objects keep their tables
        for obj in snapshot.objects_by_id.values():
            if obj.id != proposed.id and obj.target_table_name == table:
                raise PlanningError(
                    f"Table '{table}' is already used by object '{obj.name_singular}'",
                    code="TABLE_NAME_COLLISION",
                )

    def plan_create(self, obj: ObjectMetadata, relation_delta: RelationDelta) -> MigrationPlan:
        table = obj.target_table_name
        steps: list[MigrationStep] = []
        columns: list[ColumnSpec] = []
        for f in _ordered_fields(obj):
            columns.extend(columns_for_field(f, table))

        primary = [c for c in columns if c.primary_key]
        steps.append(CreateTable(table_name=table, columns=primary))
        steps.extend(AddColumn(table_name=table, column=c) for c in columns if not c.primary_key)
        steps.extend(self._add_relation(fk, create_column=True) for fk in relation_delta.created)
        steps.extend(CreateIndex(index=i) for i in (obj.indexes or compute_indexes(obj)))
        return MigrationPlan(workspace_id=obj.workspace_id, steps=steps)

    def plan_update(
        self,
        current: ObjectMetadata,
        proposed: ObjectMetadata,
        relation_delta: RelationDelta,
    ) -> MigrationPlan:
        plan = MigrationPlan(workspace_id=proposed.workspace_id)
        old_table = current.target_table_name
        new_table = proposed.target_table_name
        if old_table == new_table:
            return plan

        plan.steps.append(RenameTable(old_name=old_table, new_name=new_table))

        for rename in sorted(relation_delta.renamed, key=lambda r: r.relation_id):
            plan.steps.append(
                DropRelation(
                    relation_id=rename.relation_id,
                    table_name=rename.new.table_name,
                    column_name=rename.old.column_name,
                    constraint_name=rename.old.constraint_name,
                    drop_column=False,
                )
            )
            if rename.column_renamed:
                plan.steps.append(
                    RenameColumn(
                        table_name=rename.new.table_name,
                        old_name=rename.old.column_name,
                        new_name=rename.new.column_name,
                    )
                )
            plan.steps.append(self._add_relation(rename.new, create_column=False))

        plan.steps.append(
            RecomputeEnum(
                table_name=new_table,
                renames=[
                    (compute_enum_type_name(old_table, c), compute_enum_type_name(new_table, c))
                    for c in enum_columns(current)
                ],
            )
        )

        for index in current.indexes:
            plan.steps.append(DropIndex(name=index.name, table_name=new_table))
        for index in proposed.indexes or compute_indexes(proposed):
            plan.steps.append(CreateIndex(index=index))

        label_changed = proposed.label_plural != current.label_plural
        icon_changed = proposed.icon != current.icon
        plan.views_need_update = label_changed or icon_changed
        return plan

    def plan_delete(self, obj: ObjectMetadata, relation_delta: RelationDelta) -> MigrationPlan:
        table = obj.target_table_name
        steps: list[MigrationStep] = [
            DropRelation(
                relation_id=fk.relation_id,
                table_name=fk.table_name,
                column_name=fk.column_name,
                constraint_name=fk.constraint_name,
                # Join columns in the dropped table go away with it
                drop_column=fk.table_name != table,
            )
            for fk in sorted(relation_delta.removed, key=lambda fk: fk.relation_id)
        ]
        steps.append(
            DropTable(
                table_name=table,
                enum_types=[compute_enum_type_name(table, c) for c in enum_columns(obj)],
            )
        )
        return MigrationPlan(workspace_id=obj.workspace_id, steps=steps)

    def plan_search_vector_update(
        self, obj: ObjectMetadata, label_identifier: FieldMetadata
    ) -> MigrationPlan:
        """Rebuild the search vector column after the label identifier changed.

        Runs as a second pass, once the identifier change is committed.
        Empty when the object has no search vector or the new identifier
        type is not searchable.
        """
        plan = MigrationPlan(workspace_id=obj.workspace_id)
        search = obj.field_by_name(SEARCH_VECTOR_FIELD)
        if search is None or not get_field_type(label_identifier.type).searchable:
            return plan

        table = obj.target_table_name
        search_indexes = [i for i in compute_indexes(obj) if i.columns == (search.name,)]
        plan.steps.extend(DropIndex(name=i.name, table_name=table) for i in search_indexes)
        plan.steps.append(DropColumn(table_name=table, column_name=search.name))
        plan.steps.extend(
            AddColumn(table_name=table, column=c) for c in columns_for_field(search, table)
        )
        plan.steps.extend(CreateIndex(index=i) for i in search_indexes)
        return plan

    def _add_relation(self, fk: ForeignKeyRef, create_column: bool) -> AddRelation:
        return AddRelation(
            relation_id=fk.relation_id,
            table_name=fk.table_name,
            column_name=fk.column_name,
            referenced_table=fk.referenced_table,
            constraint_name=fk.constraint_name,
            on_delete=fk.on_delete,
            create_column=create_column,
        )
