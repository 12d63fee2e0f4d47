"""Tests for migration planning."""

import uuid
from dataclasses import replace

import pytest

from schemaforge.cache.snapshot import MetadataSnapshot
from schemaforge.errors import PlanningError
from schemaforge.metadata.defaults import build_default_fields_for_custom_object
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata
from schemaforge.migrations.planner import (
    MigrationPlanner,
    columns_for_field,
    compute_indexes,
    enum_columns,
)
from schemaforge.migrations.types import (
    AddColumn,
    AddRelation,
    CreateIndex,
    CreateTable,
    DropColumn,
    DropIndex,
    DropRelation,
    DropTable,
    RecomputeEnum,
    RenameColumn,
    RenameTable,
)
from schemaforge.relations.manager import RelationDelta, RelationManager

from conftest import WORKSPACE_ID, standard_objects


def _task(searchable=True):
    object_id = str(uuid.uuid4())
    fields = build_default_fields_for_custom_object(WORKSPACE_ID, object_id, searchable=searchable)
    name_field = next(f for f in fields if f.name == "name")
    return ObjectMetadata(
        id=object_id,
        workspace_id=WORKSPACE_ID,
        name_singular="task",
        name_plural="tasks",
        label_singular="Task",
        label_plural="Tasks",
        is_searchable=searchable,
        label_identifier_field_id=name_field.id,
        fields={f.id: f for f in fields},
    )


def _step_types(plan):
    return [type(s) for s in plan.steps]


def _linked_task():
    snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard_objects())
    task, delta = RelationManager().plan_relations_for_create(_task(), snapshot)
    return replace(task, indexes=compute_indexes(task)), delta, snapshot


class TestColumnsForField:
    def test_actor_expands_to_sub_columns(self):
        task = _task()
        created_by = task.field_by_name("createdBy")
        columns = columns_for_field(created_by, "_task")
        assert [c.name for c in columns] == [
            "createdBySource",
            "createdByWorkspaceMemberId",
            "createdByName",
            "createdByContext",
        ]
        assert columns[0].enum_name == "_task_createdBySource_enum"
        assert not columns[0].nullable

    def test_select_is_enum_backed(self):
        status = FieldMetadata(
            id="f-status", object_id="o", workspace_id=WORKSPACE_ID,
            name="status", label="Status", type="SELECT", options=("OPEN", "DONE"),
        )
        (column,) = columns_for_field(status, "_task")
        assert column.storage_type == "ENUM"
        assert column.enum_name == "_task_status_enum"
        assert column.enum_values == ["OPEN", "DONE"]

    def test_id_is_primary_key(self):
        (column,) = columns_for_field(_task().field_by_name("id"), "_task")
        assert column.primary_key

    def test_enum_columns(self):
        assert enum_columns(_task()) == ["createdBySource"]


class TestComputeIndexes:
    def test_label_identifier_and_search_vector(self):
        indexes = compute_indexes(_task())
        assert [(i.columns, i.index_type) for i in indexes] == [
            (("name",), "BTREE"),
            (("searchVector",), "GIN"),
        ]
        assert all(i.table_name == "_task" for i in indexes)

    def test_not_searchable(self):
        indexes = compute_indexes(_task(searchable=False))
        assert [i.columns for i in indexes] == [("name",)]


# =============================================================================
# Create
# =============================================================================


class TestPlanCreate:
    def test_bare_workspace(self):
        task = _task()
        plan = MigrationPlanner().plan(None, task, RelationDelta(), MetadataSnapshot.empty(WORKSPACE_ID))
        types = _step_types(plan)

        assert types[0] is CreateTable
        assert types.count(CreateTable) == 1
        assert plan.steps[0].columns[0].name == "id"
        assert types.count(AddColumn) == 10
        assert types.count(CreateIndex) == 2
        assert AddRelation not in types

    def test_dependency_order(self):
        task, delta, snapshot = _linked_task()
        plan = MigrationPlanner().plan(None, task, delta, snapshot)
        types = _step_types(plan)

        last_column = max(i for i, t in enumerate(types) if t is AddColumn)
        first_relation = types.index(AddRelation)
        last_relation = max(i for i, t in enumerate(types) if t is AddRelation)
        first_index = types.index(CreateIndex)
        assert types[0] is CreateTable
        assert last_column < first_relation
        assert last_relation < first_index
        assert types.count(AddRelation) == 5

    def test_table_collision(self):
        task = _task()
        other = replace(_task(), id=str(uuid.uuid4()))
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, [other])
        with pytest.raises(PlanningError) as exc_info:
            MigrationPlanner().plan(None, task, RelationDelta(), snapshot)
        assert exc_info.value.code == "TABLE_NAME_COLLISION"

    def test_table_collision_with_inactive_object(self):
        task = _task()
        inactive = replace(_task(), id=str(uuid.uuid4()), is_active=False)
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, [inactive])
        with pytest.raises(PlanningError) as exc_info:
            MigrationPlanner().plan(None, task, RelationDelta(), snapshot)
        assert exc_info.value.code == "TABLE_NAME_COLLISION"

    def test_nothing_to_plan(self):
        with pytest.raises(PlanningError):
            MigrationPlanner().plan(None, None, RelationDelta())


# =============================================================================
# Update
# =============================================================================


class TestPlanUpdate:
    def _rename(self):
        task, delta, _ = _linked_task()
        objects = list(delta.updated_objects.values()) + [task]
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 2, objects)
        job = replace(task, name_singular="job", name_plural="jobs", label_singular="Job", label_plural="Jobs")
        rename_delta = RelationManager().plan_relations_for_update(task, job, snapshot)
        job = replace(job, indexes=compute_indexes(job))
        return task, job, rename_delta, snapshot

    def test_same_table_is_empty(self):
        task = _task()
        plan = MigrationPlanner().plan(task, replace(task, icon="IconCheck"), RelationDelta())
        assert plan.is_empty
        assert not plan.views_need_update

    def test_rename_emits_one_rename_and_one_enum_recompute(self):
        task, job, delta, snapshot = self._rename()
        plan = MigrationPlanner().plan(task, job, delta, snapshot)
        types = _step_types(plan)

        assert types[0] is RenameTable
        assert types.count(RenameTable) == 1
        assert types.count(RecomputeEnum) == 1
        assert plan.steps[0].old_name == "_task"
        assert plan.steps[0].new_name == "_job"

        recompute = next(s for s in plan.steps if isinstance(s, RecomputeEnum))
        assert recompute.renames == [("_task_createdBySource_enum", "_job_createdBySource_enum")]

    def test_rename_re_points_relations(self):
        task, job, delta, snapshot = self._rename()
        plan = MigrationPlanner().plan(task, job, delta, snapshot)

        drops = [s for s in plan.steps if isinstance(s, DropRelation)]
        renames = [s for s in plan.steps if isinstance(s, RenameColumn)]
        adds = [s for s in plan.steps if isinstance(s, AddRelation)]
        assert len(drops) == len(renames) == len(adds) == 5
        assert all(not s.drop_column for s in drops)
        assert all(not s.create_column for s in adds)
        assert {(s.old_name, s.new_name) for s in renames} == {("taskId", "jobId")}
        assert {s.referenced_table for s in adds} == {"_job"}
        assert [s.relation_id for s in drops] == sorted(s.relation_id for s in drops)

    def test_inverted_delta_renames_back(self):
        task, job, delta, _ = self._rename()
        revert = MigrationPlanner().plan_update(job, task, delta.inverted())

        assert revert.steps[0] == RenameTable(old_name="_job", new_name="_task")
        renames = [s for s in revert.steps if isinstance(s, RenameColumn)]
        assert {(s.old_name, s.new_name) for s in renames} == {("jobId", "taskId")}
        adds = [s for s in revert.steps if isinstance(s, AddRelation)]
        assert {s.referenced_table for s in adds} == {"_task"}
        recompute = next(s for s in revert.steps if isinstance(s, RecomputeEnum))
        assert recompute.renames == [("_job_createdBySource_enum", "_task_createdBySource_enum")]

    def test_rename_rebuilds_indexes(self):
        task, job, delta, snapshot = self._rename()
        plan = MigrationPlanner().plan(task, job, delta, snapshot)

        dropped = {s.name for s in plan.steps if isinstance(s, DropIndex)}
        created = {s.index.name for s in plan.steps if isinstance(s, CreateIndex)}
        assert dropped == {i.name for i in task.indexes}
        assert created == {i.name for i in job.indexes}
        assert dropped.isdisjoint(created)

    def test_views_flag_on_label_change(self):
        task, job, delta, snapshot = self._rename()
        plan = MigrationPlanner().plan(task, job, delta, snapshot)
        assert plan.views_need_update

        plan = MigrationPlanner().plan(task, replace(job, label_plural=task.label_plural), delta, snapshot)
        assert not plan.views_need_update


# =============================================================================
# Delete
# =============================================================================


class TestPlanDelete:
    def test_relations_dropped_before_table(self):
        task, delta, _ = _linked_task()
        snapshot = MetadataSnapshot.build(
            WORKSPACE_ID, 2, list(delta.updated_objects.values()) + [task]
        )
        delete_delta = RelationManager().plan_relations_for_delete(task, snapshot)
        plan = MigrationPlanner().plan(task, None, delete_delta)
        types = _step_types(plan)

        assert types[-1] is DropTable
        assert types.count(DropRelation) == 5
        assert all(s.drop_column for s in plan.steps if isinstance(s, DropRelation))

    def test_bare_object(self):
        plan = MigrationPlanner().plan(_task(), None, RelationDelta())
        assert _step_types(plan) == [DropTable]

    def test_drop_table_lists_enum_types(self):
        plan = MigrationPlanner().plan(_task(), None, RelationDelta())
        assert plan.steps[-1].enum_types == ["_task_createdBySource_enum"]


class TestPlanSearchVectorUpdate:
    def test_rebuilds_column_and_index(self):
        task = _task()
        plan = MigrationPlanner().plan_search_vector_update(task, task.field_by_name("name"))
        assert _step_types(plan) == [DropIndex, DropColumn, AddColumn, CreateIndex]
        assert plan.steps[1].column_name == "searchVector"

    def test_not_searchable_identifier(self):
        task = _task()
        position = task.field_by_name("position")
        plan = MigrationPlanner().plan_search_vector_update(task, position)
        assert plan.is_empty

    def test_object_without_search_vector(self):
        task = _task(searchable=False)
        plan = MigrationPlanner().plan_search_vector_update(task, task.field_by_name("name"))
        assert plan.is_empty
