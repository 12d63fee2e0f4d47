"""Tests for the relation manager."""

import uuid
from dataclasses import replace

import pytest

from schemaforge.cache.snapshot import MetadataSnapshot
from schemaforge.errors import DanglingRelationError
from schemaforge.metadata.defaults import build_default_fields_for_custom_object
from schemaforge.metadata.models import (
    MANY_TO_ONE,
    ONE_TO_MANY,
    FieldMetadata,
    ObjectMetadata,
    RelationRef,
)
from schemaforge.relations.manager import STANDARD_RELATION_TARGETS, RelationManager

from conftest import WORKSPACE_ID, standard_objects


def _custom_object(name_singular="task", name_plural="tasks", label_singular="Task", label_plural="Tasks"):
    object_id = str(uuid.uuid4())
    fields = build_default_fields_for_custom_object(WORKSPACE_ID, object_id)
    return ObjectMetadata(
        id=object_id,
        workspace_id=WORKSPACE_ID,
        name_singular=name_singular,
        name_plural=name_plural,
        label_singular=label_singular,
        label_plural=label_plural,
        is_searchable=True,
        fields={f.id: f for f in fields},
    )


def _created_workspace():
    """Standard objects plus a custom 'task' linked to all of them."""
    standard = standard_objects()
    snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard)
    task, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)
    objects = [delta.updated_objects.get(o.id, o) for o in standard] + [task]
    return MetadataSnapshot.build(WORKSPACE_ID, 2, objects), task


# =============================================================================
# Create
# =============================================================================


class TestPlanRelationsForCreate:
    def test_links_every_standard_object(self):
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard_objects())
        task, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)

        own = {f.name for f in task.relation_fields()}
        assert own == {t.field_name for t in STANDARD_RELATION_TARGETS}
        assert len(delta.created) == len(STANDARD_RELATION_TARGETS)
        assert len(delta.updated_objects) == len(STANDARD_RELATION_TARGETS)

    def test_counterparts_are_many_to_one_named_after_object(self):
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard_objects())
        task, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)

        for target in delta.updated_objects.values():
            counterpart = target.field_by_name("task")
            assert counterpart.relation.type == MANY_TO_ONE
            assert counterpart.relation.join_column_name == "taskId"
            assert counterpart.relation.target_object_id == task.id
            own = task.fields[counterpart.relation.target_field_id]
            assert own.relation.type == ONE_TO_MANY
            assert own.relation.target_field_id == counterpart.id

    def test_foreign_keys_point_at_new_table(self):
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard_objects())
        _, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)

        assert {fk.referenced_table for fk in delta.created} == {"_task"}
        assert {fk.column_name for fk in delta.created} == {"taskId"}
        assert [fk.relation_id for fk in delta.created] == sorted(
            fk.relation_id for fk in delta.created
        )

    def test_missing_standard_objects_are_skipped(self):
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, standard_objects()[:2])
        task, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)
        assert len(delta.created) == 2
        assert len(task.relation_fields()) == 2

    def test_bare_workspace_has_no_relations(self):
        snapshot = MetadataSnapshot.empty(WORKSPACE_ID)
        task, delta = RelationManager().plan_relations_for_create(_custom_object(), snapshot)
        assert delta.is_empty
        assert task.relation_fields() == []


# =============================================================================
# Update
# =============================================================================


class TestPlanRelationsForUpdate:
    def test_no_table_change_no_delta(self):
        snapshot, task = _created_workspace()
        delta = RelationManager().plan_relations_for_update(
            task, replace(task, label_singular="Chore"), snapshot
        )
        assert delta.is_empty

    def test_rename_follows_auto_named_counterparts(self):
        snapshot, task = _created_workspace()
        job = replace(task, name_singular="job", name_plural="jobs", label_singular="Job")
        delta = RelationManager().plan_relations_for_update(task, job, snapshot)

        assert len(delta.renamed) == len(STANDARD_RELATION_TARGETS)
        for rename in delta.renamed:
            assert rename.old.column_name == "taskId"
            assert rename.new.column_name == "jobId"
            assert rename.old.referenced_table == "_task"
            assert rename.new.referenced_table == "_job"
            assert rename.column_renamed
        for target in delta.updated_objects.values():
            assert target.field_by_name("task") is None
            assert target.field_by_name("job").label == "Job"

    def test_renames_sorted_by_relation_id(self):
        snapshot, task = _created_workspace()
        job = replace(task, name_singular="job", name_plural="jobs")
        delta = RelationManager().plan_relations_for_update(task, job, snapshot)
        ids = [r.relation_id for r in delta.renamed]
        assert ids == sorted(ids)

    def test_hand_named_counterpart_keeps_its_name(self):
        snapshot, task = _created_workspace()
        favorite = snapshot.get_object_by_name("favorite")
        counterpart = favorite.field_by_name("task")
        renamed = replace(counterpart, name="favoriteTask", label="Favorite task",
                          relation=replace(counterpart.relation, join_column_name="favoriteTaskId"))
        favorite = replace(favorite, fields={**favorite.fields, counterpart.id: renamed})
        objects = [favorite if o.id == favorite.id else o for o in snapshot.objects_by_id.values()]
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 3, objects)

        job = replace(task, name_singular="job", name_plural="jobs")
        delta = RelationManager().plan_relations_for_update(task, job, snapshot)

        rename = next(r for r in delta.renamed if r.relation_id == counterpart.id)
        assert not rename.column_renamed
        assert rename.new.referenced_table == "_job"
        assert delta.updated_objects[favorite.id].field_by_name("favoriteTask") is not None

    def test_dangling_relation(self):
        snapshot, task = _created_workspace()
        favorite = snapshot.get_object_by_name("favorite")
        stripped = replace(
            favorite, fields={k: v for k, v in favorite.fields.items() if v.name != "task"}
        )
        objects = [stripped if o.id == favorite.id else o for o in snapshot.objects_by_id.values()]
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 3, objects)

        with pytest.raises(DanglingRelationError):
            RelationManager().plan_relations_for_update(
                task, replace(task, name_singular="job", name_plural="jobs"), snapshot
            )

    def test_self_relation(self):
        task = _custom_object()
        parent_id, children_id = "f-parent", "f-children"
        parent = FieldMetadata(
            id=parent_id, object_id=task.id, workspace_id=WORKSPACE_ID,
            name="task", label="Task", type="RELATION",
            relation=RelationRef(MANY_TO_ONE, task.id, children_id, join_column_name="taskId"),
        )
        children = FieldMetadata(
            id=children_id, object_id=task.id, workspace_id=WORKSPACE_ID,
            name="subtasks", label="Subtasks", type="RELATION",
            relation=RelationRef(ONE_TO_MANY, task.id, parent_id),
        )
        task = replace(task, fields={**task.fields, parent_id: parent, children_id: children})
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 1, [task])

        job = replace(task, name_singular="job", name_plural="jobs")
        delta = RelationManager().plan_relations_for_update(task, job, snapshot)

        assert len(delta.renamed) == 1
        rename = delta.renamed[0]
        assert rename.old.table_name == "_task"
        assert rename.new.table_name == "_job"
        assert rename.new.column_name == "jobId"
        assert delta.updated_objects[task.id].fields[parent_id].name == "job"


# =============================================================================
# Delete
# =============================================================================


class TestPlanRelationsForDelete:
    def test_removes_counterparts_and_foreign_keys(self):
        snapshot, task = _created_workspace()
        delta = RelationManager().plan_relations_for_delete(task, snapshot)

        assert len(delta.removed) == len(STANDARD_RELATION_TARGETS)
        assert len(delta.removed_field_ids) == len(STANDARD_RELATION_TARGETS)
        assert {fk.column_name for fk in delta.removed} == {"taskId"}
        assert "_task" not in {fk.table_name for fk in delta.removed}

    def test_tolerates_missing_counterparts(self):
        snapshot, task = _created_workspace()
        favorite = snapshot.get_object_by_name("favorite")
        stripped = replace(
            favorite, fields={k: v for k, v in favorite.fields.items() if v.name != "task"}
        )
        objects = [stripped if o.id == favorite.id else o for o in snapshot.objects_by_id.values()]
        snapshot = MetadataSnapshot.build(WORKSPACE_ID, 3, objects)

        delta = RelationManager().plan_relations_for_delete(task, snapshot)
        assert len(delta.removed) == len(STANDARD_RELATION_TARGETS) - 1
        assert len(delta.removed_field_ids) == len(STANDARD_RELATION_TARGETS) - 1
