"""Shared fixtures: in-memory catalog, standard objects, recording executor."""

import uuid

import pytest

from schemaforge.errors import SchemaExecutionError
from schemaforge.metadata.catalog import CatalogChanges, MetadataCatalog
from schemaforge.metadata.memory_store import InMemoryCatalogStore
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata
from schemaforge.migrations.executor import ExecutionResult
from schemaforge.persistence.config import ServiceSettings
from schemaforge.services.object_metadata import ObjectMetadataService

WORKSPACE_ID = "3f6c1d2e-8a4b-4c1d-9e2f-0a1b2c3d4e5f"

STANDARD_OBJECTS = [
    ("timelineActivity", "timelineActivities", "Timeline activity", "Timeline activities"),
    ("favorite", "favorites", "Favorite", "Favorites"),
    ("attachment", "attachments", "Attachment", "Attachments"),
    ("noteTarget", "noteTargets", "Note target", "Note targets"),
    ("taskTarget", "taskTargets", "Task target", "Task targets"),
]


def make_standard_object(
    name_singular: str,
    name_plural: str,
    label_singular: str,
    label_plural: str,
    workspace_id: str = WORKSPACE_ID,
) -> ObjectMetadata:
    object_id = str(uuid.uuid4())
    id_field = FieldMetadata(
        id=str(uuid.uuid4()),
        object_id=object_id,
        workspace_id=workspace_id,
        name="id",
        label="Id",
        type="UUID",
        is_system=True,
        is_nullable=False,
    )
    return ObjectMetadata(
        id=object_id,
        workspace_id=workspace_id,
        name_singular=name_singular,
        name_plural=name_plural,
        label_singular=label_singular,
        label_plural=label_plural,
        is_custom=False,
        label_identifier_field_id=id_field.id,
        fields={id_field.id: id_field},
    )


def standard_objects(workspace_id: str = WORKSPACE_ID) -> list[ObjectMetadata]:
    return [make_standard_object(*names, workspace_id=workspace_id) for names in STANDARD_OBJECTS]


async def seed_workspace(store, objects, workspace_id: str = WORKSPACE_ID) -> None:
    """Write ``objects`` as the workspace's starting catalog (version 1)."""
    await store.apply_changes(workspace_id, CatalogChanges(upserts=list(objects)))
    await store.increment_version(workspace_id)


class RecordingExecutor:
    """Physical executor double: records plans, optionally fails a step type."""

    def __init__(self, fail_on: type | None = None):
        self.fail_on = fail_on
        self.plans = []

    async def execute(self, workspace_id, plan):
        self.plans.append(plan)
        for step in plan.steps:
            if self.fail_on is not None and isinstance(step, self.fail_on):
                return ExecutionResult(
                    error=SchemaExecutionError(
                        f"Simulated failure at '{step.describe()}'", step=step.describe()
                    )
                )
        return ExecutionResult(applied_steps=list(plan.steps))

    @property
    def steps(self):
        return [step for plan in self.plans for step in plan.steps]

    def steps_of(self, step_type):
        return [s for s in self.steps if isinstance(s, step_type)]


@pytest.fixture
def store():
    return InMemoryCatalogStore()


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def service(store, executor):
    return ObjectMetadataService(
        MetadataCatalog(store),
        executor,
        settings=ServiceSettings(sync_retry_attempts=2, sync_retry_wait_seconds=0),
    )
