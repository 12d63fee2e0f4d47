"""Default field set for new custom objects."""

from __future__ import annotations

import uuid

from schemaforge.metadata.models import FieldMetadata

# Stable identifiers of the standard fields every custom object gets,
# shared across workspaces so fields can be matched by role, not by name.
CUSTOM_OBJECT_STANDARD_FIELD_IDS = {
    "id": "20202020-eda0-4cee-9577-3eb357e3c22b",
    "name": "20202020-6d30-4111-9f40-b4301906fd3c",
    "createdAt": "20202020-a2f5-438e-b7d4-4f1e0a3c9d2f",
    "updatedAt": "20202020-6f4a-4ad6-9a70-4e0b0ffa3c2d",
    "deletedAt": "20202020-b3a8-4a0f-bc58-76b4f1d2e9a1",
    "createdBy": "20202020-1f0e-4e3e-b2a4-b0d1c3c9b8e7",
    "position": "20202020-7b9c-4c5a-9d1e-2e6b0c8f4a31",
    "searchVector": "20202020-8c37-4163-ba06-1dada334ce3e",
}

# (name, label, type, nullable, system)
_DEFAULT_FIELDS = [
    ("id", "Id", "UUID", False, True),
    ("name", "Name", "TEXT", True, False),
    ("createdAt", "Creation date", "DATE_TIME", False, False),
    ("updatedAt", "Last update", "DATE_TIME", False, False),
    ("deletedAt", "Deleted at", "DATE_TIME", True, False),
    ("createdBy", "Created by", "ACTOR", False, False),
    ("position", "Position", "POSITION", True, True),
]


def build_default_fields_for_custom_object(
    workspace_id: str,
    object_id: str,
    searchable: bool = True,
) -> list[FieldMetadata]:
    """Fields every custom object starts with.

    The ``name`` field is the default label identifier. A ``searchVector``
    field is added for searchable objects.
    """
    specs = list(_DEFAULT_FIELDS)
    if searchable:
        specs.append(("searchVector", "Search vector", "TS_VECTOR", True, True))

    return [
        FieldMetadata(
            id=str(uuid.uuid4()),
            object_id=object_id,
            workspace_id=workspace_id,
            name=name,
            label=label,
            type=type_,
            is_custom=False,
            is_system=system,
            is_nullable=nullable,
            standard_id=CUSTOM_OBJECT_STANDARD_FIELD_IDS[name],
        )
        for name, label, type_, nullable, system in specs
    ]


def find_default_label_identifier(fields: list[FieldMetadata]) -> FieldMetadata | None:
    for f in fields:
        if f.standard_id == CUSTOM_OBJECT_STANDARD_FIELD_IDS["name"]:
            return f
    return None
