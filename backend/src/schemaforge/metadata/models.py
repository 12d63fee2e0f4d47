"""Object, field, relation and index metadata types.

Instances are frozen: a change is expressed by building a new value with
``dataclasses.replace`` so snapshots handed to concurrent readers never
change underneath them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields as dataclass_fields
from typing import Any

from schemaforge.core.naming import compute_table_name

ONE_TO_MANY = "ONE_TO_MANY"
MANY_TO_ONE = "MANY_TO_ONE"


@dataclass(frozen=True)
class RelationRef:
    """One side of a bidirectional relation between two objects."""

    type: str  # ONE_TO_MANY | MANY_TO_ONE
    target_object_id: str
    target_field_id: str
    join_column_name: str | None = None  # set on the MANY_TO_ONE side only
    on_delete: str = "CASCADE"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "targetObjectId": self.target_object_id,
            "targetFieldId": self.target_field_id,
            "joinColumnName": self.join_column_name,
            "onDelete": self.on_delete,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelationRef:
        return cls(
            type=data["type"],
            target_object_id=data["targetObjectId"],
            target_field_id=data["targetFieldId"],
            join_column_name=data.get("joinColumnName"),
            on_delete=data.get("onDelete", "CASCADE"),
        )


@dataclass(frozen=True)
class FieldMetadata:
    id: str
    object_id: str
    workspace_id: str
    name: str
    label: str
    type: str
    is_custom: bool = False
    is_system: bool = False
    is_nullable: bool = True
    is_active: bool = True
    standard_id: str | None = None
    icon: str | None = None
    options: tuple[str, ...] | None = None
    relation: RelationRef | None = None

    @property
    def is_relation(self) -> bool:
        return self.relation is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "objectId": self.object_id,
            "workspaceId": self.workspace_id,
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "isCustom": self.is_custom,
            "isSystem": self.is_system,
            "isNullable": self.is_nullable,
            "isActive": self.is_active,
            "standardId": self.standard_id,
            "icon": self.icon,
            "options": list(self.options) if self.options is not None else None,
            "relation": self.relation.to_dict() if self.relation else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldMetadata:
        options = data.get("options")
        relation = data.get("relation")
        return cls(
            id=data["id"],
            object_id=data["objectId"],
            workspace_id=data["workspaceId"],
            name=data["name"],
            label=data["label"],
            type=data["type"],
            is_custom=data.get("isCustom", False),
            is_system=data.get("isSystem", False),
            is_nullable=data.get("isNullable", True),
            is_active=data.get("isActive", True),
            standard_id=data.get("standardId"),
            icon=data.get("icon"),
            options=tuple(options) if options is not None else None,
            relation=RelationRef.from_dict(relation) if relation else None,
        )


@dataclass(frozen=True)
class IndexMetadata:
    """A physical index; its name is derived from the table and columns."""

    name: str
    table_name: str
    columns: tuple[str, ...]
    index_type: str = "BTREE"  # BTREE | GIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "tableName": self.table_name,
            "columns": list(self.columns),
            "indexType": self.index_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexMetadata:
        return cls(
            name=data["name"],
            table_name=data["tableName"],
            columns=tuple(data["columns"]),
            index_type=data.get("indexType", "BTREE"),
        )


@dataclass(frozen=True)
class ObjectMetadata:
    id: str
    workspace_id: str
    name_singular: str
    name_plural: str
    label_singular: str
    label_plural: str
    description: str | None = None
    icon: str | None = None
    is_custom: bool = True
    is_remote: bool = False
    is_system: bool = False
    is_active: bool = True
    is_searchable: bool = False
    is_label_synced_with_name: bool = False
    label_identifier_field_id: str | None = None
    image_identifier_field_id: str | None = None
    fields: dict[str, FieldMetadata] = field(default_factory=dict)
    indexes: tuple[IndexMetadata, ...] = ()

    @property
    def target_table_name(self) -> str:
        return compute_table_name(self.name_singular, self.is_custom)

    def field_by_name(self, name: str) -> FieldMetadata | None:
        for f in self.fields.values():
            if f.name == name:
                return f
        return None

    def relation_fields(self) -> list[FieldMetadata]:
        return [f for f in self.fields.values() if f.relation is not None]

    def to_dict(self, include_fields: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "nameSingular": self.name_singular,
            "namePlural": self.name_plural,
            "labelSingular": self.label_singular,
            "labelPlural": self.label_plural,
            "description": self.description,
            "icon": self.icon,
            "isCustom": self.is_custom,
            "isRemote": self.is_remote,
            "isSystem": self.is_system,
            "isActive": self.is_active,
            "isSearchable": self.is_searchable,
            "isLabelSyncedWithName": self.is_label_synced_with_name,
            "labelIdentifierFieldId": self.label_identifier_field_id,
            "imageIdentifierFieldId": self.image_identifier_field_id,
            "indexes": [i.to_dict() for i in self.indexes],
        }
        if include_fields:
            data["fields"] = [f.to_dict() for f in self.fields.values()]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectMetadata:
        fields = [FieldMetadata.from_dict(f) for f in data.get("fields", [])]
        return cls(
            id=data["id"],
            workspace_id=data["workspaceId"],
            name_singular=data["nameSingular"],
            name_plural=data["namePlural"],
            label_singular=data["labelSingular"],
            label_plural=data["labelPlural"],
            description=data.get("description"),
            icon=data.get("icon"),
            is_custom=data.get("isCustom", True),
            is_remote=data.get("isRemote", False),
            is_system=data.get("isSystem", False),
            is_active=data.get("isActive", True),
            is_searchable=data.get("isSearchable", False),
            is_label_synced_with_name=data.get("isLabelSyncedWithName", False),
            label_identifier_field_id=data.get("labelIdentifierFieldId"),
            image_identifier_field_id=data.get("imageIdentifierFieldId"),
            fields={f.id: f for f in fields},
            indexes=tuple(IndexMetadata.from_dict(i) for i in data.get("indexes", [])),
        )


@dataclass
class CreateObjectInput:
    """Input for creating an object. Labels are capitalized by the service."""

    workspace_id: str
    name_singular: str
    name_plural: str
    label_singular: str
    label_plural: str
    description: str | None = None
    icon: str | None = None
    is_remote: bool = False
    is_label_synced_with_name: bool = False
    primary_key_column_type: str = "UUID"
    primary_key_field_settings: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], workspace_id: str | None = None) -> CreateObjectInput:
        """Build from a camelCase dict (YAML or JSON payload)."""
        return cls(
            workspace_id=workspace_id or data["workspaceId"],
            name_singular=data["nameSingular"],
            name_plural=data["namePlural"],
            label_singular=data["labelSingular"],
            label_plural=data["labelPlural"],
            description=data.get("description"),
            icon=data.get("icon"),
            is_remote=data.get("isRemote", False),
            is_label_synced_with_name=data.get("isLabelSyncedWithName", False),
            primary_key_column_type=data.get("primaryKeyColumnType", "UUID"),
            primary_key_field_settings=data.get("primaryKeyFieldMetadataSettings"),
        )


@dataclass
class UpdateObjectPatch:
    """Partial update of an object. ``None`` means "leave unchanged"."""

    name_singular: str | None = None
    name_plural: str | None = None
    label_singular: str | None = None
    label_plural: str | None = None
    description: str | None = None
    icon: str | None = None
    is_active: bool | None = None
    is_label_synced_with_name: bool | None = None
    label_identifier_field_id: str | None = None
    image_identifier_field_id: str | None = None

    def changes(self) -> dict[str, Any]:
        """Attributes explicitly set on this patch."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclass_fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UpdateObjectPatch:
        mapping = {
            "nameSingular": "name_singular",
            "namePlural": "name_plural",
            "labelSingular": "label_singular",
            "labelPlural": "label_plural",
            "description": "description",
            "icon": "icon",
            "isActive": "is_active",
            "isLabelSyncedWithName": "is_label_synced_with_name",
            "labelIdentifierFieldId": "label_identifier_field_id",
            "imageIdentifierFieldId": "image_identifier_field_id",
        }
        unknown = set(data) - set(mapping)
        if unknown:
            raise ValueError(f"Unknown update keys: {', '.join(sorted(unknown))}")
        return cls(**{mapping[k]: v for k, v in data.items()})
