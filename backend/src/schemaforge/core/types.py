"""Field type registry with physical storage defaults."""

from dataclasses import dataclass, field


@dataclass
class SubColumn:
    """One physical column of a composite field type."""

    suffix: str
    storage_type: str
    enum_values: list[str] | None = None


@dataclass
class FieldType:
    name: str
    storage_type: str
    searchable: bool = False
    enum_backed: bool = False
    # Composite types expand into several columns named <field><Suffix>
    sub_columns: list[SubColumn] = field(default_factory=list)
    # Relation fields own a column only on their MANY_TO_ONE side
    has_column: bool = True


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "UUID": FieldType(name="UUID", storage_type="UUID", searchable=True),
    "TEXT": FieldType(name="TEXT", storage_type="TEXT", searchable=True),
    "NUMBER": FieldType(name="NUMBER", storage_type="REAL", searchable=True),
    "BOOLEAN": FieldType(name="BOOLEAN", storage_type="BOOLEAN"),
    "DATE_TIME": FieldType(name="DATE_TIME", storage_type="TIMESTAMP"),
    "POSITION": FieldType(name="POSITION", storage_type="REAL"),
    "SELECT": FieldType(
        name="SELECT", storage_type="ENUM", searchable=True, enum_backed=True
    ),
    "MULTI_SELECT": FieldType(
        name="MULTI_SELECT", storage_type="ENUM_ARRAY"
    ),
    "ACTOR": FieldType(
        name="ACTOR",
        storage_type="COMPOSITE",
        sub_columns=[
            SubColumn(
                "Source",
                "ENUM",
                enum_values=["EMAIL", "CALENDAR", "WORKFLOW", "API", "IMPORT", "MANUAL", "SYSTEM"],
            ),
            SubColumn("WorkspaceMemberId", "UUID"),
            SubColumn("Name", "TEXT"),
            SubColumn("Context", "JSON"),
        ],
    ),
    "TS_VECTOR": FieldType(name="TS_VECTOR", storage_type="TSVECTOR"),
    "RELATION": FieldType(name="RELATION", storage_type="UUID", has_column=False),
}


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to TEXT if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["TEXT"])


def is_searchable_field_type(type_name: str) -> bool:
    """Whether a field of this type can feed the search vector."""
    return get_field_type(type_name).searchable
