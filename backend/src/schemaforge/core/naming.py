"""Deterministic naming rules for physical schema objects.

Everything physical (tables, join columns, enum types, indexes, workspace
schemas) is named by a pure function of metadata, so the same metadata
always maps to the same schema and a rename is detectable by comparing
outputs.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
import uuid

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|[0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# PostgreSQL truncates longer identifiers silently
IDENTIFIER_MAX_LENGTH = 63


def normalize(value: str) -> str:
    """Trim and lowercase, the comparison key for names and labels."""
    return value.strip().lower()


def capitalize(value: str) -> str:
    """Uppercase the first character, leave the rest untouched."""
    if not value:
        return value
    return value[0].upper() + value[1:]


def cap_identifier(name: str, max_length: int = IDENTIFIER_MAX_LENGTH) -> str:
    """Shorten an identifier to ``max_length``, keeping it unique.

    Over-long names keep a readable prefix followed by a hash of the full
    name, so two long names sharing a prefix still map to different
    identifiers.
    """
    if len(name) <= max_length:
        return name
    digest = hashlib.sha256(name.encode()).hexdigest()[:8]
    return f"{name[: max_length - 9]}_{digest}"


def compute_table_name(name_singular: str, is_custom: bool) -> str:
    """Physical table for an object. Custom tables are underscore-prefixed."""
    return cap_identifier(f"_{name_singular}" if is_custom else name_singular)


def compute_name_from_label(label: str) -> str:
    """camelCase name a label maps to when names are synced with labels.

    Example: compute_name_from_label("Sales Order") → "salesOrder"
    """
    if not label.strip():
        return ""
    ascii_label = (
        unicodedata.normalize("NFKD", label).encode("ascii", "ignore").decode("ascii")
    )
    if ascii_label[:1].isdigit():
        ascii_label = f"n{ascii_label}"
    words = _WORD_RE.findall(ascii_label)
    if not words:
        return ""
    head, *rest = words
    return head.lower() + "".join(w[:1].upper() + w[1:].lower() for w in rest)


def compute_join_column_name(field_name: str) -> str:
    return cap_identifier(f"{field_name}Id")


def compute_enum_type_name(table_name: str, column_name: str) -> str:
    return cap_identifier(f"{table_name}_{column_name}_enum")


def generate_index_name(table_name: str, columns: list[str] | tuple[str, ...]) -> str:
    """Index name hashed from table and columns, stable across processes."""
    digest = hashlib.sha256("_".join([table_name, *columns]).encode()).hexdigest()
    return f"IDX_{digest[:27]}"


def compute_workspace_schema(workspace_id: str) -> str:
    """Postgres schema holding a workspace's tables.

    UUID workspace ids are shortened to base36; other ids are used as-is
    after dropping characters that are not valid in an identifier.
    """
    try:
        number = uuid.UUID(workspace_id).int
    except ValueError:
        return "workspace_" + re.sub(r"[^a-zA-Z0-9_]", "", workspace_id).lower()
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "workspace_" + ("".join(reversed(digits)) or "0")


def generate_foreign_key_name(table_name: str, column_name: str) -> str:
    digest = hashlib.sha256(f"{table_name}_{column_name}".encode()).hexdigest()
    return f"FK_{digest[:27]}"
