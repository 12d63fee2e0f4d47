"""Name and label validation for object definitions.

All checks are pure: they take the proposed strings (and, for collision
checks, the workspace snapshot) and return a list of MetadataIssue.
An empty list means valid. Callers turn issues into exceptions with
``schemaforge.errors.raise_for_issues``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable

from schemaforge.core.naming import IDENTIFIER_MAX_LENGTH, compute_name_from_label, normalize
from schemaforge.errors import IssueKind, MetadataIssue
from schemaforge.metadata.models import FieldMetadata

if TYPE_CHECKING:
    from schemaforge.cache.snapshot import MetadataSnapshot

_NAME_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")

RESERVED_NAMES = frozenset(
    {
        "event", "events",
        "field", "fields",
        "link", "links",
        "currency", "currencies",
        "fullName", "fullNames",
        "address", "addresses",
        "type", "types",
        "object", "objects",
        "index", "indexes",
        "relation", "relations",
    }
)


def _invalid(code: str, message: str, attr: str) -> MetadataIssue:
    return MetadataIssue(IssueKind.INVALID_IDENTIFIER, code, message, field=attr)


def validate_name(name: str | None, attr: str) -> list[MetadataIssue]:
    """Format rules for an object name: camelCase, short, not reserved."""
    if name is None or not name.strip():
        return [_invalid("NAME_EMPTY", f"{attr} cannot be empty", attr)]
    if len(name) > IDENTIFIER_MAX_LENGTH:
        return [
            _invalid(
                "NAME_TOO_LONG",
                f"{attr} '{name}' exceeds {IDENTIFIER_MAX_LENGTH} characters",
                attr,
            )
        ]
    if not _NAME_RE.match(name):
        return [
            _invalid(
                "NAME_NOT_CAMEL_CASE",
                f"{attr} '{name}' must be camelCase (letters and digits, starting lowercase)",
                attr,
            )
        ]
    if name in RESERVED_NAMES:
        return [_invalid("NAME_RESERVED", f"{attr} '{name}' is a reserved keyword", attr)]
    return []


def validate_label(label: str | None, attr: str) -> list[MetadataIssue]:
    if label is None or not label.strip():
        return [_invalid("LABEL_EMPTY", f"{attr} cannot be empty", attr)]
    if len(label) > IDENTIFIER_MAX_LENGTH:
        return [
            _invalid(
                "LABEL_TOO_LONG",
                f"{attr} '{label}' exceeds {IDENTIFIER_MAX_LENGTH} characters",
                attr,
            )
        ]
    return []


def validate_strings_are_different(
    values: tuple[str, str], message: str, attr: str
) -> list[MetadataIssue]:
    """Two strings must differ after trimming and lowercasing."""
    first, second = values
    if normalize(first) == normalize(second):
        return [
            MetadataIssue(IssueKind.DUPLICATE_IDENTIFIER, "SINGULAR_EQUALS_PLURAL", message, attr)
        ]
    return []


def validate_name_and_label_are_synced(label: str, name: str, attr: str) -> list[MetadataIssue]:
    computed = compute_name_from_label(label)
    if computed != name:
        return [
            MetadataIssue(
                IssueKind.LABEL_SYNC,
                "LABEL_NOT_SYNCED_WITH_NAME",
                f"Name '{name}' is not synced with label '{label}' (expected '{computed}')",
                attr,
            )
        ]
    return []


def validate_no_conflicting_object(
    name_singular: str,
    name_plural: str,
    snapshot: MetadataSnapshot,
    exclude_object_id: str | None = None,
) -> list[MetadataIssue]:
    """No other active object may use either name, in either form."""
    proposed = {normalize(name_singular), normalize(name_plural)}
    for obj in snapshot.active_objects():
        if obj.id == exclude_object_id:
            continue
        taken = {normalize(obj.name_singular), normalize(obj.name_plural)}
        if proposed & taken:
            return [
                MetadataIssue(
                    IssueKind.CONFLICTING_OBJECT,
                    "OBJECT_ALREADY_EXISTS",
                    f"Object already exists with name '{obj.name_singular}'/'{obj.name_plural}'",
                    "nameSingular",
                )
            ]
    return []


def validate_identifier_fields(
    fields: Iterable[FieldMetadata],
    label_identifier_field_id: str | None,
    image_identifier_field_id: str | None,
) -> list[MetadataIssue]:
    """Identifier field ids, when given, must belong to the object."""
    field_ids = {f.id for f in fields}
    issues = []
    for attr, field_id in (
        ("labelIdentifierFieldId", label_identifier_field_id),
        ("imageIdentifierFieldId", image_identifier_field_id),
    ):
        if field_id is not None and field_id not in field_ids:
            issues.append(
                MetadataIssue(
                    IssueKind.INVALID_IDENTIFIER_FIELD,
                    "IDENTIFIER_FIELD_NOT_FOUND",
                    f"{attr} '{field_id}' does not belong to this object",
                    attr,
                )
            )
    return issues


class NameValidator:
    """Checks a full proposed name/label set.

    ``validate`` covers formatting and pairwise distinctness within the
    object; ``validate_against`` adds the snapshot collision check.
    """

    def validate(
        self,
        *,
        name_singular: str,
        name_plural: str,
        label_singular: str,
        label_plural: str,
        is_label_synced_with_name: bool = False,
    ) -> list[MetadataIssue]:
        issues: list[MetadataIssue] = []
        issues += validate_name(name_singular, "nameSingular")
        issues += validate_name(name_plural, "namePlural")
        issues += validate_label(label_singular, "labelSingular")
        issues += validate_label(label_plural, "labelPlural")
        if issues:
            return issues

        issues += validate_strings_are_different(
            (name_singular, name_plural),
            "The singular and plural names cannot be the same for an object",
            "namePlural",
        )
        issues += validate_strings_are_different(
            (label_singular, label_plural),
            "The singular and plural labels cannot be the same for an object",
            "labelPlural",
        )
        if is_label_synced_with_name:
            issues += validate_name_and_label_are_synced(
                label_singular, name_singular, "labelSingular"
            )
            issues += validate_name_and_label_are_synced(label_plural, name_plural, "labelPlural")
        return issues

    def validate_against(
        self,
        snapshot: MetadataSnapshot,
        *,
        name_singular: str,
        name_plural: str,
        label_singular: str,
        label_plural: str,
        is_label_synced_with_name: bool = False,
        exclude_object_id: str | None = None,
    ) -> list[MetadataIssue]:
        issues = self.validate(
            name_singular=name_singular,
            name_plural=name_plural,
            label_singular=label_singular,
            label_plural=label_plural,
            is_label_synced_with_name=is_label_synced_with_name,
        )
        if issues:
            return issues
        return validate_no_conflicting_object(
            name_singular, name_plural, snapshot, exclude_object_id
        )
