"""Relation metadata implied by object changes."""

from schemaforge.relations.manager import (
    ForeignKeyRef,
    RelationDelta,
    RelationManager,
    RelationRename,
)

__all__ = ["ForeignKeyRef", "RelationDelta", "RelationManager", "RelationRename"]
