"""Migration step types.

Each step carries the minimal data needed to change the physical schema
and knows how to apply itself through Alembic's ``op`` API, bound to a
live connection by the executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import sqlalchemy as sa
from alembic.operations import Operations
from sqlalchemy.dialects import postgresql

from schemaforge.metadata.models import IndexMetadata


def _is_postgresql(op: Operations) -> bool:
    return op.get_bind().dialect.name == "postgresql"


@dataclass
class ColumnSpec:
    """Physical column derived from a field."""

    name: str
    storage_type: str
    nullable: bool = True
    primary_key: bool = False
    enum_name: str | None = None
    enum_values: list[str] | None = None

    def sa_type(self, postgres: bool) -> Any:
        """SQLAlchemy type for this column on the target dialect."""
        if self.storage_type == "ENUM":
            return sa.Enum(*(self.enum_values or []), name=self.enum_name)
        if self.storage_type == "ENUM_ARRAY":
            return postgresql.ARRAY(sa.Text()) if postgres else sa.JSON()
        if self.storage_type == "TSVECTOR":
            return postgresql.TSVECTOR() if postgres else sa.Text()
        return {
            "UUID": sa.Uuid(),
            "TEXT": sa.Text(),
            "REAL": sa.Float(),
            "BOOLEAN": sa.Boolean(),
            "TIMESTAMP": sa.DateTime(timezone=True),
            "JSON": sa.JSON(),
        }.get(self.storage_type, sa.Text())

    def to_column(self, postgres: bool, force_nullable: bool = False) -> sa.Column:
        return sa.Column(
            self.name,
            self.sa_type(postgres),
            primary_key=self.primary_key,
            nullable=(self.nullable or force_nullable) and not self.primary_key,
        )


@dataclass
class MigrationStep:
    """Base class for migration steps."""

    destructive: bool = False

    def apply(self, op: Operations, schema: str | None) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


@dataclass
class CreateTable(MigrationStep):
    table_name: str = ""
    columns: list[ColumnSpec] = field(default_factory=list)

    def apply(self, op: Operations, schema: str | None) -> None:
        postgres = _is_postgresql(op)
        op.create_table(
            self.table_name, *(c.to_column(postgres) for c in self.columns), schema=schema
        )

    def describe(self) -> str:
        return f"Create table '{self.table_name}' ({len(self.columns)} columns)"


@dataclass
class DropTable(MigrationStep):
    """Drop a table, then the enum types named after it."""

    table_name: str = ""
    enum_types: list[str] = field(default_factory=list)
    destructive: bool = True

    def apply(self, op: Operations, schema: str | None) -> None:
        # Tolerate a table already dropped by an earlier, half-committed attempt
        table = sa.Table(self.table_name, sa.MetaData(), schema=schema)
        op.execute(sa.schema.DropTable(table, if_exists=True))
        if not _is_postgresql(op):
            return
        prefix = f'"{schema}".' if schema else ""
        for enum_type in self.enum_types:
            op.execute(f'DROP TYPE IF EXISTS {prefix}"{enum_type}"')

    def describe(self) -> str:
        return f"Drop table '{self.table_name}'"


@dataclass
class RenameTable(MigrationStep):
    old_name: str = ""
    new_name: str = ""

    def apply(self, op: Operations, schema: str | None) -> None:
        op.rename_table(self.old_name, self.new_name, schema=schema)

    def describe(self) -> str:
        return f"Rename table '{self.old_name}' to '{self.new_name}'"


@dataclass
class AddColumn(MigrationStep):
    table_name: str = ""
    column: ColumnSpec = field(default_factory=lambda: ColumnSpec("", "TEXT"))

    def apply(self, op: Operations, schema: str | None) -> None:
        postgres = _is_postgresql(op)
        if postgres and self.column.storage_type == "ENUM":
            # add_column does not create the enum type the way create_table does
            self.column.sa_type(postgres).create(op.get_bind(), checkfirst=True)
        # SQLite cannot add a NOT NULL column without a constant default
        column = self.column.to_column(postgres, force_nullable=not postgres)
        op.add_column(self.table_name, column, schema=schema)

    def describe(self) -> str:
        return (
            f"Add column '{self.column.name}' ({self.column.storage_type}) "
            f"to '{self.table_name}'"
        )


@dataclass
class DropColumn(MigrationStep):
    table_name: str = ""
    column_name: str = ""
    destructive: bool = True

    def apply(self, op: Operations, schema: str | None) -> None:
        op.drop_column(self.table_name, self.column_name, schema=schema)

    def describe(self) -> str:
        return f"Drop column '{self.column_name}' from '{self.table_name}'"


@dataclass
class RenameColumn(MigrationStep):
    table_name: str = ""
    old_name: str = ""
    new_name: str = ""

    def apply(self, op: Operations, schema: str | None) -> None:
        op.alter_column(self.table_name, self.old_name, new_column_name=self.new_name, schema=schema)

    def describe(self) -> str:
        return f"Rename column '{self.old_name}' to '{self.new_name}' in '{self.table_name}'"


@dataclass
class AddRelation(MigrationStep):
    """Foreign key from a join column to the referenced table's id.

    ``create_column`` adds the join column first; it is False when the
    column already exists (re-pointing a renamed relation).
    """

    relation_id: str = ""
    table_name: str = ""
    column_name: str = ""
    referenced_table: str = ""
    constraint_name: str = ""
    on_delete: str = "CASCADE"
    create_column: bool = True

    def apply(self, op: Operations, schema: str | None) -> None:
        if self.create_column:
            op.add_column(
                self.table_name, sa.Column(self.column_name, sa.Uuid(), nullable=True), schema=schema
            )
        # SQLite cannot add constraints to an existing table
        if _is_postgresql(op):
            op.create_foreign_key(
                self.constraint_name,
                self.table_name,
                self.referenced_table,
                [self.column_name],
                ["id"],
                ondelete=self.on_delete,
                source_schema=schema,
                referent_schema=schema,
            )

    def describe(self) -> str:
        return (
            f"Add relation '{self.table_name}.{self.column_name}' -> "
            f"'{self.referenced_table}.id' (on delete {self.on_delete})"
        )


@dataclass
class DropRelation(MigrationStep):
    relation_id: str = ""
    table_name: str = ""
    column_name: str = ""
    constraint_name: str = ""
    drop_column: bool = True
    destructive: bool = True

    def apply(self, op: Operations, schema: str | None) -> None:
        # A retried delete finds parts already gone; skip what is missing
        inspector = sa.inspect(op.get_bind())
        if not inspector.has_table(self.table_name, schema=schema):
            return
        if _is_postgresql(op):
            foreign_keys = {fk["name"] for fk in inspector.get_foreign_keys(self.table_name, schema=schema)}
            if self.constraint_name in foreign_keys:
                op.drop_constraint(
                    self.constraint_name, self.table_name, type_="foreignkey", schema=schema
                )
        if self.drop_column:
            columns = {c["name"] for c in inspector.get_columns(self.table_name, schema=schema)}
            if self.column_name in columns:
                op.drop_column(self.table_name, self.column_name, schema=schema)

    def describe(self) -> str:
        suffix = " and its column" if self.drop_column else ""
        return f"Drop relation '{self.table_name}.{self.column_name}'{suffix}"


@dataclass
class RecomputeEnum(MigrationStep):
    """Rename enum types whose names embed a renamed table name."""

    table_name: str = ""
    renames: list[tuple[str, str]] = field(default_factory=list)

    def apply(self, op: Operations, schema: str | None) -> None:
        # Only PostgreSQL has named enum types
        if not _is_postgresql(op):
            return
        prefix = f'"{schema}".' if schema else ""
        for old_name, new_name in self.renames:
            op.execute(f'ALTER TYPE {prefix}"{old_name}" RENAME TO "{new_name}"')

    def describe(self) -> str:
        return f"Recompute {len(self.renames)} enum type name(s) for '{self.table_name}'"


@dataclass
class CreateIndex(MigrationStep):
    index: IndexMetadata = field(default_factory=lambda: IndexMetadata("", "", ()))

    def apply(self, op: Operations, schema: str | None) -> None:
        kwargs = {}
        if self.index.index_type == "GIN":
            kwargs["postgresql_using"] = "gin"
        op.create_index(
            self.index.name, self.index.table_name, list(self.index.columns), schema=schema, **kwargs
        )

    def describe(self) -> str:
        return (
            f"Create {self.index.index_type} index '{self.index.name}' on "
            f"'{self.index.table_name}' ({', '.join(self.index.columns)})"
        )


@dataclass
class DropIndex(MigrationStep):
    name: str = ""
    table_name: str = ""

    def apply(self, op: Operations, schema: str | None) -> None:
        op.drop_index(self.name, table_name=self.table_name, schema=schema)

    def describe(self) -> str:
        return f"Drop index '{self.name}' on '{self.table_name}'"


@dataclass
class MigrationPlan:
    """Ordered steps for one workspace, plus post-commit flags."""

    workspace_id: str
    steps: list[MigrationStep] = field(default_factory=list)
    # Saved views embed labels and icons; set when they need re-syncing
    views_need_update: bool = False

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def describe(self) -> list[str]:
        return [s.describe() for s in self.steps]
