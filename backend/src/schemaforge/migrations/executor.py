"""Physical schema executor.

Applies a MigrationPlan to a workspace's schema through Alembic's
programmatic API: a MigrationContext bound to one connection, one
transaction for the whole plan. Any failing step rolls the transaction
back, so a plan is applied entirely or not at all. The blocking work runs
in a worker thread so other workspaces keep being served meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from schemaforge.core.naming import compute_workspace_schema
from schemaforge.errors import SchemaExecutionError
from schemaforge.migrations.types import MigrationPlan, MigrationStep

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of one plan execution: applied steps, or the error."""

    applied_steps: list[MigrationStep] = field(default_factory=list)
    error: SchemaExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class PhysicalSchemaExecutor(Protocol):
    async def execute(self, workspace_id: str, plan: MigrationPlan) -> ExecutionResult: ...


def default_schema_resolver(engine: Engine) -> Callable[[str], str | None]:
    """One Postgres schema per workspace; SQLite has only the main schema."""
    if engine.dialect.name == "postgresql":
        return compute_workspace_schema
    return lambda workspace_id: None


class SQLAlchemySchemaExecutor:
    """Runs plans against a SQLAlchemy engine using Alembic operations."""

    def __init__(
        self,
        engine: Engine,
        schema_resolver: Callable[[str], str | None] | None = None,
    ):
        self._engine = engine
        self._schema_for = schema_resolver or default_schema_resolver(engine)

    async def execute(self, workspace_id: str, plan: MigrationPlan) -> ExecutionResult:
        return await asyncio.to_thread(self._execute, workspace_id, plan)

    def _execute(self, workspace_id: str, plan: MigrationPlan) -> ExecutionResult:
        schema = self._schema_for(workspace_id)
        applied: list[MigrationStep] = []
        current: MigrationStep | None = None

        try:
            with self._engine.begin() as conn:
                if schema and conn.dialect.name == "postgresql":
                    conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
                op = Operations(MigrationContext.configure(conn))
                for step in plan.steps:
                    current = step
                    logger.debug("Workspace %s: %s", workspace_id, step.describe())
                    step.apply(op, schema)
                    applied.append(step)
        except (SQLAlchemyError, NotImplementedError) as exc:
            failed = current.describe() if current else None
            logger.error(
                "Migration for workspace %s failed at step '%s', rolled back: %s",
                workspace_id,
                failed,
                exc,
            )
            return ExecutionResult(
                error=SchemaExecutionError(
                    f"Schema migration failed at step '{failed}': {exc}", step=failed
                )
            )

        return ExecutionResult(applied_steps=applied)
