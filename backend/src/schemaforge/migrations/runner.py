"""Migration runner.

Drives one plan through ``PENDING → APPLYING → APPLIED | FAILED``.
Steps are executed by the physical schema executor in plan order inside a
single transaction. Nothing is retried: a failed plan is reported to the
caller, who decides whether to start over from validation.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Awaitable, TypeVar

from schemaforge.errors import SchemaExecutionError
from schemaforge.migrations.executor import ExecutionResult, PhysicalSchemaExecutor
from schemaforge.migrations.types import MigrationPlan, MigrationStep

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlanState(Enum):
    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class PlanRun:
    """Audit record of one plan execution."""

    plan: MigrationPlan
    state: PlanState = PlanState.PENDING
    applied_steps: list[MigrationStep] = field(default_factory=list)
    error: SchemaExecutionError | None = None
    started_at: str | None = None
    finished_at: str | None = None


async def run_to_completion(aw: Awaitable[T]) -> T:
    """Await ``aw`` without letting a cancellation interrupt it.

    A cancellation arriving meanwhile is re-raised once ``aw`` finished.
    """
    task = asyncio.ensure_future(aw)
    cancelled = False
    while True:
        try:
            result = await asyncio.shield(task)
            break
        except asyncio.CancelledError:
            if task.done():
                raise
            cancelled = True
    if cancelled:
        raise asyncio.CancelledError()
    return result


class MigrationRunner:
    def __init__(self, executor: PhysicalSchemaExecutor, history_size: int = 100):
        self.executor = executor
        self.history: deque[PlanRun] = deque(maxlen=history_size)

    async def run(self, plan: MigrationPlan) -> list[MigrationStep]:
        """Apply ``plan`` and return the steps actually executed.

        Raises:
            SchemaExecutionError: If any step failed; the schema is unchanged.
        """
        run = PlanRun(plan=plan)
        self.history.append(run)

        if plan.is_empty:
            run.state = PlanState.APPLIED
            return []

        run.state = PlanState.APPLYING
        run.started_at = datetime.now(UTC).isoformat()
        logger.info(
            "Applying %d migration step(s) for workspace %s", len(plan.steps), plan.workspace_id
        )

        try:
            result: ExecutionResult = await run_to_completion(
                self.executor.execute(plan.workspace_id, plan)
            )
        finally:
            run.finished_at = datetime.now(UTC).isoformat()

        if not result.ok:
            run.state = PlanState.FAILED
            run.error = result.error
            raise result.error

        run.state = PlanState.APPLIED
        run.applied_steps = list(result.applied_steps)
        logger.info(
            "Applied %d migration step(s) for workspace %s",
            len(run.applied_steps),
            plan.workspace_id,
        )
        return run.applied_steps
