"""Post-commit work: collaborator calls made after a mutation committed.

These calls never roll back the schema change. Each is retried a few
times; calls still failing are logged and kept, at most ``max_pending`` of
them, so they can be replayed later with
:meth:`PostCommitDispatcher.retry_pending`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

SyncFn = Callable[..., Awaitable[Any]]


@dataclass
class PendingSync:
    name: str
    fn: SyncFn
    args: tuple[Any, ...]
    last_error: str


class PostCommitDispatcher:
    def __init__(self, attempts: int = 3, wait_seconds: float = 0.5, max_pending: int = 100):
        self.attempts = max(1, attempts)
        self.wait_seconds = wait_seconds
        self.max_pending = max(1, max_pending)
        self.pending: list[PendingSync] = []

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.wait_seconds, max=10 * self.wait_seconds),
            reraise=True,
        )

    async def _call(self, name: str, fn: SyncFn, args: tuple[Any, ...]) -> str | None:
        try:
            async for attempt in self._retrying():
                with attempt:
                    await fn(*args)
        except Exception as e:
            return str(e) or type(e).__name__
        return None

    async def dispatch(self, name: str, fn: SyncFn, *args: Any) -> bool:
        """Run ``fn(*args)`` with retries. Returns False if it kept failing."""
        error = await self._call(name, fn, args)
        if error is None:
            return True
        logger.error(
            "Post-commit task '%s' failed after %d attempt(s): %s", name, self.attempts, error
        )
        self._queue(PendingSync(name=name, fn=fn, args=args, last_error=error))
        return False

    def _queue(self, task: PendingSync) -> None:
        # The same call queued twice only needs replaying once
        self.pending = [
            p for p in self.pending if not (p.name == task.name and p.args == task.args)
        ]
        self.pending.append(task)
        while len(self.pending) > self.max_pending:
            dropped = self.pending.pop(0)
            logger.warning(
                "Post-commit queue full (%d), dropping '%s': %s",
                self.max_pending,
                dropped.name,
                dropped.last_error,
            )

    async def retry_pending(self) -> int:
        """Replay failed tasks once more. Returns how many still fail."""
        queued, self.pending = self.pending, []
        for task in queued:
            error = await self._call(task.name, task.fn, task.args)
            if error is not None:
                logger.warning("Post-commit task '%s' still failing: %s", task.name, error)
                task.last_error = error
                self._queue(task)
        return len(self.pending)
