"""Continuation scheduling for suspended executions."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .contracts import utcnow
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


class ContinuationScheduler:
    """Arranges for suspended executions to resume at or after a target time.

    In-process timers give prompt resumption but are lost on restart; the
    ``sweep`` pass picks up every RUNNING execution whose persisted
    ``wait_until`` has passed, so periodic sweeping makes waits durable.
    Firing twice for one execution is harmless because the driver ignores
    executions that are no longer RUNNING or still waiting, and serialises
    overlapping calls.
    """

    def __init__(
        self,
        resume: Callable[..., Awaitable[Any]],
        repository: WorkflowRepository,
    ) -> None:
        self._resume = resume
        self._repository = repository
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> list[str]:
        """Execution ids with an armed in-process timer."""
        return list(self._timers)

    def schedule_continuation(self, execution_id: str, wait_until: datetime) -> None:
        """Resume ``execution_id`` once ``wait_until`` has passed."""
        delay = (wait_until - utcnow()).total_seconds()
        if delay <= 0:
            self.resume_soon(execution_id)
            return

        existing = self._timers.pop(execution_id, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[execution_id] = loop.call_later(delay, self._fire, execution_id)
        logger.debug(f"Execution {execution_id} scheduled to resume in {delay:.1f}s")

    def resume_soon(self, execution_id: str) -> asyncio.Task:
        """Resume ``execution_id`` in a background task."""
        task = asyncio.get_running_loop().create_task(self._run_resume(execution_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _fire(self, execution_id: str) -> None:
        self._timers.pop(execution_id, None)
        self.resume_soon(execution_id)

    async def _run_resume(
        self, execution_id: str, now: Optional[datetime] = None
    ) -> None:
        try:
            await self._resume(execution_id, now=now)
        except Exception:
            logger.exception(f"Resuming execution {execution_id} failed")

    async def wait_idle(self) -> None:
        """Wait until no resumption task is outstanding.

        Timers that have not fired yet are not waited for.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Resume every RUNNING execution whose wait has elapsed as of ``now``.

        Returns:
            Number of executions resumed.
        """
        now = now or utcnow()
        due = await self._repository.list_due_executions(now)
        for execution in due:
            timer = self._timers.pop(execution.id, None)
            if timer is not None:
                timer.cancel()
            await self._run_resume(execution.id, now)
        if due:
            logger.info(f"Sweep resumed {len(due)} execution(s)")
        return len(due)

    async def run(
        self,
        interval: float,
        lifespan: Optional[float] = None,
        on_tick: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        """Sweep every ``interval`` seconds.

        Args:
            interval: Seconds between sweeps.
            lifespan: Maximum time in seconds to keep running. If None, runs indefinitely.
            on_tick: Optional coroutine function awaited after each sweep.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        while True:
            await self.sweep()
            if on_tick is not None:
                await on_tick()
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break
            await asyncio.sleep(interval)

    def close(self) -> None:
        """Cancel all armed timers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
