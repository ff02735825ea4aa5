"""Execution driver for gangflow workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from .contracts import StepBranch, StepSuspend, WorkflowDefinition, utcnow
from .customers import CustomerProfile, CustomerStore
from .exceptions import ExecutionConflict
from .persistence import (
    ExecutionStatus,
    StepRecord,
    WorkflowExecution,
    WorkflowRepository,
)
from .steps import StepExecutor

if TYPE_CHECKING:
    from .scheduler import ContinuationScheduler

logger = logging.getLogger(__name__)

# Steps that change the customer record; later steps must see the change.
_MUTATING_STEPS = {"tag", "update_user"}


class ExecutionDriver:
    """Walks an execution through its workflow's steps.

    ``execute_workflow`` is safe to call repeatedly: it resumes from the
    persisted ``current_step`` and does nothing once the execution has left
    the ``RUNNING`` state. Overlapping calls for one execution are
    serialised in-process and every write is a compare-and-set on the
    execution version, so a second process cannot advance the same step.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        customers: CustomerStore,
        step_executor: StepExecutor,
        scheduler: Optional["ContinuationScheduler"] = None,
    ) -> None:
        self._repository = repository
        self._customers = customers
        self._step_executor = step_executor
        self.scheduler = scheduler
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def execute_workflow(
        self,
        execution_id: str,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> WorkflowExecution | None:
        """Run ``execution_id`` until it completes, fails or suspends.

        An execution still waiting as of ``now`` (default: the current time)
        is left untouched and its continuation re-armed, so a late or
        duplicate timer cannot cut a later wait short. ``force`` resumes it
        regardless.
        """
        lock = self._locks.setdefault(execution_id, asyncio.Lock())
        self._lock_users[execution_id] = self._lock_users.get(execution_id, 0) + 1
        try:
            async with lock:
                return await self._run(execution_id, now or utcnow(), force)
        except ExecutionConflict as exc:
            logger.warning(f"{exc}; leaving execution to the other runner")
            return None
        finally:
            self._lock_users[execution_id] -= 1
            if not self._lock_users[execution_id]:
                del self._lock_users[execution_id]
                self._locks.pop(execution_id, None)

    async def _run(
        self, execution_id: str, now: datetime, force: bool
    ) -> WorkflowExecution | None:
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            logger.debug(f"Execution {execution_id} not found")
            return None
        if execution.status != ExecutionStatus.RUNNING:
            logger.debug(
                f"Execution {execution_id} is {execution.status.value}; nothing to do"
            )
            return execution
        if not force and execution.wait_until is not None and execution.wait_until > now:
            logger.debug(
                f"Execution {execution_id} is waiting until "
                f"{execution.wait_until.isoformat()}; not resuming yet"
            )
            if self.scheduler is not None:
                self.scheduler.schedule_continuation(execution.id, execution.wait_until)
            return execution

        workflow = await self._repository.get_workflow(execution.workflow_id)
        if workflow is None:
            return await self._fail(
                execution, f"Workflow {execution.workflow_id} not found"
            )
        user = await self._customers.get_customer(execution.user_id)
        if user is None:
            return await self._fail(execution, f"User {execution.user_id} not found")

        execution.wait_until = None
        if not workflow.steps:
            return await self._complete(execution, message="No steps to execute")

        try:
            return await self._run_steps(workflow, execution, user)
        except ExecutionConflict:
            raise
        except Exception as exc:
            logger.exception(
                f"Execution {execution.id} of workflow {workflow.id} failed"
            )
            return await self._fail(execution, str(exc) or type(exc).__name__)

    async def _run_steps(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        user: CustomerProfile,
    ) -> WorkflowExecution:
        """Run steps from ``execution.current_step`` onwards.

        Progress is saved after every step. When a condition step branches,
        ``current_step`` is saved as the branch target rather than the next
        step in list order, so a run interrupted right after the branch
        resumes at the target.
        """
        index = execution.current_step
        while index < len(workflow.steps):
            step = workflow.steps[index]
            result = await self._step_executor.execute_step(step, execution, user)

            next_index = index + 1
            branch_target: Optional[int] = None
            if isinstance(result, StepBranch):
                branch_target = workflow.step_index(result.next_step)
                if branch_target is not None:
                    next_index = branch_target

            execution.step_results.append(
                StepRecord(step_id=step.id, result=result, executed_at=utcnow())
            )
            execution.current_step = next_index
            if isinstance(result, StepSuspend):
                execution.wait_until = result.wait_until
            await self._save(execution)

            if isinstance(result, StepBranch):
                if branch_target is None:
                    logger.warning(
                        f"Step {step.id} of workflow {workflow.id} branched to "
                        f"unknown step {result.next_step!r}; ending execution {execution.id}"
                    )
                    break
                index = branch_target
                continue

            if isinstance(result, StepSuspend):
                self._suspend(execution, result)
                return execution

            if step.type in _MUTATING_STEPS:
                user = await self._customers.get_customer(execution.user_id) or user
            index += 1

        return await self._complete(execution)

    def _suspend(self, execution: WorkflowExecution, result: StepSuspend) -> None:
        logger.info(
            f"Execution {execution.id} waiting until {result.wait_until.isoformat()}"
        )
        if self.scheduler is None:
            logger.warning(
                f"No scheduler attached; execution {execution.id} resumes on the next sweep"
            )
            return
        self.scheduler.schedule_continuation(execution.id, result.wait_until)

    # ------------------------------------------------------------------
    async def _save(self, execution: WorkflowExecution) -> None:
        expected = execution.version
        if not await self._repository.save_execution(execution, expected):
            raise ExecutionConflict(execution.id, expected)

    async def _complete(
        self, execution: WorkflowExecution, message: Optional[str] = None
    ) -> WorkflowExecution:
        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utcnow()
        execution.wait_until = None
        if message:
            execution.error_message = message
        await self._save(execution)
        logger.info(f"Execution {execution.id} completed")
        return execution

    async def _fail(self, execution: WorkflowExecution, message: str) -> WorkflowExecution:
        execution.status = ExecutionStatus.FAILED
        execution.error_message = message
        execution.wait_until = None
        await self._save(execution)
        logger.error(f"Execution {execution.id} failed: {message}")
        return execution
