"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from ..contracts import WorkflowDefinition, utcnow
from .models import ExecutionStatus, WorkflowExecution
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(
        self, active_only: bool = False
    ) -> list[WorkflowDefinition]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.is_active or not active_only
        ]

    async def set_workflow_active(self, workflow_id: str, active: bool) -> bool:
        wf = self._workflows.get(workflow_id)
        if wf is None:
            return False
        wf.is_active = active
        wf.updated_at = utcnow()
        return True

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def save_execution(
        self, execution: WorkflowExecution, expected_version: int
    ) -> bool:
        stored = self._executions.get(execution.id)
        if stored is None or stored.version != expected_version:
            return False
        execution.version = expected_version + 1
        self._executions[execution.id] = execution.model_copy(deep=True)
        return True

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[WorkflowExecution]:
        return [
            execution.model_copy(deep=True)
            for execution in self._executions.values()
            if (workflow_id is None or execution.workflow_id == workflow_id)
            and (status is None or execution.status == status)
        ]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        return [
            execution.model_copy(deep=True)
            for execution in self._executions.values()
            if execution.status == ExecutionStatus.RUNNING
            and execution.wait_until is not None
            and execution.wait_until <= now
        ]
