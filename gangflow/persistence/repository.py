"""Repository abstraction for workflow definitions and execution state."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import WorkflowDefinition
from .models import ExecutionStatus, WorkflowExecution


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        """Insert or replace a workflow definition."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow definition by id."""

    async def list_workflows(
        self, active_only: bool = False
    ) -> list[WorkflowDefinition]:
        """Return stored workflow definitions."""

    async def set_workflow_active(self, workflow_id: str, active: bool) -> bool:
        """Flip the active flag. Returns ``False`` for unknown workflows."""

    async def create_execution(self, execution: WorkflowExecution) -> None:
        """Persist a new execution."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def save_execution(
        self, execution: WorkflowExecution, expected_version: int
    ) -> bool:
        """Compare-and-set write of an execution.

        The write only happens when the stored version equals
        ``expected_version``; on success the stored version becomes
        ``expected_version + 1`` and ``execution.version`` is updated.
        """

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[WorkflowExecution]:
        """Return executions, optionally filtered."""

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        """Return RUNNING executions whose ``wait_until`` has passed."""
