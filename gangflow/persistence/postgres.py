"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import asyncpg

from ..contracts import WorkflowDefinition, utcnow
from ._codec import dump_step_results, load_execution
from .models import ExecutionStatus, WorkflowExecution
from .repository import WorkflowRepository

_EXECUTION_COLUMNS = (
    "id, workflow_id, user_id, trigger_data, status, current_step, step_results, "
    "error_message, created_at, completed_at, wait_until, version"
)


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                definition JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                trigger_data JSONB,
                status TEXT NOT NULL,
                current_step INTEGER NOT NULL,
                step_results JSONB NOT NULL,
                error_message TEXT,
                created_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                wait_until TIMESTAMPTZ,
                version INTEGER NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflows (id, name, is_active, definition)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    is_active = EXCLUDED.is_active,
                    definition = EXCLUDED.definition
                """,
                workflow.id,
                workflow.name,
                workflow.is_active,
                workflow.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT definition FROM workflows WHERE id = $1", workflow_id
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["definition"])

    async def list_workflows(
        self, active_only: bool = False
    ) -> list[WorkflowDefinition]:
        query = "SELECT definition FROM workflows"
        if active_only:
            query += " WHERE is_active"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query + " ORDER BY name")
        finally:
            await conn.close()
        return [WorkflowDefinition.model_validate_json(r["definition"]) for r in rows]

    async def set_workflow_active(self, workflow_id: str, active: bool) -> bool:
        workflow = await self.get_workflow(workflow_id)
        if workflow is None:
            return False
        workflow.is_active = active
        workflow.updated_at = utcnow()
        await self.save_workflow(workflow)
        return True

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO workflow_executions ({_EXECUTION_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)",
                execution.id,
                execution.workflow_id,
                execution.user_id,
                json.dumps(execution.trigger_data),
                execution.status.value,
                execution.current_step,
                dump_step_results(execution),
                execution.error_message,
                execution.created_at,
                execution.completed_at,
                execution.wait_until,
                execution.version,
            )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        return load_execution(row) if row else None

    async def save_execution(
        self, execution: WorkflowExecution, expected_version: int
    ) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE workflow_executions
                SET status = $1, current_step = $2, step_results = $3,
                    error_message = $4, completed_at = $5, wait_until = $6,
                    version = $7
                WHERE id = $8 AND version = $9
                """,
                execution.status.value,
                execution.current_step,
                dump_step_results(execution),
                execution.error_message,
                execution.completed_at,
                execution.wait_until,
                expected_version + 1,
                execution.id,
                expected_version,
            )
        finally:
            await conn.close()
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        if result.split()[-1] != "1":
            return False
        execution.version = expected_version + 1
        return True

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[WorkflowExecution]:
        clauses: list[str] = []
        params: list[Any] = []
        if workflow_id is not None:
            params.append(workflow_id)
            clauses.append(f"workflow_id = ${len(params)}")
        if status is not None:
            params.append(ExecutionStatus(status).value)
            clauses.append(f"status = ${len(params)}")
        query = f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        conn = await self._connect()
        try:
            rows = await conn.fetch(query + " ORDER BY created_at", *params)
        finally:
            await conn.close()
        return [load_execution(r) for r in rows]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions "
                "WHERE status = $1 AND wait_until IS NOT NULL AND wait_until <= $2 "
                "ORDER BY wait_until",
                ExecutionStatus.RUNNING.value,
                now,
            )
        finally:
            await conn.close()
        return [load_execution(r) for r in rows]
