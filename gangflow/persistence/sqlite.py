"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import WorkflowDefinition, utcnow
from ._codec import dump_step_results, load_execution, to_timestamp
from .models import ExecutionStatus, WorkflowExecution
from .repository import WorkflowRepository

_EXECUTION_COLUMNS = (
    "id, workflow_id, user_id, trigger_data, status, current_step, step_results, "
    "error_message, created_at, completed_at, wait_until, version"
)


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_active INTEGER NOT NULL,
                definition TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                trigger_data TEXT,
                status TEXT NOT NULL,
                current_step INTEGER NOT NULL,
                step_results TEXT NOT NULL,
                error_message TEXT,
                created_at TEXT NOT NULL,
                completed_at TEXT,
                wait_until TEXT,
                version INTEGER NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Workflow definitions
    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflows (id, name, is_active, definition) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                is_active = excluded.is_active,
                definition = excluded.definition
            """,
            workflow.id,
            workflow.name,
            int(workflow.is_active),
            workflow.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT definition FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["definition"])

    async def list_workflows(
        self, active_only: bool = False
    ) -> list[WorkflowDefinition]:
        query = "SELECT definition FROM workflows"
        if active_only:
            query += " WHERE is_active = 1"
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY name")
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
    # Executions
    async def create_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_executions ({_EXECUTION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            execution.id,
            execution.workflow_id,
            execution.user_id,
            json.dumps(execution.trigger_data),
            execution.status.value,
            execution.current_step,
            dump_step_results(execution),
            execution.error_message,
            to_timestamp(execution.created_at),
            to_timestamp(execution.completed_at),
            to_timestamp(execution.wait_until),
            execution.version,
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        return load_execution(row) if row else None

    async def save_execution(
        self, execution: WorkflowExecution, expected_version: int
    ) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_executions
            SET status = ?, current_step = ?, step_results = ?, error_message = ?,
                completed_at = ?, wait_until = ?, version = ?
            WHERE id = ? AND version = ?
            """,
            execution.status.value,
            execution.current_step,
            dump_step_results(execution),
            execution.error_message,
            to_timestamp(execution.completed_at),
            to_timestamp(execution.wait_until),
            expected_version + 1,
            execution.id,
            expected_version,
        )
        if updated != 1:
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
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(ExecutionStatus(status).value)
        query = f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        rows = await asyncio.to_thread(
            self._fetchall, query + " ORDER BY created_at", *params
        )
        return [load_execution(r) for r in rows]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions "
            "WHERE status = ? AND wait_until IS NOT NULL AND wait_until <= ? "
            "ORDER BY wait_until",
            ExecutionStatus.RUNNING.value,
            to_timestamp(now),
        )
        return [load_execution(r) for r in rows]
