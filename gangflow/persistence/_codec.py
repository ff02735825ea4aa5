"""Row <-> model conversion shared by the SQL backends."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping

from .models import WorkflowExecution


def to_timestamp(value: datetime | None) -> str | None:
    """Render a datetime as a sortable UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def dump_step_results(execution: WorkflowExecution) -> str:
    return json.dumps([r.model_dump(mode="json") for r in execution.step_results])


def load_execution(row: Mapping[str, Any]) -> WorkflowExecution:
    trigger_data = row["trigger_data"]
    step_results = row["step_results"]
    return WorkflowExecution.model_validate(
        {
            "id": row["id"],
            "workflow_id": row["workflow_id"],
            "user_id": row["user_id"],
            "trigger_data": (
                json.loads(trigger_data) if isinstance(trigger_data, str) else trigger_data
            )
            or {},
            "status": row["status"],
            "current_step": row["current_step"],
            "step_results": (
                json.loads(step_results) if isinstance(step_results, str) else step_results
            )
            or [],
            "error_message": row["error_message"],
            "created_at": row["created_at"],
            "completed_at": row["completed_at"],
            "wait_until": row["wait_until"],
            "version": row["version"],
        }
    )
