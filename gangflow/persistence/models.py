"""Data models for persisted execution state."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_core import to_jsonable_python

from ..contracts import StepResult, utcnow


class ExecutionStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StepRecord(BaseModel):
    """Audit entry for one executed step."""

    step_id: str
    result: StepResult
    executed_at: datetime = Field(default_factory=utcnow)


class WorkflowExecution(BaseModel):
    """One run of a workflow for one customer."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    user_id: str
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step: int = 0
    step_results: list[StepRecord] = Field(default_factory=list)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    wait_until: Optional[datetime] = None
    version: int = 0

    @field_validator("trigger_data", mode="before")
    @classmethod
    def _jsonable_trigger_data(cls, value: Any) -> Any:
        # Stored as JSON and forwarded to webhooks, so datetimes, decimals
        # and similar values are reduced to their JSON form up front.
        if value is None:
            return {}
        return to_jsonable_python(value)

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING
