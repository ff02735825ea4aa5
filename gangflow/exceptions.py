"""Exceptions raised by the gangflow engine."""

from __future__ import annotations

from typing import Any


class GangflowError(Exception):
    """Base exception for all gangflow errors.

    Attributes:
        details: Arbitrary key/value context about the error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class WorkflowNotFoundOrInactive(GangflowError):
    """The workflow does not exist or has been deactivated."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"Workflow {workflow_id} not found or inactive",
            {"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class UserNotInSegment(GangflowError):
    """The customer is not a member of the workflow's segment."""

    def __init__(self, user_id: str, segment_id: str) -> None:
        super().__init__(
            f"User {user_id} is not in segment {segment_id}",
            {"user_id": user_id, "segment_id": segment_id},
        )
        self.user_id = user_id
        self.segment_id = segment_id


class StepFailed(GangflowError):
    """A step failed in a way that must abort the execution."""


class ExecutionConflict(GangflowError):
    """Another writer advanced the execution first."""

    def __init__(self, execution_id: str, expected_version: int) -> None:
        super().__init__(
            f"Execution {execution_id} was modified concurrently "
            f"(expected version {expected_version})",
            {"execution_id": execution_id, "expected_version": expected_version},
        )
        self.execution_id = execution_id
        self.expected_version = expected_version
