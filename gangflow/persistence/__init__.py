"""Storage for workflow definitions and their executions.

The backend is chosen from a database URL:

- no URL or ``memory://``: :class:`InMemoryWorkflowRepository`
- ``sqlite://<path>``: :class:`SQLiteWorkflowRepository`
- ``postgres://...`` or ``postgresql://...``: :class:`PostgresWorkflowRepository`
"""

from __future__ import annotations

from typing import Optional

from ..config import GangflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import ExecutionStatus, StepRecord, WorkflowExecution
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def open_repository(database_url: Optional[str]) -> WorkflowRepository:
    """Build a new repository for ``database_url``."""
    if not database_url or database_url == "memory://":
        return InMemoryWorkflowRepository()

    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(location)
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[GangflowConfig] = None
) -> WorkflowRepository:
    """Return the process-wide repository, creating it on first use.

    Without arguments the URL comes from :func:`load_config`, which already
    applies the ``GANGFLOW_DATABASE_URL`` and ``DATABASE_URL`` overrides.
    Passing ``database_url`` or ``config`` replaces the cached instance.
    """

    global _repository_instance
    if _repository_instance is None or database_url or config is not None:
        url = database_url or (config or load_config()).database_url
        _repository_instance = open_repository(url)
    return _repository_instance


__all__ = [
    "ExecutionStatus",
    "InMemoryWorkflowRepository",
    "PostgresWorkflowRepository",
    "SQLiteWorkflowRepository",
    "StepRecord",
    "WorkflowExecution",
    "WorkflowRepository",
    "get_repository",
    "open_repository",
]
