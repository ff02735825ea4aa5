"""Wiring of the workflow engine components."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .audience import AudienceResolver
from .config import GangflowConfig, load_config
from .customers import CustomerStore, get_customer_store
from .dispatch import TriggerEvaluator
from .events import EventTriggers
from .execute import ExecutionDriver
from .jobs import check_abandoned_carts, check_inactive_customers
from .persistence import WorkflowExecution, WorkflowRepository, get_repository
from .scheduler import ContinuationScheduler
from .steps import StepExecutor

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Builds and connects the trigger, driver, step and scheduler layers.

    Example:
        engine = WorkflowEngine()
        await engine.events.user_registered("user-1")
        await engine.wait_idle()
    """

    def __init__(
        self,
        repository: Optional[WorkflowRepository] = None,
        customers: Optional[CustomerStore] = None,
        config: Optional[GangflowConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or load_config()
        self.repository = repository or get_repository(config=self.config)
        self.customers = customers or get_customer_store(config=self.config)

        self.audience = AudienceResolver(self.customers)
        self.step_executor = StepExecutor(self.customers, self.config, http_client)
        self.driver = ExecutionDriver(self.repository, self.customers, self.step_executor)
        self.scheduler = ContinuationScheduler(self.driver.execute_workflow, self.repository)
        self.driver.scheduler = self.scheduler
        self.triggers = TriggerEvaluator(
            self.repository, self.customers, self.audience, self.scheduler
        )
        self.events = EventTriggers(self.triggers)

    async def trigger_workflow(
        self, workflow_id: str, user_id: str, payload: Optional[Dict[str, Any]] = None
    ) -> WorkflowExecution:
        return await self.triggers.trigger_workflow(workflow_id, user_id, payload)

    async def handle_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        await self.triggers.handle_event(event_name, payload)

    async def execute_workflow(
        self, execution_id: str, force: bool = False
    ) -> WorkflowExecution | None:
        return await self.driver.execute_workflow(execution_id, force=force)

    async def tick(self) -> tuple[int, int]:
        """One scheduler pass: resume due waits and launch due recurring workflows.

        Returns:
            Number of resumed executions and number of launched workflows.
        """
        resumed = await self.scheduler.sweep()
        launched = await self.triggers.run_due_schedules()
        return resumed, launched

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Run the durable scheduler loop."""
        await self.scheduler.run(
            self.config.scheduler.sweep_interval_seconds,
            lifespan=lifespan,
            on_tick=self.triggers.run_due_schedules,
        )

    async def check_abandoned_carts(self) -> int:
        return await check_abandoned_carts(self.customers, self.events, self.config)

    async def check_inactive_customers(self) -> int:
        return await check_inactive_customers(self.customers, self.events, self.config)

    async def wait_idle(self) -> None:
        """Wait for in-flight executions started by triggers and timers."""
        await self.scheduler.wait_idle()

    def close(self) -> None:
        self.scheduler.close()
