"""Trigger evaluation: deciding which events start which workflows."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from croniter import croniter

from .audience import AudienceResolver
from .conditions import evaluate_condition, needs_order_stats
from .contracts import (
    ConditionTrigger,
    EventTrigger,
    ScheduleTrigger,
    WorkflowDefinition,
    utcnow,
)
from .customers import CustomerStore
from .exceptions import GangflowError, UserNotInSegment, WorkflowNotFoundOrInactive
from .persistence import WorkflowExecution, WorkflowRepository
from .scheduler import ContinuationScheduler

logger = logging.getLogger(__name__)


class TriggerEvaluator:
    """Starts workflow executions from events, conditions and schedules."""

    def __init__(
        self,
        repository: WorkflowRepository,
        customers: CustomerStore,
        audience: AudienceResolver,
        scheduler: ContinuationScheduler,
    ) -> None:
        self._repository = repository
        self._customers = customers
        self._audience = audience
        self._scheduler = scheduler

    async def handle_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Trigger every active workflow listening for ``event_name``.

        A failure to trigger one workflow never prevents the others from
        being evaluated.
        """
        user_id = payload.get("user_id")
        workflows = await self._repository.list_workflows(active_only=True)
        for workflow in workflows:
            trigger = workflow.trigger
            if not isinstance(trigger, EventTrigger) or trigger.event != event_name:
                continue
            if not workflow.steps:
                logger.debug(f"Workflow {workflow.id} has no steps; not triggering")
                continue
            if not user_id:
                logger.debug(f"Event {event_name} carries no user_id; skipping")
                continue
            await self._trigger_isolated(workflow.id, str(user_id), payload)

    async def _trigger_isolated(
        self, workflow_id: str, user_id: str, payload: Dict[str, Any]
    ) -> Optional[WorkflowExecution]:
        try:
            return await self.trigger_workflow(workflow_id, user_id, payload)
        except (WorkflowNotFoundOrInactive, UserNotInSegment) as exc:
            logger.info(f"Not triggering workflow {workflow_id}: {exc}")
        except Exception:
            logger.exception(
                f"Failed to trigger workflow {workflow_id} for user {user_id}"
            )
        return None

    async def trigger_workflow(
        self,
        workflow_id: str,
        user_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """Create an execution of ``workflow_id`` for ``user_id``.

        The execution runs out of band; the created record is returned
        immediately.

        Raises:
            WorkflowNotFoundOrInactive: The workflow is missing or inactive.
            UserNotInSegment: The workflow targets a segment the user is not in.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None or not workflow.is_active:
            raise WorkflowNotFoundOrInactive(workflow_id)
        if workflow.segment_id and not await self._audience.is_user_in_segment(
            workflow.segment_id, user_id
        ):
            raise UserNotInSegment(user_id, workflow.segment_id)

        execution = WorkflowExecution(
            workflow_id=workflow.id,
            user_id=user_id,
            trigger_data=dict(payload or {}),
        )
        trigger = workflow.trigger
        delayed = isinstance(trigger, ScheduleTrigger) and trigger.schedule == "delay"
        if delayed:
            execution.wait_until = utcnow() + timedelta(minutes=trigger.delay or 0)

        await self._repository.create_execution(execution)
        logger.info(
            f"Triggered workflow {workflow.id} for user {user_id}: execution={execution.id}"
        )

        if delayed:
            self._scheduler.schedule_continuation(execution.id, execution.wait_until)
        else:
            self._scheduler.resume_soon(execution.id)
        return execution

    async def evaluate_condition_triggers(self, user_id: str) -> list[WorkflowExecution]:
        """Trigger active condition-based workflows whose condition holds for a user."""
        user = await self._customers.get_customer(user_id)
        if user is None:
            raise GangflowError(f"User {user_id} not found", {"user_id": user_id})

        started: list[WorkflowExecution] = []
        stats = None
        for workflow in await self._repository.list_workflows(active_only=True):
            trigger = workflow.trigger
            if not isinstance(trigger, ConditionTrigger) or not workflow.steps:
                continue
            if stats is None and needs_order_stats(trigger.condition.field):
                stats = await self._customers.get_order_stats(user_id)
            if not evaluate_condition(trigger.condition, user, stats):
                continue
            execution = await self._trigger_isolated(
                workflow.id, user_id, {"user_id": user_id, "trigger": "condition"}
            )
            if execution is not None:
                started.append(execution)
        return started

    async def launch_workflow(self, workflow_id: str) -> list[WorkflowExecution]:
        """Trigger ``workflow_id`` for its whole audience.

        Recipients come from the workflow's segment, or every opted-in,
        verified customer when it has none. Ineligible users are skipped.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None or not workflow.is_active:
            raise WorkflowNotFoundOrInactive(workflow_id)

        recipients = await self._audience.resolve_recipients(workflow.segment_id)
        started: list[WorkflowExecution] = []
        for recipient in recipients:
            execution = await self._trigger_isolated(
                workflow.id,
                recipient.id,
                {"user_id": recipient.id, "trigger": "schedule"},
            )
            if execution is not None:
                started.append(execution)
        logger.info(
            f"Launched workflow {workflow.id} for {len(started)} of {len(recipients)} recipient(s)"
        )
        return started

    async def run_due_schedules(self, now: Optional[datetime] = None) -> int:
        """Launch recurring workflows whose cron expression has fired.

        Returns:
            Number of workflows launched.
        """
        now = now or utcnow()
        launched = 0
        for workflow in await self._repository.list_workflows(active_only=True):
            trigger = workflow.trigger
            if not isinstance(trigger, ScheduleTrigger) or trigger.schedule != "recurring":
                continue
            if _next_fire(workflow, trigger) > now:
                continue
            try:
                await self.launch_workflow(workflow.id)
            except Exception:
                logger.exception(f"Recurring launch of workflow {workflow.id} failed")
                continue
            workflow.last_scheduled_at = now
            await self._repository.save_workflow(workflow)
            launched += 1
        return launched


def _next_fire(workflow: WorkflowDefinition, trigger: ScheduleTrigger) -> datetime:
    base = workflow.last_scheduled_at or workflow.created_at
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    return croniter(trigger.recurring_pattern, base).get_next(datetime)
