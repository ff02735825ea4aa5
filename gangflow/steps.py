"""Step execution for gangflow workflows."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import httpx
from pydantic_core import to_jsonable_python

from .conditions import evaluate_condition, needs_order_stats
from .config import GangflowConfig
from .contracts import (
    ConditionStep,
    EmailStep,
    SmsStep,
    StepBranch,
    StepCompleted,
    StepDefinition,
    StepResult,
    StepSuspend,
    TagStep,
    UpdateUserStep,
    WaitStep,
    WebhookStep,
    utcnow,
)
from .customers import CustomerProfile, CustomerStore, MessageSend
from .exceptions import StepFailed
from .persistence.models import WorkflowExecution

logger = logging.getLogger(__name__)


class StepExecutor:
    """Performs the side effect of a single workflow step."""

    def __init__(
        self,
        customers: CustomerStore,
        config: Optional[GangflowConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._customers = customers
        self._config = config or GangflowConfig()
        self._http_client = http_client
        self._handlers: dict[
            str,
            Callable[[StepDefinition, WorkflowExecution, CustomerProfile], Awaitable[StepResult]],
        ] = {
            "email": self._send_email,
            "sms": self._send_sms,
            "wait": self._wait,
            "condition": self._evaluate_condition,
            "webhook": self._call_webhook,
            "tag": self._apply_tags,
            "update_user": self._update_user,
        }

    async def execute_step(
        self,
        step: StepDefinition,
        execution: WorkflowExecution,
        user: CustomerProfile,
    ) -> StepResult:
        """Run ``step`` for ``user`` and describe what the driver does next."""
        handler = self._handlers.get(step.type)
        if handler is None:
            raise ValueError(f"Unknown step type: {step.type}")
        logger.debug(
            f"Executing step {step.id} ({step.type}) for execution={execution.id}"
        )
        return await handler(step, execution, user)

    # ------------------------------------------------------------------
    async def _send_email(
        self, step: EmailStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        if not user.marketing_opt_in:
            return StepCompleted(
                status="skipped", reason="User has not opted in to marketing emails"
            )

        settings = step.settings
        sender_name = settings.sender_name or self._config.email.sender_name
        sender_email = settings.sender_email or self._config.email.sender_email
        send = await self._customers.record_send(
            MessageSend(
                channel="email",
                user_id=user.id,
                recipient=user.email,
                subject=settings.subject,
                content=settings.content,
                sender=f"{sender_name} <{sender_email}>",
                workflow_id=execution.workflow_id,
                execution_id=execution.id,
            )
        )
        logger.info(f"Sent workflow email {send.id} to {user.email}")
        return StepCompleted(
            status="sent", details={"send_id": send.id, "recipient": user.email}
        )

    async def _send_sms(
        self, step: SmsStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        if not user.sms_opt_in or not user.phone:
            return StepCompleted(
                status="skipped",
                reason="User has not opted in to SMS or has no phone number",
            )

        send = await self._customers.record_send(
            MessageSend(
                channel="sms",
                user_id=user.id,
                recipient=user.phone,
                content=step.settings.message,
                workflow_id=execution.workflow_id,
                execution_id=execution.id,
            )
        )
        logger.info(f"Sent workflow SMS {send.id} to {user.phone}")
        return StepCompleted(
            status="sent", details={"send_id": send.id, "recipient": user.phone}
        )

    async def _wait(
        self, step: WaitStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        return StepSuspend(wait_until=step.settings.resolve(utcnow()))

    async def _evaluate_condition(
        self, step: ConditionStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        condition = step.settings.condition
        stats = None
        if needs_order_stats(condition.field):
            stats = await self._customers.get_order_stats(user.id)
        condition_met = evaluate_condition(condition, user, stats)

        if step.condition_steps is not None:
            target = step.condition_steps.target(condition_met)
            if target is not None:
                return StepBranch(next_step=target, condition_met=condition_met)
        return StepCompleted(status="evaluated", condition_met=condition_met)

    async def _call_webhook(
        self, step: WebhookStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        settings = step.settings
        body = to_jsonable_python(
            {
                **settings.payload,
                "user": {"id": user.id, "email": user.email, "name": user.name},
                "execution": {
                    "id": execution.id,
                    "workflow_id": execution.workflow_id,
                    "trigger_data": execution.trigger_data,
                },
            }
        )

        error: Optional[str] = None
        status_code: Optional[int] = None
        try:
            response = await self._request(
                settings.method.upper(), settings.url, settings.headers, body
            )
            status_code = response.status_code
            if not response.is_success:
                error = f"Webhook returned HTTP {response.status_code}"
        except httpx.HTTPError as exc:
            error = f"Webhook request failed: {exc}"

        if error is None:
            return StepCompleted(status="success", details={"status_code": status_code})

        logger.warning(f"Webhook step {step.id} failed for execution={execution.id}: {error}")
        if not settings.continue_on_error:
            raise StepFailed(error, {"step_id": step.id, "status_code": status_code})
        return StepCompleted(
            status="error", error=error, details={"status_code": status_code}
        )

    async def _request(
        self, method: str, url: str, headers: dict[str, str], body: dict
    ) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, headers=headers, json=body)
        async with httpx.AsyncClient(timeout=self._config.webhook.timeout_seconds) as client:
            return await client.request(method, url, headers=headers, json=body)

    async def _apply_tags(
        self, step: TagStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        settings = step.settings
        if settings.action == "remove":
            tags = await self._customers.remove_tags(user.id, settings.tags)
        else:
            tags = await self._customers.add_tags(user.id, settings.tags)
        return StepCompleted(
            status="success", details={"action": settings.action, "tags": tags}
        )

    async def _update_user(
        self, step: UpdateUserStep, execution: WorkflowExecution, user: CustomerProfile
    ) -> StepResult:
        fields = step.settings.fields
        await self._customers.update_customer(user.id, fields)
        return StepCompleted(status="success", details={"updated": sorted(fields)})
