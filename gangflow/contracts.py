"""Workflow definition contracts for gangflow automations."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from croniter import croniter
from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    """Timezone-aware current time used throughout the engine."""
    return datetime.now(timezone.utc)


class Condition(BaseModel):
    """A ``field operator value`` comparison against a customer."""

    field: str
    operator: str
    value: Any = None


# ----------------------------------------------------------------------
# Triggers


class EventTrigger(BaseModel):
    """Start a run when a named storefront event fires."""

    type: Literal["event"] = "event"
    event: str


class ScheduleTrigger(BaseModel):
    """Start runs for the workflow audience on a schedule."""

    type: Literal["schedule"] = "schedule"
    schedule: Literal["immediate", "delay", "recurring"] = "immediate"
    delay: Optional[int] = Field(default=None, description="Delay in minutes")
    recurring_pattern: Optional[str] = Field(
        default=None, description="Cron expression"
    )

    @model_validator(mode="after")
    def _check_schedule(self) -> "ScheduleTrigger":
        if self.schedule == "delay" and (self.delay is None or self.delay < 0):
            raise ValueError("Delay schedule requires a non-negative delay")
        if self.schedule == "recurring":
            if not self.recurring_pattern or not croniter.is_valid(
                self.recurring_pattern
            ):
                raise ValueError(
                    f"Invalid cron expression: {self.recurring_pattern!r}"
                )
        return self


class ConditionTrigger(BaseModel):
    """Start a run when a customer matches a condition."""

    type: Literal["condition"] = "condition"
    condition: Condition


Trigger = Annotated[
    Union[EventTrigger, ScheduleTrigger, ConditionTrigger],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Steps


class EmailSettings(BaseModel):
    subject: str = ""
    content: str = ""
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None


class SmsSettings(BaseModel):
    message: str = ""


_WAIT_UNITS = {"minutes": 1, "hours": 60, "days": 60 * 24}


class WaitSettings(BaseModel):
    duration: float = 60
    unit: Literal["minutes", "hours", "days"] = "minutes"
    until: Optional[datetime] = None

    def resolve(self, now: datetime) -> datetime:
        """Return the absolute time the wait ends."""
        if self.until is not None:
            until = self.until
            if until.tzinfo is None:
                until = until.replace(tzinfo=timezone.utc)
            return until
        return now + timedelta(minutes=self.duration * _WAIT_UNITS[self.unit])


class ConditionSettings(BaseModel):
    condition: Condition


class ConditionBranches(BaseModel):
    """Step ids to jump to depending on the condition outcome."""

    true: Optional[str] = None
    false: Optional[str] = None

    def target(self, condition_met: bool) -> Optional[str]:
        return self.true if condition_met else self.false


class WebhookSettings(BaseModel):
    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict)
    continue_on_error: bool = True


class TagSettings(BaseModel):
    action: Literal["add", "remove"] = "add"
    tags: List[str] = Field(default_factory=list)


class UpdateUserSettings(BaseModel):
    fields: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fold_single_field(cls, data: Any) -> Any:
        # Older definitions carry a single ``field``/``value`` pair.
        if isinstance(data, dict) and "field" in data:
            data = dict(data)
            field = data.pop("field")
            value = data.pop("value", None)
            fields = dict(data.get("fields") or {})
            if field:
                fields[field] = value
            data["fields"] = fields
        return data


class _StepBase(BaseModel):
    id: str
    name: Optional[str] = None


class EmailStep(_StepBase):
    type: Literal["email"] = "email"
    settings: EmailSettings = Field(default_factory=EmailSettings)


class SmsStep(_StepBase):
    type: Literal["sms"] = "sms"
    settings: SmsSettings = Field(default_factory=SmsSettings)


class WaitStep(_StepBase):
    type: Literal["wait"] = "wait"
    settings: WaitSettings = Field(default_factory=WaitSettings)


class ConditionStep(_StepBase):
    type: Literal["condition"] = "condition"
    settings: ConditionSettings
    condition_steps: Optional[ConditionBranches] = None


class WebhookStep(_StepBase):
    type: Literal["webhook"] = "webhook"
    settings: WebhookSettings


class TagStep(_StepBase):
    type: Literal["tag"] = "tag"
    settings: TagSettings = Field(default_factory=TagSettings)


class UpdateUserStep(_StepBase):
    type: Literal["update_user"] = "update_user"
    settings: UpdateUserSettings = Field(default_factory=UpdateUserSettings)


StepDefinition = Annotated[
    Union[
        EmailStep,
        SmsStep,
        WaitStep,
        ConditionStep,
        WebhookStep,
        TagStep,
        UpdateUserStep,
    ],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Step results


class StepCompleted(BaseModel):
    """The step ran to completion in the current tick."""

    kind: Literal["completed"] = "completed"
    status: Literal["sent", "skipped", "success", "error", "evaluated"]
    reason: Optional[str] = None
    error: Optional[str] = None
    condition_met: Optional[bool] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class StepBranch(BaseModel):
    """Jump to an explicit step id."""

    kind: Literal["branch"] = "branch"
    next_step: str
    condition_met: bool


class StepSuspend(BaseModel):
    """Park the execution until ``wait_until``."""

    kind: Literal["wait"] = "wait"
    wait: Literal[True] = True
    wait_until: datetime


StepResult = Annotated[
    Union[StepCompleted, StepBranch, StepSuspend],
    Field(discriminator="kind"),
]


# ----------------------------------------------------------------------
# Workflow


class WorkflowDefinition(BaseModel):
    """A named automation: a trigger plus an ordered list of steps."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    trigger: Trigger
    steps: List[StepDefinition] = Field(default_factory=list)
    segment_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_scheduled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id {step.id!r}")
            seen.add(step.id)
        return self

    def step_index(self, step_id: str) -> Optional[int]:
        """Return the position of ``step_id`` or ``None`` when absent."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None
