"""Workflow definition parsing and validation."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from gangflow.contracts import (
    ConditionStep,
    EmailStep,
    ScheduleTrigger,
    StepBranch,
    StepCompleted,
    StepResult,
    StepSuspend,
    UpdateUserStep,
    WaitSettings,
    WorkflowDefinition,
)


def _definition(steps, trigger=None) -> dict:
    return {
        "name": "Welcome series",
        "trigger": trigger or {"type": "event", "event": "user_registered"},
        "steps": steps,
    }


def test_steps_parse_into_typed_variants():
    wf = WorkflowDefinition.model_validate(
        _definition(
            [
                {"id": "s1", "type": "email", "settings": {"subject": "Hi"}},
                {
                    "id": "s2",
                    "type": "condition",
                    "settings": {
                        "condition": {"field": "email", "operator": "contains", "value": "@"}
                    },
                    "condition_steps": {"true": "s1"},
                },
                {"id": "s3", "type": "update_user", "settings": {"field": "tier", "value": "gold"}},
            ]
        )
    )

    assert isinstance(wf.steps[0], EmailStep)
    assert wf.steps[0].settings.sender_name is None
    assert isinstance(wf.steps[1], ConditionStep)
    assert wf.steps[1].condition_steps.target(True) == "s1"
    assert wf.steps[1].condition_steps.target(False) is None
    assert isinstance(wf.steps[2], UpdateUserStep)
    assert wf.steps[2].settings.fields == {"tier": "gold"}
    assert wf.step_index("s2") == 1
    assert wf.step_index("nope") is None


def test_unknown_step_type_is_rejected():
    with pytest.raises(ValidationError):
        WorkflowDefinition.model_validate(
            _definition([{"id": "s1", "type": "fax", "settings": {}}])
        )


def test_duplicate_step_ids_are_rejected():
    with pytest.raises(ValidationError, match="Duplicate step id"):
        WorkflowDefinition.model_validate(
            _definition(
                [
                    {"id": "s1", "type": "tag", "settings": {"tags": ["a"]}},
                    {"id": "s1", "type": "tag", "settings": {"tags": ["b"]}},
                ]
            )
        )


def test_schedule_trigger_validation():
    assert ScheduleTrigger(schedule="delay", delay=15).delay == 15
    assert ScheduleTrigger(schedule="recurring", recurring_pattern="0 9 * * 1").schedule == "recurring"
    with pytest.raises(ValidationError):
        ScheduleTrigger(schedule="delay")
    with pytest.raises(ValidationError, match="Invalid cron expression"):
        ScheduleTrigger(schedule="recurring", recurring_pattern="every monday")


@pytest.mark.parametrize(
    "settings, expected",
    [
        ({"duration": 30}, timedelta(minutes=30)),
        ({"duration": 2, "unit": "hours"}, timedelta(hours=2)),
        ({"duration": 3, "unit": "days"}, timedelta(days=3)),
        ({"duration": 0}, timedelta(0)),
    ],
)
def test_wait_settings_resolve(settings, expected):
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert WaitSettings(**settings).resolve(now) == now + expected


def test_wait_settings_until_overrides_duration():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    settings = WaitSettings(duration=5, until=datetime(2026, 3, 2, 9, 0))
    assert settings.resolve(now) == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_step_results_are_discriminated_by_kind():
    adapter = TypeAdapter(StepResult)

    assert isinstance(adapter.validate_python({"kind": "completed", "status": "sent"}), StepCompleted)
    branch = adapter.validate_python({"kind": "branch", "next_step": "s4", "condition_met": False})
    assert isinstance(branch, StepBranch)
    suspend = adapter.validate_python({"kind": "wait", "wait_until": "2026-03-01T12:00:00Z"})
    assert isinstance(suspend, StepSuspend)
    assert suspend.wait is True
