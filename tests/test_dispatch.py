"""Trigger evaluation tests: events, segments, schedules and conditions."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from gangflow.config import GangflowConfig
from gangflow.contracts import WorkflowDefinition, utcnow
from gangflow.customers import CustomerProfile, CustomerSegment, Order
from gangflow.engine import WorkflowEngine
from gangflow.exceptions import (
    GangflowError,
    UserNotInSegment,
    WorkflowNotFoundOrInactive,
)
from gangflow.persistence import (
    ExecutionStatus,
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
)


def _event_workflow(event="user_registered", **kwargs) -> WorkflowDefinition:
    return WorkflowDefinition.model_validate(
        {
            "name": kwargs.pop("name", f"On {event}"),
            "trigger": {"type": "event", "event": event},
            "steps": kwargs.pop(
                "steps", [{"id": "tag", "type": "tag", "settings": {"tags": [event]}}]
            ),
            **kwargs,
        }
    )


@pytest.mark.asyncio
async def test_event_starts_matching_active_workflows_only(engine, repo):
    matching = _event_workflow("order_placed")
    other_event = _event_workflow("user_login")
    inactive = _event_workflow("order_placed", is_active=False)
    for wf in (matching, other_event, inactive):
        await repo.save_workflow(wf)

    await engine.events.order_placed("u1", "order-1", {"total": 125.0})
    await engine.wait_idle()

    executions = await repo.list_executions()
    assert [e.workflow_id for e in executions] == [matching.id]
    execution = executions[0]
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.trigger_data == {
        "user_id": "u1",
        "order_id": "order-1",
        "order": {"total": 125.0},
    }


@pytest.mark.asyncio
async def test_event_without_user_id_starts_nothing(engine, repo):
    await repo.save_workflow(_event_workflow("email_opened"))

    await engine.handle_event("email_opened", {"campaign_id": "c-1"})
    await engine.wait_idle()

    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_event_skips_workflow_without_steps(engine, repo):
    await repo.save_workflow(_event_workflow("user_registered", steps=[]))

    await engine.events.user_registered("u1")
    await engine.wait_idle()

    assert await repo.list_executions() == []


class _BrokenLookupRepository(InMemoryWorkflowRepository):
    def __init__(self, broken_id: str) -> None:
        super().__init__()
        self.broken_id = broken_id

    async def get_workflow(self, workflow_id):
        if workflow_id == self.broken_id:
            raise RuntimeError("database unavailable")
        return await super().get_workflow(workflow_id)


@pytest.mark.asyncio
async def test_failure_in_one_workflow_does_not_block_others(customers):
    broken = _event_workflow("user_registered", name="Broken")
    healthy = _event_workflow("user_registered", name="Healthy")
    repo = _BrokenLookupRepository(broken.id)
    engine = WorkflowEngine(repository=repo, customers=customers, config=GangflowConfig())
    await repo.save_workflow(broken)
    await repo.save_workflow(healthy)

    await engine.events.user_registered("u1")
    await engine.wait_idle()

    executions = await repo.list_executions()
    assert [e.workflow_id for e in executions] == [healthy.id]
    engine.close()


@pytest.mark.asyncio
async def test_direct_trigger_rejects_missing_or_inactive_workflow(engine, repo):
    workflow = _event_workflow(is_active=False)
    await repo.save_workflow(workflow)

    with pytest.raises(WorkflowNotFoundOrInactive):
        await engine.trigger_workflow(workflow.id, "u1")
    with pytest.raises(WorkflowNotFoundOrInactive):
        await engine.trigger_workflow("does-not-exist", "u1")
    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_segment_gate(engine, repo, customers):
    await customers.upsert_customer(CustomerProfile(id="u2", email="u2@example.com"))
    await customers.save_segment(
        CustomerSegment(id="vip", name="VIP", customer_ids=["u2"])
    )
    workflow = _event_workflow(segment_id="vip")
    await repo.save_workflow(workflow)

    with pytest.raises(UserNotInSegment) as exc_info:
        await engine.trigger_workflow(workflow.id, "u1")
    assert exc_info.value.segment_id == "vip"

    await engine.events.user_registered("u1")
    await engine.events.user_registered("u2")
    await engine.wait_idle()

    executions = await repo.list_executions()
    assert [e.user_id for e in executions] == ["u2"]


@pytest.mark.asyncio
async def test_delay_schedule_trigger_waits_before_first_step(engine, repo, customers):
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Delayed welcome",
            "trigger": {"type": "schedule", "schedule": "delay", "delay": 30},
            "steps": [{"id": "mail", "type": "email", "settings": {"subject": "Hi"}}],
        }
    )
    await repo.save_workflow(workflow)

    execution = await engine.trigger_workflow(workflow.id, "u1")
    await engine.wait_idle()

    stored = await repo.get_execution(execution.id)
    assert stored.status == ExecutionStatus.RUNNING
    assert stored.step_results == []
    assert stored.wait_until > utcnow() + timedelta(minutes=29)
    assert execution.id in engine.scheduler.pending

    await engine.scheduler.sweep(now=utcnow() + timedelta(minutes=31))

    done = await repo.get_execution(execution.id)
    assert done.status == ExecutionStatus.COMPLETED
    assert len(await customers.list_sends("u1")) == 1


@pytest.mark.asyncio
async def test_condition_triggers_start_workflows_whose_condition_holds(
    engine, repo, customers
):
    await customers.add_order(Order(user_id="u1", total=80.0))
    await customers.add_order(Order(user_id="u1", total=45.0))
    big_spender = WorkflowDefinition.model_validate(
        {
            "name": "Big spender",
            "trigger": {
                "type": "condition",
                "condition": {
                    "field": "user.totalSpent",
                    "operator": "greater_than",
                    "value": 100,
                },
            },
            "steps": [{"id": "tag", "type": "tag", "settings": {"tags": ["vip"]}}],
        }
    )
    other_domain = WorkflowDefinition.model_validate(
        {
            "name": "Other domain",
            "trigger": {
                "type": "condition",
                "condition": {
                    "field": "email",
                    "operator": "ends_with",
                    "value": "@example.org",
                },
            },
            "steps": [{"id": "tag", "type": "tag", "settings": {"tags": ["org"]}}],
        }
    )
    await repo.save_workflow(big_spender)
    await repo.save_workflow(other_domain)

    started = await engine.triggers.evaluate_condition_triggers("u1")
    await engine.wait_idle()

    assert [e.workflow_id for e in started] == [big_spender.id]
    assert started[0].trigger_data == {"user_id": "u1", "trigger": "condition"}
    assert (await customers.get_customer("u1")).tags == ["vip"]


@pytest.mark.asyncio
async def test_condition_triggers_for_unknown_user_raise(engine):
    with pytest.raises(GangflowError):
        await engine.triggers.evaluate_condition_triggers("ghost")


@pytest.mark.asyncio
async def test_launch_broadcast_reaches_opted_in_verified_customers(
    engine, repo, customers
):
    await customers.upsert_customer(
        CustomerProfile(id="u2", email="u2@example.com", marketing_opt_in=True)
    )
    await customers.upsert_customer(
        CustomerProfile(
            id="u3", email="u3@example.com", marketing_opt_in=True, email_verified=True
        )
    )
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Spring sale",
            "trigger": {"type": "schedule", "schedule": "immediate"},
            "steps": [{"id": "mail", "type": "email", "settings": {"subject": "Sale"}}],
        }
    )
    await repo.save_workflow(workflow)

    started = await engine.triggers.launch_workflow(workflow.id)
    await engine.wait_idle()

    assert sorted(e.user_id for e in started) == ["u1", "u3"]
    sends = await customers.list_sends()
    assert sorted(s.recipient for s in sends) == ["a@b.com", "u3@example.com"]


@pytest.mark.asyncio
async def test_recurring_schedule_fires_once_per_period(engine, repo):
    created = datetime(2026, 1, 1, tzinfo=timezone.utc)
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Daily digest",
            "trigger": {
                "type": "schedule",
                "schedule": "recurring",
                "recurring_pattern": "0 9 * * *",
            },
            "steps": [{"id": "tag", "type": "tag", "settings": {"tags": ["digest"]}}],
            "created_at": created,
        }
    )
    await repo.save_workflow(workflow)

    assert await engine.triggers.run_due_schedules(created + timedelta(hours=8)) == 0
    assert await engine.triggers.run_due_schedules(created + timedelta(hours=10)) == 1
    assert await engine.triggers.run_due_schedules(created + timedelta(hours=11)) == 0
    await engine.wait_idle()

    stored = await repo.get_workflow(workflow.id)
    assert stored.last_scheduled_at == created + timedelta(hours=10)
    executions = await repo.list_executions(workflow_id=workflow.id)
    assert len(executions) == 1
    assert executions[0].trigger_data == {"user_id": "u1", "trigger": "schedule"}

    assert await engine.triggers.run_due_schedules(created + timedelta(days=1, hours=9)) == 1


@pytest.mark.asyncio
async def test_order_payload_with_dates_and_decimals_is_stored(tmp_path, customers):
    repo = SQLiteWorkflowRepository(tmp_path / "workflows.db")
    engine = WorkflowEngine(repository=repo, customers=customers, config=GangflowConfig())
    await repo.save_workflow(_event_workflow("order_placed"))

    await engine.events.order_placed(
        "u1", "o-1", {"placed_at": datetime(2026, 1, 1), "total": Decimal("9.99")}
    )
    await engine.wait_idle()

    [execution] = await repo.list_executions()
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.trigger_data["order"] == {
        "placed_at": "2026-01-01T00:00:00",
        "total": "9.99",
    }
    engine.close()
