"""End-to-end flows through the public engine API."""

from datetime import timedelta

import pytest

from gangflow import WorkflowDefinition, WorkflowEngine
from gangflow.config import GangflowConfig
from gangflow.contracts import utcnow
from gangflow.customers import CustomerSegment
from gangflow.persistence import ExecutionStatus, SQLiteWorkflowRepository


def _welcome_series(wait: dict) -> WorkflowDefinition:
    return WorkflowDefinition.model_validate(
        {
            "name": "Welcome series",
            "trigger": {"type": "event", "event": "user_registered"},
            "steps": [
                {"id": "pause", "type": "wait", "settings": wait},
                {
                    "id": "welcome",
                    "type": "email",
                    "settings": {
                        "subject": "Welcome to GangRun Printing",
                        "content": "Your first order ships free.",
                    },
                },
                {"id": "tag", "type": "tag", "settings": {"tags": ["welcomed"]}},
            ],
        }
    )


@pytest.mark.asyncio
async def test_zero_wait_resumes_without_sweep(engine, repo, customers):
    workflow = _welcome_series({"duration": 0})
    await repo.save_workflow(workflow)

    await engine.events.user_registered("u1")
    await engine.wait_idle()

    [execution] = await repo.list_executions(workflow_id=workflow.id)
    assert execution.status == ExecutionStatus.COMPLETED
    assert [r.step_id for r in execution.step_results] == ["pause", "welcome", "tag"]
    assert execution.step_results[0].result.kind == "wait"
    assert execution.step_results[1].result.status == "sent"

    [send] = await customers.list_sends("u1")
    assert send.subject == "Welcome to GangRun Printing"
    assert send.recipient == "a@b.com"
    assert (await customers.get_customer("u1")).tags == ["welcomed"]


@pytest.mark.asyncio
async def test_wait_survives_restart_with_sqlite(tmp_path, customers):
    db_path = tmp_path / "workflows.db"
    workflow = _welcome_series({"duration": 30})

    first = WorkflowEngine(
        repository=SQLiteWorkflowRepository(db_path),
        customers=customers,
        config=GangflowConfig(),
    )
    await first.repository.save_workflow(workflow)
    await first.events.user_registered("u1")
    await first.wait_idle()
    [execution] = await first.repository.list_executions()
    assert execution.status == ExecutionStatus.RUNNING
    assert execution.current_step == 1
    first.close()

    second = WorkflowEngine(
        repository=SQLiteWorkflowRepository(db_path),
        customers=customers,
        config=GangflowConfig(),
    )
    assert await second.scheduler.sweep() == 0
    assert await second.scheduler.sweep(utcnow() + timedelta(minutes=31)) == 1

    resumed = await second.repository.get_execution(execution.id)
    assert resumed.status == ExecutionStatus.COMPLETED
    assert resumed.wait_until is None
    assert [r.step_id for r in resumed.step_results] == ["pause", "welcome", "tag"]
    assert len(await customers.list_sends("u1")) == 1

    assert await second.scheduler.sweep(utcnow() + timedelta(minutes=31)) == 0
    second.close()


@pytest.mark.asyncio
async def test_segment_campaign_launch(engine, repo, customers):
    await customers.save_segment(
        CustomerSegment(id="reorder-due", name="Reorder due", customer_ids=["u1"])
    )
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Reorder reminder",
            "trigger": {"type": "schedule", "schedule": "immediate"},
            "segment_id": "reorder-due",
            "steps": [
                {
                    "id": "remind",
                    "type": "sms",
                    "settings": {"message": "Time to reorder your business cards?"},
                }
            ],
        }
    )
    await repo.save_workflow(workflow)

    started = await engine.triggers.launch_workflow(workflow.id)
    await engine.wait_idle()

    assert [e.user_id for e in started] == ["u1"]
    [send] = await customers.list_sends()
    assert send.channel == "sms"
    assert send.recipient == "+15555550100"
