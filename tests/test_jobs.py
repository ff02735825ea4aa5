"""Scheduled trigger job tests."""

from datetime import timedelta

import pytest

from gangflow.config import GangflowConfig, JobsConfig
from gangflow.contracts import WorkflowDefinition, utcnow
from gangflow.customers import CartSession, Order
from gangflow.jobs import check_abandoned_carts, check_inactive_customers
from gangflow.persistence import ExecutionStatus


def _listener(event: str) -> WorkflowDefinition:
    return WorkflowDefinition.model_validate(
        {
            "name": f"On {event}",
            "trigger": {"type": "event", "event": event},
            "steps": [{"id": "mail", "type": "email", "settings": {"subject": event}}],
        }
    )


@pytest.mark.asyncio
async def test_abandoned_cart_fires_once_per_cart(engine, repo, customers):
    now = utcnow()
    workflow = _listener("cart_abandoned")
    await repo.save_workflow(workflow)
    idle = CartSession(
        user_id="u1",
        items=[{"sku": "BC-500", "quantity": 500}],
        total=49.99,
        updated_at=now - timedelta(hours=2),
    )
    fresh = CartSession(user_id="u1", updated_at=now - timedelta(minutes=5))
    converted = CartSession(
        user_id="u1", updated_at=now - timedelta(hours=3), converted=True
    )
    for cart in (idle, fresh, converted):
        await customers.save_cart(cart)

    assert await check_abandoned_carts(customers, engine.events, engine.config, now) == 1
    await engine.wait_idle()
    assert await check_abandoned_carts(customers, engine.events, engine.config, now) == 0

    executions = await repo.list_executions(workflow_id=workflow.id)
    assert len(executions) == 1
    cart_data = executions[0].trigger_data["cart"]
    assert cart_data["cart_id"] == idle.id
    assert cart_data["total"] == 49.99
    assert executions[0].status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_abandoned_cart_threshold_comes_from_config(engine, customers):
    now = utcnow()
    await customers.save_cart(
        CartSession(user_id="u1", updated_at=now - timedelta(minutes=20))
    )
    config = GangflowConfig(jobs=JobsConfig(abandoned_cart_after_minutes=15))

    assert await check_abandoned_carts(customers, engine.events, config, now) == 1


@pytest.mark.asyncio
async def test_inactive_customer_window(engine, repo, customers):
    now = utcnow()
    workflow = _listener("inactive_customer")
    await repo.save_workflow(workflow)
    await customers.add_order(Order(user_id="u1", total=20, created_at=now - timedelta(days=200)))
    await customers.add_order(
        Order(user_id="u1", total=30, created_at=now - timedelta(days=90, hours=6))
    )
    # Recent order elsewhere keeps this customer active.
    await customers.add_order(Order(user_id="u9", total=10, created_at=now - timedelta(days=3)))

    assert await check_inactive_customers(customers, engine.events, engine.config, now) == 1
    await engine.wait_idle()

    executions = await repo.list_executions(workflow_id=workflow.id)
    assert len(executions) == 1
    assert executions[0].trigger_data == {"user_id": "u1", "days_since_last_order": 90}

    later = now + timedelta(days=1)
    assert await check_inactive_customers(customers, engine.events, engine.config, later) == 0


@pytest.mark.asyncio
async def test_engine_job_shortcuts(engine, customers):
    await customers.save_cart(
        CartSession(user_id="u1", updated_at=utcnow() - timedelta(hours=5))
    )

    assert await engine.check_abandoned_carts() == 1
    assert await engine.check_inactive_customers() == 0
