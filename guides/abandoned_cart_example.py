"""Example showing an abandoned-cart recovery workflow end to end."""

import asyncio
from datetime import timedelta

from gangflow import WorkflowDefinition, WorkflowEngine
from gangflow.contracts import utcnow
from gangflow.customers import CartSession, CustomerProfile


async def main():
    """Abandoned cart example."""
    engine = WorkflowEngine()

    # A customer with an idle cart
    await engine.customers.upsert_customer(
        CustomerProfile(
            id="cust-123",
            email="pat@example.com",
            name="Pat",
            marketing_opt_in=True,
            email_verified=True,
        )
    )
    await engine.customers.save_cart(
        CartSession(
            user_id="cust-123",
            items=[{"sku": "BC-16PT-500", "quantity": 500}],
            total=39.95,
            updated_at=utcnow() - timedelta(hours=2),
        )
    )

    # Define the recovery workflow
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Cart recovery",
            "trigger": {"type": "event", "event": "cart_abandoned"},
            "steps": [
                {
                    "id": "reminder",
                    "type": "email",
                    "settings": {
                        "subject": "Your business cards are waiting",
                        "content": "Finish checking out before your proof expires.",
                    },
                },
                {"id": "follow-up-wait", "type": "wait", "settings": {"duration": 1, "unit": "days"}},
                {"id": "tag", "type": "tag", "settings": {"tags": ["cart-reminded"]}},
            ],
        }
    )
    await engine.repository.save_workflow(workflow)

    # Hourly job: fire cart_abandoned for idle carts
    count = await engine.check_abandoned_carts()
    await engine.wait_idle()

    print(f"✅ Abandoned carts processed: {count}")
    for execution in await engine.repository.list_executions(workflow_id=workflow.id):
        print(f"📋 Execution {execution.id}: {execution.status.value}")
        print(f"⏳ Waiting until: {execution.wait_until}")
    for send in await engine.customers.list_sends("cust-123"):
        print(f"✉️  Sent '{send.subject}' to {send.recipient}")

    engine.close()


if __name__ == "__main__":
    asyncio.run(main())
