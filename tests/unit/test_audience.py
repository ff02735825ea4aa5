import pytest

from gangflow.audience import AudienceResolver
from gangflow.customers import CustomerProfile, CustomerSegment


@pytest.mark.asyncio
async def test_segment_membership(customers):
    await customers.save_segment(CustomerSegment(id="reorder", name="Reorder", customer_ids=["u1"]))
    resolver = AudienceResolver(customers)

    assert await resolver.is_user_in_segment("reorder", "u1") is True
    assert await resolver.is_user_in_segment("reorder", "u2") is False
    assert await resolver.is_user_in_segment("missing", "u1") is False


@pytest.mark.asyncio
async def test_segment_recipients_skip_unknown_members(customers):
    await customers.upsert_customer(CustomerProfile(id="u2", email="u2@example.com"))
    await customers.save_segment(
        CustomerSegment(id="s", name="S", customer_ids=["u2", "deleted-user"])
    )
    resolver = AudienceResolver(customers)

    recipients = await resolver.resolve_recipients("s")

    assert [(r.id, r.email) for r in recipients] == [("u2", "u2@example.com")]
    assert await resolver.resolve_recipients("missing") == []


@pytest.mark.asyncio
async def test_broadcast_requires_opt_in_and_verified_email(customers):
    await customers.upsert_customer(
        CustomerProfile(id="unverified", email="x@example.com", marketing_opt_in=True)
    )
    await customers.upsert_customer(
        CustomerProfile(id="opted-out", email="y@example.com", email_verified=True)
    )
    resolver = AudienceResolver(customers)

    recipients = await resolver.resolve_recipients()

    assert [r.id for r in recipients] == ["u1"]
    assert recipients[0].name == "Alex Printer"
