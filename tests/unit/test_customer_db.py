from datetime import timedelta

import pytest

from gangflow.contracts import utcnow
from gangflow.customers import (
    CartSession,
    CustomerProfile,
    CustomerSegment,
    MessageSend,
    Order,
    get_customer_store,
)
from gangflow.db import CustomerDB


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}"


@pytest.mark.asyncio
async def test_customer_crud_and_tags(db_url):
    db = CustomerDB(db_url)
    await db.upsert_customer(
        CustomerProfile(id="u1", email="pat@example.com", name="Pat", marketing_opt_in=True)
    )

    customer = await db.get_customer("u1")
    assert customer.email == "pat@example.com"
    assert customer.marketing_opt_in is True
    assert await db.get_customer("missing") is None

    assert await db.add_tags("u1", ["vip", "vip", "wholesale"]) == ["vip", "wholesale"]
    assert await db.remove_tags("u1", ["vip"]) == ["wholesale"]

    updated = await db.update_customer("u1", {"sms_opt_in": True, "favourite_stock": "16pt"})
    assert updated.sms_opt_in is True
    reloaded = await db.get_customer("u1")
    assert reloaded.sms_opt_in is True
    assert reloaded.tags == ["wholesale"]
    assert reloaded.attributes == {"favourite_stock": "16pt"}

    with pytest.raises(KeyError):
        await db.update_customer("missing", {"name": "x"})
    await db.close()


@pytest.mark.asyncio
async def test_update_customer_coerces_form_values(db_url):
    db = CustomerDB(db_url)
    await db.upsert_customer(
        CustomerProfile(id="u1", email="pat@example.com", marketing_opt_in=True)
    )

    updated = await db.update_customer("u1", {"marketingOptIn": "", "smsOptIn": "true"})

    assert updated.marketing_opt_in is True
    assert updated.sms_opt_in is True
    reloaded = await db.get_customer("u1")
    assert reloaded.sms_opt_in is True
    assert reloaded.attributes == {"marketingOptIn": ""}
    await db.close()


@pytest.mark.asyncio
async def test_segments_and_order_stats(db_url):
    db = CustomerDB(db_url)
    await db.save_segment(CustomerSegment(id="vip", name="VIP", customer_ids=["u1", "u2"]))
    now = utcnow()
    await db.add_order(Order(user_id="u1", total=40.0, created_at=now - timedelta(days=95)))
    await db.add_order(Order(user_id="u1", total=60.5, created_at=now - timedelta(days=90, hours=3)))
    await db.add_order(Order(user_id="u2", total=12.0, created_at=now - timedelta(days=1)))

    segment = await db.get_segment("vip")
    assert segment.customer_ids == ["u1", "u2"]
    assert await db.get_segment("missing") is None

    stats = await db.get_order_stats("u1")
    assert stats.order_count == 2
    assert stats.total_spent == 100.5
    assert stats.last_order_at.tzinfo is not None
    empty = await db.get_order_stats("nobody")
    assert empty.order_count == 0
    assert empty.total_spent == 0.0
    assert empty.last_order_at is None

    end = now - timedelta(days=90)
    inactive = await db.list_inactive_customers(end - timedelta(days=1), end)
    assert [c.user_id for c in inactive] == ["u1"]
    await db.close()


@pytest.mark.asyncio
async def test_carts_and_sends(db_url):
    db = CustomerDB(db_url)
    now = utcnow()
    idle = CartSession(user_id="u1", total=25.0, items=[{"sku": "FLY-100"}], updated_at=now - timedelta(hours=2))
    await db.save_cart(idle)
    await db.save_cart(CartSession(user_id="u1", updated_at=now))

    carts = await db.list_abandoned_carts(now - timedelta(hours=1))
    assert [c.id for c in carts] == [idle.id]
    assert carts[0].items == [{"sku": "FLY-100"}]

    await db.mark_cart_notified(idle.id, now)
    assert await db.list_abandoned_carts(now - timedelta(hours=1)) == []

    await db.record_send(
        MessageSend(channel="email", user_id="u1", recipient="pat@example.com", subject="Hi")
    )
    sends = await db.list_sends("u1")
    assert len(sends) == 1
    assert sends[0].subject == "Hi"
    assert await db.list_sends("u2") == []
    await db.close()


def test_factory_selects_database_store(db_url):
    store = get_customer_store(db_url)
    assert isinstance(store, CustomerDB)
