"""Periodic jobs that scan stored state and raise trigger events.

``check_abandoned_carts`` is meant to run hourly and
``check_inactive_customers`` daily, driven by an external scheduler or the
``gangflow jobs`` commands.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from .config import GangflowConfig
from .contracts import utcnow
from .customers import CustomerStore
from .events import EventTriggers

logger = logging.getLogger(__name__)


async def check_abandoned_carts(
    customers: CustomerStore,
    events: EventTriggers,
    config: Optional[GangflowConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """Fire ``cart_abandoned`` once for every idle, unconverted cart."""
    config = config or GangflowConfig()
    now = now or utcnow()
    idle_before = now - timedelta(minutes=config.jobs.abandoned_cart_after_minutes)

    carts = await customers.list_abandoned_carts(idle_before)
    for cart in carts:
        await events.cart_abandoned(
            cart.user_id,
            {
                "cart_id": cart.id,
                "items": cart.items,
                "total": cart.total,
                "updated_at": cart.updated_at.isoformat(),
            },
        )
        await customers.mark_cart_notified(cart.id, now)
    logger.info(f"Abandoned cart check found {len(carts)} cart(s)")
    return len(carts)


async def check_inactive_customers(
    customers: CustomerStore,
    events: EventTriggers,
    config: Optional[GangflowConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """Fire ``inactive_customer`` for customers who just crossed the threshold.

    Only customers whose last order falls in the one-day window ending
    ``inactive_after_days`` ago are reported, so a daily run reports each
    customer once per period of inactivity.
    """
    config = config or GangflowConfig()
    now = now or utcnow()
    days = config.jobs.inactive_after_days
    end = now - timedelta(days=days)
    start = end - timedelta(days=1)

    inactive = await customers.list_inactive_customers(start, end)
    for customer in inactive:
        await events.inactive_customer(
            customer.user_id, (now - customer.last_order_at).days
        )
    logger.info(f"Inactive customer check found {len(inactive)} customer(s)")
    return len(inactive)
