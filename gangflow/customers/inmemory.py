"""In-memory implementation of the customer store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from .models import (
    CartSession,
    CustomerProfile,
    CustomerSegment,
    InactiveCustomer,
    MessageSend,
    Order,
    OrderStats,
)
from .store import CustomerStore, split_profile_fields


class InMemoryCustomerStore(CustomerStore):
    """Keep customers, segments, orders, carts and sends in local memory.

    Useful for tests or when no customer database is configured.
    """

    def __init__(self) -> None:
        self._customers: Dict[str, CustomerProfile] = {}
        self._segments: Dict[str, CustomerSegment] = {}
        self._orders: list[Order] = []
        self._carts: Dict[str, CartSession] = {}
        self._sends: list[MessageSend] = []

    # ------------------------------------------------------------------
    async def get_customer(self, user_id: str) -> CustomerProfile | None:
        customer = self._customers.get(user_id)
        return customer.model_copy(deep=True) if customer else None

    async def list_customers(self) -> list[CustomerProfile]:
        return [c.model_copy(deep=True) for c in self._customers.values()]

    async def upsert_customer(self, customer: CustomerProfile) -> None:
        self._customers[customer.id] = customer.model_copy(deep=True)

    async def update_customer(
        self, user_id: str, fields: dict[str, Any]
    ) -> CustomerProfile:
        customer = self._customers[user_id]
        profile, attributes = split_profile_fields(fields)
        data = customer.model_dump()
        data.update(profile)
        data["attributes"] = {**customer.attributes, **attributes}
        updated = CustomerProfile.model_validate(data)
        self._customers[user_id] = updated
        return updated.model_copy(deep=True)

    async def add_tags(self, user_id: str, tags: list[str]) -> list[str]:
        customer = self._customers[user_id]
        for tag in tags:
            if tag not in customer.tags:
                customer.tags.append(tag)
        return list(customer.tags)

    async def remove_tags(self, user_id: str, tags: list[str]) -> list[str]:
        customer = self._customers[user_id]
        customer.tags = [t for t in customer.tags if t not in tags]
        return list(customer.tags)

    # ------------------------------------------------------------------
    async def get_segment(self, segment_id: str) -> CustomerSegment | None:
        segment = self._segments.get(segment_id)
        return segment.model_copy(deep=True) if segment else None

    async def save_segment(self, segment: CustomerSegment) -> None:
        self._segments[segment.id] = segment.model_copy(deep=True)

    # ------------------------------------------------------------------
    async def add_order(self, order: Order) -> None:
        self._orders.append(order.model_copy())

    async def get_order_stats(self, user_id: str) -> OrderStats:
        orders = [o for o in self._orders if o.user_id == user_id]
        return OrderStats(
            order_count=len(orders),
            total_spent=sum(o.total for o in orders),
            last_order_at=max((o.created_at for o in orders), default=None),
        )

    async def list_inactive_customers(
        self, start: datetime, end: datetime
    ) -> list[InactiveCustomer]:
        last_orders: Dict[str, datetime] = {}
        for order in self._orders:
            current = last_orders.get(order.user_id)
            if current is None or order.created_at > current:
                last_orders[order.user_id] = order.created_at
        return [
            InactiveCustomer(user_id=user_id, last_order_at=last)
            for user_id, last in last_orders.items()
            if start <= last < end
        ]

    # ------------------------------------------------------------------
    async def save_cart(self, cart: CartSession) -> None:
        self._carts[cart.id] = cart.model_copy(deep=True)

    async def list_abandoned_carts(self, idle_before: datetime) -> list[CartSession]:
        return [
            cart.model_copy(deep=True)
            for cart in self._carts.values()
            if not cart.converted
            and cart.abandoned_notified_at is None
            and cart.updated_at < idle_before
        ]

    async def mark_cart_notified(self, cart_id: str, at: datetime) -> None:
        cart = self._carts.get(cart_id)
        if cart:
            cart.abandoned_notified_at = at

    # ------------------------------------------------------------------
    async def record_send(self, send: MessageSend) -> MessageSend:
        self._sends.append(send.model_copy())
        return send

    async def list_sends(self, user_id: str | None = None) -> list[MessageSend]:
        return [s for s in self._sends if user_id is None or s.user_id == user_id]
