from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..customers.models import (
    CartSession,
    CustomerProfile,
    CustomerSegment,
    InactiveCustomer,
    MessageSend,
    Order,
    OrderStats,
)
from ..customers.store import CustomerStore, split_profile_fields
from .models import CartRecord, CustomerRecord, OrderRecord, SegmentRecord, SendRecord


def _naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_profile(row: CustomerRecord) -> CustomerProfile:
    return CustomerProfile(
        id=row.id,
        email=row.email,
        name=row.name,
        phone=row.phone,
        marketing_opt_in=row.marketing_opt_in,
        sms_opt_in=row.sms_opt_in,
        email_verified=row.email_verified,
        tags=list(row.tags or []),
        attributes=dict(row.attributes or {}),
    )


def _to_cart(row: CartRecord) -> CartSession:
    return CartSession(
        id=row.id,
        user_id=row.user_id,
        items=list(row.items or []),
        total=row.total,
        updated_at=_aware(row.updated_at),
        converted=row.converted,
        abandoned_notified_at=_aware(row.abandoned_notified_at),
    )


class CustomerDB(CustomerStore):
    """Async SQLModel-backed customer store."""

    def __init__(self, database_url: str) -> None:
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    # ------------------------------------------------------------------
    # Customers
    async def get_customer(self, user_id: str) -> CustomerProfile | None:
        async with self.session() as session:
            row = await session.get(CustomerRecord, user_id)
            return _to_profile(row) if row else None

    async def list_customers(self) -> list[CustomerProfile]:
        async with self.session() as session:
            result = await session.execute(select(CustomerRecord))
            return [_to_profile(row) for row in result.scalars().all()]

    async def upsert_customer(self, customer: CustomerProfile) -> None:
        async with self.session() as session:
            await session.merge(CustomerRecord(**customer.model_dump()))
            await session.commit()

    async def update_customer(
        self, user_id: str, fields: dict[str, Any]
    ) -> CustomerProfile:
        profile, attributes = split_profile_fields(fields)
        async with self.session() as session:
            row = await session.get(CustomerRecord, user_id)
            if row is None:
                raise KeyError(user_id)
            data = _to_profile(row).model_dump()
            data.update(profile)
            data["attributes"] = {**data["attributes"], **attributes}
            updated = CustomerProfile.model_validate(data)
            for key, value in updated.model_dump(exclude={"id"}).items():
                setattr(row, key, value)
            await session.commit()
        return updated

    async def _set_tags(self, user_id: str, change) -> list[str]:
        async with self.session() as session:
            row = await session.get(CustomerRecord, user_id)
            if row is None:
                raise KeyError(user_id)
            # reassign so the JSON column is flagged dirty
            row.tags = change(list(row.tags or []))
            await session.commit()
            return list(row.tags)

    async def add_tags(self, user_id: str, tags: list[str]) -> list[str]:
        def _add(current: list[str]) -> list[str]:
            for tag in tags:
                if tag not in current:
                    current.append(tag)
            return current

        return await self._set_tags(user_id, _add)

    async def remove_tags(self, user_id: str, tags: list[str]) -> list[str]:
        return await self._set_tags(
            user_id, lambda current: [t for t in current if t not in tags]
        )

    # ------------------------------------------------------------------
    # Segments
    async def get_segment(self, segment_id: str) -> CustomerSegment | None:
        async with self.session() as session:
            row = await session.get(SegmentRecord, segment_id)
            if row is None:
                return None
            return CustomerSegment(
                id=row.id, name=row.name, customer_ids=list(row.customer_ids or [])
            )

    async def save_segment(self, segment: CustomerSegment) -> None:
        async with self.session() as session:
            await session.merge(SegmentRecord(**segment.model_dump()))
            await session.commit()

    # ------------------------------------------------------------------
    # Orders
    async def add_order(self, order: Order) -> None:
        async with self.session() as session:
            session.add(
                OrderRecord(
                    id=order.id,
                    user_id=order.user_id,
                    total=order.total,
                    created_at=_naive_utc(order.created_at),
                )
            )
            await session.commit()

    async def get_order_stats(self, user_id: str) -> OrderStats:
        async with self.session() as session:
            result = await session.execute(
                select(
                    func.count(OrderRecord.id),
                    func.coalesce(func.sum(OrderRecord.total), 0.0),
                    func.max(OrderRecord.created_at),
                ).where(OrderRecord.user_id == user_id)
            )
            count, total, last = result.one()
        return OrderStats(
            order_count=count, total_spent=float(total), last_order_at=_aware(last)
        )

    async def list_inactive_customers(
        self, start: datetime, end: datetime
    ) -> list[InactiveCustomer]:
        last_order = func.max(OrderRecord.created_at)
        async with self.session() as session:
            result = await session.execute(
                select(OrderRecord.user_id, last_order)
                .group_by(OrderRecord.user_id)
                .having(last_order >= _naive_utc(start))
                .having(last_order < _naive_utc(end))
            )
            rows = result.all()
        return [
            InactiveCustomer(user_id=user_id, last_order_at=_aware(last))
            for user_id, last in rows
        ]

    # ------------------------------------------------------------------
    # Carts
    async def save_cart(self, cart: CartSession) -> None:
        data = cart.model_dump()
        data["updated_at"] = _naive_utc(cart.updated_at)
        data["abandoned_notified_at"] = _naive_utc(cart.abandoned_notified_at)
        async with self.session() as session:
            await session.merge(CartRecord(**data))
            await session.commit()

    async def list_abandoned_carts(self, idle_before: datetime) -> list[CartSession]:
        async with self.session() as session:
            result = await session.execute(
                select(CartRecord).where(
                    CartRecord.converted == False,  # noqa: E712
                    CartRecord.abandoned_notified_at == None,  # noqa: E711
                    CartRecord.updated_at < _naive_utc(idle_before),
                )
            )
            return [_to_cart(row) for row in result.scalars().all()]

    async def mark_cart_notified(self, cart_id: str, at: datetime) -> None:
        async with self.session() as session:
            row = await session.get(CartRecord, cart_id)
            if row is None:
                return
            row.abandoned_notified_at = _naive_utc(at)
            await session.commit()

    # ------------------------------------------------------------------
    # Sends
    async def record_send(self, send: MessageSend) -> MessageSend:
        data = send.model_dump()
        data["sent_at"] = _naive_utc(send.sent_at)
        async with self.session() as session:
            session.add(SendRecord(**data))
            await session.commit()
        return send

    async def list_sends(self, user_id: str | None = None) -> list[MessageSend]:
        query = select(SendRecord)
        if user_id is not None:
            query = query.where(SendRecord.user_id == user_id)
        async with self.session() as session:
            result = await session.execute(query.order_by(SendRecord.sent_at))
            rows = result.scalars().all()
        return [
            MessageSend(
                id=row.id,
                channel=row.channel,
                user_id=row.user_id,
                recipient=row.recipient,
                subject=row.subject,
                content=row.content,
                sender=row.sender,
                status=row.status,
                workflow_id=row.workflow_id,
                execution_id=row.execution_id,
                sent_at=_aware(row.sent_at),
            )
            for row in rows
        ]
