from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid.uuid4())


class CustomerRecord(SQLModel, table=True):
    """A storefront customer and their marketing consent flags."""

    __tablename__ = "customers"

    id: str = Field(primary_key=True)
    email: str = Field(index=True)
    name: Optional[str] = None
    phone: Optional[str] = None
    marketing_opt_in: bool = False
    sms_opt_in: bool = False
    email_verified: bool = False
    tags: list = Field(default_factory=list, sa_column=Column(JSON))
    attributes: dict = Field(default_factory=dict, sa_column=Column(JSON))


class SegmentRecord(SQLModel, table=True):
    """Materialized customer segment."""

    __tablename__ = "customer_segments"

    id: str = Field(primary_key=True)
    name: str
    customer_ids: list = Field(default_factory=list, sa_column=Column(JSON))


class OrderRecord(SQLModel, table=True):
    __tablename__ = "orders"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    total: float = 0.0
    created_at: datetime


class CartRecord(SQLModel, table=True):
    __tablename__ = "cart_sessions"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    items: list = Field(default_factory=list, sa_column=Column(JSON))
    total: float = 0.0
    updated_at: datetime
    converted: bool = False
    abandoned_notified_at: Optional[datetime] = None


class SendRecord(SQLModel, table=True):
    """Outbound email/SMS written by workflow steps."""

    __tablename__ = "message_sends"

    id: str = Field(default_factory=_new_id, primary_key=True)
    channel: str
    user_id: str = Field(index=True)
    recipient: str
    subject: Optional[str] = None
    content: str = ""
    sender: Optional[str] = None
    status: str = "sent"
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    sent_at: datetime
