"""Customer-side records read and written by workflow steps."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..contracts import utcnow


class CustomerProfile(BaseModel):
    """Storefront customer as seen by the automation engine."""

    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    marketing_opt_in: bool = False
    sms_opt_in: bool = False
    email_verified: bool = False
    tags: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)


class CustomerSegment(BaseModel):
    """A named, precomputed list of customer ids."""

    id: str
    name: str
    customer_ids: list[str] = Field(default_factory=list)


class Order(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    total: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)


class OrderStats(BaseModel):
    """Order metrics computed per customer."""

    order_count: int = 0
    total_spent: float = 0.0
    last_order_at: Optional[datetime] = None


class CartSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    total: float = 0.0
    updated_at: datetime = Field(default_factory=utcnow)
    converted: bool = False
    abandoned_notified_at: Optional[datetime] = None


class InactiveCustomer(BaseModel):
    user_id: str
    last_order_at: datetime


class MessageSend(BaseModel):
    """Outbound email or SMS recorded by a workflow step."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    channel: Literal["email", "sms"]
    user_id: str
    recipient: str
    subject: Optional[str] = None
    content: str = ""
    sender: Optional[str] = None
    status: str = "sent"
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    sent_at: datetime = Field(default_factory=utcnow)
