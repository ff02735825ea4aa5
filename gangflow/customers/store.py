"""Customer store abstraction consumed by the workflow engine."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError

from .models import (
    CartSession,
    CustomerProfile,
    CustomerSegment,
    InactiveCustomer,
    MessageSend,
    Order,
    OrderStats,
)

logger = logging.getLogger(__name__)


class CustomerStore(Protocol):
    """Protocol for customer, segment, order and send-record backends."""

    async def get_customer(self, user_id: str) -> CustomerProfile | None:
        """Retrieve a customer by id."""

    async def list_customers(self) -> list[CustomerProfile]:
        """Return all customers."""

    async def upsert_customer(self, customer: CustomerProfile) -> None:
        """Insert or replace a customer."""

    async def update_customer(
        self, user_id: str, fields: dict[str, Any]
    ) -> CustomerProfile:
        """Apply ``fields`` to a customer.

        Known profile fields are set directly; anything else, or a value the
        field cannot hold, lands in ``attributes``. Raises ``KeyError`` for
        unknown customers.
        """

    async def add_tags(self, user_id: str, tags: list[str]) -> list[str]:
        """Add tags, returning the resulting tag list."""

    async def remove_tags(self, user_id: str, tags: list[str]) -> list[str]:
        """Remove tags, returning the resulting tag list."""

    async def get_segment(self, segment_id: str) -> CustomerSegment | None:
        """Retrieve a segment by id."""

    async def save_segment(self, segment: CustomerSegment) -> None:
        """Insert or replace a segment."""

    async def add_order(self, order: Order) -> None:
        """Record a placed order."""

    async def get_order_stats(self, user_id: str) -> OrderStats:
        """Return order count, lifetime spend and last order time."""

    async def list_inactive_customers(
        self, start: datetime, end: datetime
    ) -> list[InactiveCustomer]:
        """Customers whose most recent order falls in ``[start, end)``."""

    async def save_cart(self, cart: CartSession) -> None:
        """Insert or replace a cart session."""

    async def list_abandoned_carts(self, idle_before: datetime) -> list[CartSession]:
        """Unconverted, un-notified carts last touched before ``idle_before``."""

    async def mark_cart_notified(self, cart_id: str, at: datetime) -> None:
        """Remember that the abandoned-cart event fired for a cart."""

    async def record_send(self, send: MessageSend) -> MessageSend:
        """Persist an outbound email/SMS record."""

    async def list_sends(self, user_id: str | None = None) -> list[MessageSend]:
        """Return recorded sends, optionally for one customer."""


PROFILE_FIELDS = frozenset(
    {"email", "name", "phone", "marketing_opt_in", "sms_opt_in", "email_verified"}
)

# Field names used by the storefront admin forms.
FIELD_ALIASES = {
    "marketingOptIn": "marketing_opt_in",
    "smsOptIn": "sms_opt_in",
    "emailVerified": "email_verified",
}

_PROFILE_ADAPTERS = {
    name: TypeAdapter(CustomerProfile.model_fields[name].annotation)
    for name in PROFILE_FIELDS
}


def split_profile_fields(
    fields: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split an update map into profile columns and free-form attributes.

    Profile values are coerced to the column type (``"true"`` becomes
    ``True``). A value the column cannot hold, such as ``""`` for an opt-in
    flag, is kept in ``attributes`` under the key it was sent with.
    """
    profile: dict[str, Any] = {}
    attributes: dict[str, Any] = {}
    for key, value in fields.items():
        name = FIELD_ALIASES.get(key, key)
        if name not in PROFILE_FIELDS:
            attributes[key] = value
            continue
        try:
            profile[name] = _PROFILE_ADAPTERS[name].validate_python(value)
        except ValidationError:
            logger.warning(
                f"Value {value!r} is not valid for profile field {name}; "
                f"storing it as attribute {key}"
            )
            attributes[key] = value
    return profile, attributes
