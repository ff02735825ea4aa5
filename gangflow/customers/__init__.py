"""Customer, segment and send-record storage."""

from __future__ import annotations

from typing import Optional

from ..config import GangflowConfig, load_config
from .inmemory import InMemoryCustomerStore
from .models import (
    CartSession,
    CustomerProfile,
    CustomerSegment,
    InactiveCustomer,
    MessageSend,
    Order,
    OrderStats,
)
from .store import CustomerStore

_store_instance: CustomerStore | None = None


def get_customer_store(
    database_url: Optional[str] = None, config: Optional[GangflowConfig] = None
) -> CustomerStore:
    """Factory function to obtain the customer store.

    ``database_url`` is an async SQLAlchemy URL (for example
    ``sqlite+aiosqlite:///shop.db``). It falls back to
    ``GANGFLOW_CUSTOMER_DATABASE_URL`` and the loaded configuration; without
    one an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and not database_url and config is None:
        return _store_instance

    database_url = database_url or (config or load_config()).customer_database_url

    if not database_url:
        _store_instance = InMemoryCustomerStore()
        return _store_instance

    from ..db import CustomerDB

    _store_instance = CustomerDB(database_url)
    return _store_instance


__all__ = [
    "CartSession",
    "CustomerProfile",
    "CustomerSegment",
    "CustomerStore",
    "InactiveCustomer",
    "InMemoryCustomerStore",
    "MessageSend",
    "Order",
    "OrderStats",
    "get_customer_store",
]
