"""Inbound trigger API called by storefront code.

Every method is fire-and-forget: failures are logged and never propagate
to the checkout, signup or cron code that raised the event.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .dispatch import TriggerEvaluator

logger = logging.getLogger(__name__)

USER_REGISTERED = "user_registered"
ORDER_PLACED = "order_placed"
CART_ABANDONED = "cart_abandoned"
INACTIVE_CUSTOMER = "inactive_customer"
EMAIL_OPENED = "email_opened"
EMAIL_CLICKED = "email_clicked"
USER_LOGIN = "user_login"


class EventTriggers:
    """Normalises storefront events and hands them to the trigger evaluator."""

    def __init__(self, evaluator: TriggerEvaluator) -> None:
        self._evaluator = evaluator

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        try:
            await self._evaluator.handle_event(event_name, payload)
        except Exception:
            logger.exception(f"Error handling {event_name} event")

    async def user_registered(self, user_id: str) -> None:
        await self.emit(USER_REGISTERED, {"user_id": user_id})

    async def order_placed(
        self, user_id: str, order_id: str, order_data: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.emit(
            ORDER_PLACED,
            {"user_id": user_id, "order_id": order_id, "order": order_data or {}},
        )

    async def cart_abandoned(self, user_id: str, cart_data: Dict[str, Any]) -> None:
        await self.emit(CART_ABANDONED, {"user_id": user_id, "cart": cart_data})

    async def inactive_customer(self, user_id: str, days_since_last_order: int) -> None:
        await self.emit(
            INACTIVE_CUSTOMER,
            {"user_id": user_id, "days_since_last_order": days_since_last_order},
        )

    async def email_opened(self, user_id: str, campaign_id: str) -> None:
        await self.emit(EMAIL_OPENED, {"user_id": user_id, "campaign_id": campaign_id})

    async def email_clicked(self, user_id: str, campaign_id: str, url: str = "") -> None:
        await self.emit(
            EMAIL_CLICKED, {"user_id": user_id, "campaign_id": campaign_id, "url": url}
        )

    async def user_login(self, user_id: str) -> None:
        await self.emit(USER_LOGIN, {"user_id": user_id})
