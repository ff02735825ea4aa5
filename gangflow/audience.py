"""Segment membership and campaign audience resolution."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from .customers import CustomerStore


class Recipient(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class AudienceResolver:
    """Read-only view over segments and marketing consent."""

    def __init__(self, customers: CustomerStore) -> None:
        self._customers = customers

    async def is_user_in_segment(self, segment_id: str, user_id: str) -> bool:
        segment = await self._customers.get_segment(segment_id)
        return segment is not None and user_id in segment.customer_ids

    async def resolve_recipients(
        self, segment_id: Optional[str] = None
    ) -> list[Recipient]:
        """Return the customers a workflow or campaign is addressed to.

        With a segment, its members that still exist. Without one (a
        broadcast), every customer who opted in to marketing and verified
        their email address.
        """
        customers = await self._customers.list_customers()
        if segment_id is not None:
            segment = await self._customers.get_segment(segment_id)
            members = set(segment.customer_ids) if segment else set()
            selected = [c for c in customers if c.id in members]
        else:
            selected = [
                c for c in customers if c.marketing_opt_in and c.email_verified
            ]
        return [Recipient(id=c.id, email=c.email, name=c.name) for c in selected]
