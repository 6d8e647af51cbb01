"""Pydantic models for upstream order API payloads."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from orders_api.config.constants import WEBHOOK_EVENTS


class PageMeta(BaseModel):
    """Pagination metadata returned alongside a page of orders."""

    current_page: Optional[int] = None
    total_pages: Optional[int] = None
    total_count: Optional[int] = None
    per_page: Optional[int] = None

    class Config:
        extra = "allow"


class OrdersPage(BaseModel):
    """One page of the order list endpoint.

    Orders stay raw dicts: the transform owns field mapping and defaults,
    so an odd field type upstream never drops a whole page.
    """

    orders: List[Dict[str, Any]] = Field(default_factory=list)
    meta: Optional[PageMeta] = None

    class Config:
        extra = "allow"


class WebhookPayload(BaseModel):
    """Order event pushed by the upstream platform."""

    event: Literal[WEBHOOK_EVENTS]
    order_id: int
    order_number: Optional[str] = None
    timestamp: Optional[str] = None
    data: Dict[str, Any]

    class Config:
        extra = "allow"
