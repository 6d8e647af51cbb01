"""Abstract base repository for order storage."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set


class OrderRepository(ABC):
    """Abstract repository for order storage.

    Rows are keyed by the upstream order id; writes are idempotent.
    """

    @abstractmethod
    async def upsert_orders(self, rows: List[Dict[str, Any]]) -> int:
        """Insert or replace orders by id.

        An existing row is replaced wholesale unless it carries a strictly
        newer ``updated_at`` than the incoming row. ``synced_at`` is set on
        every written row.

        Args:
            rows: Transformed order rows (see services.transform)

        Returns:
            Number of rows actually written (stale rows excluded)
        """

    @abstractmethod
    async def get_existing_ids(self, ids: Iterable[int]) -> Set[int]:
        """Return the subset of ``ids`` present locally."""

    @abstractmethod
    async def get_updated_at_map(self, ids: Iterable[int]) -> Dict[int, Optional[datetime]]:
        """Map each locally present id to its stored ``updated_at``."""

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        """Fetch one stored order as a dict, or None."""

    @abstractmethod
    async def count_orders(self) -> int:
        """Total number of stored orders."""

    @abstractmethod
    async def latest_synced_at(self) -> Optional[datetime]:
        """Most recent ``synced_at`` across all rows."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage backend is accessible.

        Returns:
            True if healthy, False otherwise
        """
