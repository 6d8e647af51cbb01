"""SQLAlchemy repository implementation (PostgreSQL in production, SQLite locally)."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func, or_, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import async_sessionmaker

from orders_api.config.constants import ID_LOOKUP_CHUNK_SIZE
from orders_api.core.logger import setup_logger
from orders_worker.db.models import ORDER_COLUMNS, Order
from orders_worker.repositories.base import OrderRepository

logger = setup_logger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _chunks(items: List[Any], size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SQLOrderRepository(OrderRepository):
    """Order storage on an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker):
        """Initialize repository.

        Args:
            session_factory: Async session factory bound to the engine
        """
        self.session_factory = session_factory

    def _build_upsert(self, dialect_name: str, values: List[Dict[str, Any]]):
        try:
            insert = _DIALECT_INSERTS[dialect_name]
        except KeyError:
            raise NotImplementedError(f"Upsert not supported on dialect {dialect_name!r}")

        stmt = insert(Order).values(values)
        excluded = stmt.excluded
        return stmt.on_conflict_do_update(
            index_elements=[Order.id],
            set_={name: excluded[name] for name in ORDER_COLUMNS if name != "id"},
            # Never let a stale write replace a newer row
            where=or_(
                Order.updated_at.is_(None),
                excluded.updated_at.is_(None),
                Order.updated_at <= excluded.updated_at,
            ),
        )

    async def upsert_orders(self, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0

        synced_at = datetime.now(timezone.utc)

        # One statement cannot touch the same id twice; last occurrence wins
        by_id: Dict[int, Dict[str, Any]] = {}
        for row in rows:
            by_id[row["id"]] = {**row, "synced_at": synced_at}
        values = list(by_id.values())

        async with self.session_factory() as session:
            stmt = self._build_upsert(session.bind.dialect.name, values).returning(Order.id)
            result = await session.execute(stmt)
            # Rows refused by the stale-write guard are not returned
            written = len(result.scalars().all())
            await session.commit()

        if written < len(values):
            logger.debug(f"Upserted {written} of {len(values)} orders ({len(values) - written} stale)")
        else:
            logger.debug(f"Upserted {written} orders")
        return written

    async def get_existing_ids(self, ids: Iterable[int]) -> Set[int]:
        id_list = list(dict.fromkeys(ids))
        existing: Set[int] = set()
        if not id_list:
            return existing

        async with self.session_factory() as session:
            for chunk in _chunks(id_list, ID_LOOKUP_CHUNK_SIZE):
                result = await session.execute(select(Order.id).where(Order.id.in_(chunk)))
                existing.update(result.scalars().all())

        return existing

    async def get_updated_at_map(self, ids: Iterable[int]) -> Dict[int, Optional[datetime]]:
        id_list = list(dict.fromkeys(ids))
        updated: Dict[int, Optional[datetime]] = {}
        if not id_list:
            return updated

        async with self.session_factory() as session:
            for chunk in _chunks(id_list, ID_LOOKUP_CHUNK_SIZE):
                result = await session.execute(
                    select(Order.id, Order.updated_at).where(Order.id.in_(chunk))
                )
                for order_id, updated_at in result.all():
                    updated[order_id] = updated_at

        return updated

    async def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            order = await session.get(Order, order_id)
            if order is None:
                return None
            return {name: getattr(order, name) for name in ORDER_COLUMNS}

    async def count_orders(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(Order))
            return int(result.scalar_one())

    async def latest_synced_at(self) -> Optional[datetime]:
        async with self.session_factory() as session:
            result = await session.execute(select(func.max(Order.synced_at)))
            return result.scalar_one_or_none()

    async def health_check(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
