"""SQLAlchemy models for order data."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, TypeDecorator
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite stores datetimes without an offset, so values are normalized to
    UTC before binding and naive values read back are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Order(Base):
    """
    Local copy of one upstream order, keyed by the upstream id.

    Monetary amounts are kept as decimal-safe strings exactly as received.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    order_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    status_id: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    financial_status: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payment_status: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="", nullable=False)

    # Amounts
    total_price: Mapped[str] = mapped_column(String(64), default="0", nullable=False)
    subtotal_price: Mapped[str] = mapped_column(String(64), default="0", nullable=False)
    current_total_discounts: Mapped[str] = mapped_column(String(64), default="0", nullable=False)
    local_currency_amount: Mapped[str] = mapped_column(String(64), default="0", nullable=False)
    exchange_rate_usd: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Nested blobs
    customer: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    line_items: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    payment: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    # Affiliate attribution
    afid: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    affiliate_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliate_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliate_slug: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    affiliate_amount: Mapped[str] = mapped_column(String(64), default="0", nullable=False)

    # Refunds / chargebacks
    refunds: Mapped[Any] = mapped_column(JSON, default=list, nullable=False)
    chargeback_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chargeback_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    synced_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} updated_at={self.updated_at}>"


ORDER_COLUMNS = [column.name for column in Order.__table__.columns]
