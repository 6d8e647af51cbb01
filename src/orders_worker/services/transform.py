"""Upstream order record -> local row mapping.

Missing optional fields are replaced with neutral defaults so a partially
populated upstream record never fails the whole batch.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an upstream timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with ``Z``, an offset, or naive meaning UTC)
    and datetime objects. Unparsable values become None.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparsable timestamp from upstream: {value!r}")
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_money(value: Any) -> str:
    if value is None or value == "":
        return "0"
    return str(value)


def _as_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def _or_none(value: Any) -> Optional[Any]:
    # Empty strings from upstream mean "not set"
    return value if value not in (None, "") else None


def transform_order(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Map one upstream order record to a local row.

    Args:
        raw: Order dict as returned by the upstream API

    Returns:
        Row dict (without ``synced_at``), or None if the record has no id
    """
    order_id = raw.get("id")
    if order_id is None:
        logger.warning(
            "Dropping upstream order without id",
            extra={"context": {"order_number": raw.get("order_number")}},
        )
        return None

    exchange_rate = raw.get("exchange_rate_USD", raw.get("exchange_rate_usd"))

    return {
        "id": int(order_id),
        "order_number": _as_str(raw.get("order_number")),
        "status_id": _as_str(raw.get("status_id")),
        "financial_status": _as_int(raw.get("financial_status")),
        "payment_status": _as_int(raw.get("payment_status")),
        "currency": _as_str(raw.get("currency")),
        "total_price": _as_money(raw.get("total_price")),
        "subtotal_price": _as_money(raw.get("subtotal_price")),
        "current_total_discounts": _as_money(raw.get("current_total_discounts")),
        "local_currency_amount": _as_money(raw.get("local_currency_amount")),
        "exchange_rate_usd": _as_str(exchange_rate) if _or_none(exchange_rate) is not None else None,
        "customer": raw.get("customer"),
        "line_items": raw.get("line_items"),
        "payment": raw.get("payment"),
        "afid": _as_str(raw.get("afid")) if _or_none(raw.get("afid")) is not None else None,
        "affiliate_name": _or_none(raw.get("affiliate_name")),
        "affiliate_email": _or_none(raw.get("affiliate_email")),
        "affiliate_slug": _as_str(raw.get("affiliate_slug")),
        "affiliate_amount": _as_money(raw.get("affiliate_amount")),
        "refunds": raw.get("refunds") or [],
        "chargeback_received": _as_int(raw.get("chargeback_received")),
        "chargeback_at": parse_timestamp(raw.get("chargeback_at")),
        "created_at": parse_timestamp(raw.get("created_at")),
        "updated_at": parse_timestamp(raw.get("updated_at")),
    }


def transform_orders(raw_orders: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Transform a list of upstream orders, dropping records without an id."""
    rows = []
    for raw in raw_orders:
        row = transform_order(raw)
        if row is not None:
            rows.append(row)
    return rows
