"""Core module - Logging, caching, signature verification, and event logging."""

from orders_api.core.cache import TTLCache, generate_cache_key
from orders_api.core.logger import setup_logger
from orders_api.core.signature import validate_webhook_request, verify_signature

__all__ = [
    "TTLCache",
    "generate_cache_key",
    "setup_logger",
    "validate_webhook_request",
    "verify_signature",
]
