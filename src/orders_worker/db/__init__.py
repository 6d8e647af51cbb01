"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import Order

__all__ = ["Base", "Order", "get_engine", "get_session_factory", "init_db"]
