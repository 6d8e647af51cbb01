"""Order storage repositories."""

from orders_worker.repositories.base import OrderRepository
from orders_worker.repositories.sql_repository import SQLOrderRepository

__all__ = ["OrderRepository", "SQLOrderRepository"]
