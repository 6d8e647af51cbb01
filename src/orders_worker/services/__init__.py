"""Sync, reconciliation, monitoring and scheduling services."""
