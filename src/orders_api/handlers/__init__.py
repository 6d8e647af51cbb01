"""Webhook handlers."""
