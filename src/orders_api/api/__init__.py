"""Upstream order API client and pagination."""
