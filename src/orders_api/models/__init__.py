"""Pydantic models for upstream payloads."""
