"""
GlitchTip Error Monitoring Utilities

Helper functions for error tracking and context management.
"""

from typing import Any, Dict, Optional

import sentry_sdk

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)


def set_sync_context(
    source: str,
    window_hours: Optional[int] = None,
    **extra_tags
) -> None:
    """
    Set sync-run context for error tracking.

    Args:
        source: Run source (full, incremental, repair, webhook)
        window_hours: Incremental window, if any
        **extra_tags: Additional tags to add
    """
    try:
        sentry_sdk.set_tag("sync.source", source)
        if window_hours is not None:
            sentry_sdk.set_tag("sync.window_hours", window_hours)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {"source": source, "window_hours": window_hours}
        context_data.update(extra_tags)
        sentry_sdk.set_context("sync", context_data)

    except Exception as e:
        logger.warning(f"Failed to set sync context: {e}")


def capture_exception(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error"
) -> None:
    """
    Capture an exception and send to GlitchTip.

    Args:
        error: The exception to capture
        context: Additional context data
        level: Error level (error, warning, info)
    """
    try:
        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("custom", context)
            scope.set_level(level)
            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Capture a message and send to GlitchTip.

    Args:
        message: Message to capture
        level: Message level (info, warning, error)
        context: Additional context data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("custom", context)
            scope.set_level(level)
            sentry_sdk.capture_message(message)

    except Exception as e:
        logger.warning(f"Failed to capture message in GlitchTip: {e}")
