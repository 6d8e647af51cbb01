"""Errors raised by the upstream order API client."""

from typing import Optional


class UpstreamAPIError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, path: Optional[str] = None):
        self.status_code = status_code
        self.path = path
        super().__init__(f"Order API error: {status_code} - {message}")


class UpstreamTimeoutError(Exception):
    """Upstream call exceeded its timeout. Always retryable."""

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(f"Order API timeout after {timeout:.0f}s calling {path}")
