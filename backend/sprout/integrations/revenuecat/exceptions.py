"""
RevenueCat REST exceptions.
"""

from typing import Any, Dict, Optional

from sprout.entitlements.errors import ProviderUnavailableError


class RevenueCatError(ProviderUnavailableError):
    """Base exception for RevenueCat API errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, operation=operation, status_code=status_code)
        self.response = response or {}


class RevenueCatAuthError(RevenueCatError):
    """Raised when the API key is rejected (401/403)."""

    code = "revenuecat_auth_error"


class RevenueCatRateLimitError(RevenueCatError):
    """Raised when rate limited (429)."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RevenueCatConnectionError(RevenueCatError):
    """Raised when network/connection errors occur."""

    def __init__(self, message: str = "Connection error - unable to reach RevenueCat", **kwargs):
        super().__init__(message, **kwargs)


class RevenueCatTimeoutError(RevenueCatError):
    """Raised when request times out."""

    def __init__(self, message: str = "Request timed out", **kwargs):
        super().__init__(message, **kwargs)
