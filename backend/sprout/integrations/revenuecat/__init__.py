"""
RevenueCat integration (entitlement provider).
"""

from sprout.integrations.revenuecat.client import RevenueCatClient, parse_subscriber
from sprout.integrations.revenuecat.exceptions import (
    RevenueCatAuthError,
    RevenueCatConnectionError,
    RevenueCatError,
    RevenueCatRateLimitError,
    RevenueCatTimeoutError,
)

__all__ = [
    "RevenueCatClient",
    "parse_subscriber",
    "RevenueCatAuthError",
    "RevenueCatConnectionError",
    "RevenueCatError",
    "RevenueCatRateLimitError",
    "RevenueCatTimeoutError",
]
