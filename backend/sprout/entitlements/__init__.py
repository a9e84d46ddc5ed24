"""
Entitlements: subscription state, provider sync and premium gating.
"""

from sprout.entitlements.errors import (
    EntitlementError,
    ProviderNotConfiguredError,
    ProviderUnavailableError,
    WebhookAuthenticationError,
)
from sprout.entitlements.gate import GateDecision, GateRender, Navigator, PremiumGate
from sprout.entitlements.models import (
    ENTITLEMENT_PRO,
    SUBSCRIPTION_PRODUCTS,
    EntitlementState,
    SubscriptionStatus,
    normalize_revenuecat_event,
)
from sprout.entitlements.provider import EntitlementProvider
from sprout.entitlements.resolver import (
    EntitlementResolver,
    EntitlementSource,
    EntitlementView,
    SnapshotEntitlementSource,
)
from sprout.entitlements.sync import EntitlementSync

__all__ = [
    "EntitlementError",
    "ProviderNotConfiguredError",
    "ProviderUnavailableError",
    "WebhookAuthenticationError",
    "GateDecision",
    "GateRender",
    "Navigator",
    "PremiumGate",
    "ENTITLEMENT_PRO",
    "SUBSCRIPTION_PRODUCTS",
    "EntitlementState",
    "SubscriptionStatus",
    "normalize_revenuecat_event",
    "EntitlementProvider",
    "EntitlementResolver",
    "EntitlementSource",
    "EntitlementView",
    "SnapshotEntitlementSource",
    "EntitlementSync",
]
