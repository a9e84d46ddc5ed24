"""
Sprout identity & entitlement reconciliation core.

Keeps anonymous-to-permanent identity transitions, the RevenueCat
entitlement session, family sharing grants and recap generation state
consistent with each other.
"""

__version__ = "0.1.0"
