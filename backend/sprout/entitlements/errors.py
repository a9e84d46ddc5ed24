"""
Entitlement error types.

Provider failures are caught and logged by EntitlementSync; they only
reach callers that talk to the provider directly (e.g. a restore-purchases
button).
"""

from typing import Optional

from sprout.errors import SproutError


class EntitlementError(SproutError):
    """Base exception for entitlement operations."""

    code = "entitlement_error"


class ProviderUnavailableError(EntitlementError):
    """The entitlement provider could not be reached or rejected the call."""

    code = "entitlement_provider_unavailable"

    def __init__(self, message: str, operation: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class ProviderNotConfiguredError(EntitlementError):
    """log_in/log_out was called before configure()."""

    code = "entitlement_provider_not_configured"


class WebhookAuthenticationError(EntitlementError):
    """Webhook request did not carry the shared secret."""

    code = "unauthorized"


class RedemptionError(EntitlementError):
    """Base exception for promo, gift and referral code redemption."""

    code = "redemption_error"


class InvalidCodeError(RedemptionError):
    """No promo, gift or referral code matches."""

    code = "invalid_code"


class CodeAlreadyRedeemedError(RedemptionError):
    """This user has already redeemed the code."""

    code = "code_already_redeemed"


class GiftAlreadyRedeemedError(RedemptionError):
    """Another user has already redeemed the gift code."""

    code = "gift_already_redeemed"


class CodeNotActiveError(RedemptionError):
    """The code is disabled or outside its validity window."""

    code = "code_not_active"


class CodeCapacityReachedError(RedemptionError):
    code = "code_capacity_reached"


class SelfReferralError(RedemptionError):
    code = "self_referral"


class AlreadyReferredError(RedemptionError):
    """The user has already been credited to a referrer."""

    code = "already_referred"


class ReferralCodeExhaustedError(RedemptionError):
    """Could not find an unused referral code."""

    code = "referral_code_exhausted"
