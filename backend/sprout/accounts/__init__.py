"""
Account access: account type, shared access and their resolution.
"""

from sprout.accounts.errors import (
    AccountError,
    InvitationError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationNotPendingError,
    InviteCodeExhaustedError,
    ResolutionFailure,
    SelfInvitationError,
    SharedAccessNotFoundError,
)
from sprout.accounts.models import (
    FULL_ACCESS_FALLBACK,
    AccountAccessSnapshot,
    AccountStatus,
    AccountStatusSource,
    AccountType,
    FallbackPolicy,
    ResolutionState,
    SharedAccess,
)
from sprout.accounts.resolver import AccountAccessResolver

__all__ = [
    "AccountError",
    "InvitationError",
    "InvitationExpiredError",
    "InvitationNotFoundError",
    "InvitationNotPendingError",
    "InviteCodeExhaustedError",
    "ResolutionFailure",
    "SelfInvitationError",
    "SharedAccessNotFoundError",
    "FULL_ACCESS_FALLBACK",
    "AccountAccessSnapshot",
    "AccountStatus",
    "AccountStatusSource",
    "AccountType",
    "FallbackPolicy",
    "ResolutionState",
    "SharedAccess",
    "AccountAccessResolver",
]
