"""
Account access and family sharing errors.
"""

from typing import Optional

from sprout.errors import SproutError


class AccountError(SproutError):
    """Base exception for account access operations."""

    code = "account_error"


class ResolutionFailure(AccountError):
    """
    Account status could not be resolved.

    Never surfaced to the UI as an exception; the resolver records it and
    degrades to its fallback policy.
    """

    code = "account_resolution_failed"

    def __init__(self, message: str, identity_id: Optional[str] = None):
        super().__init__(message)
        self.identity_id = identity_id


class InvitationError(AccountError):
    """Base exception for the invitation workflow."""

    code = "invitation_error"


class InvitationNotFoundError(InvitationError):
    code = "invitation_not_found"


class InvitationExpiredError(InvitationError):
    code = "invitation_expired"


class InvitationNotPendingError(InvitationError):
    code = "invitation_not_pending"


class SelfInvitationError(InvitationError):
    """An owner tried to accept their own invitation."""

    code = "self_invitation"


class InviteCodeExhaustedError(InvitationError):
    """Could not find an unused share code."""

    code = "invite_code_exhausted"


class SharedAccessNotFoundError(AccountError):
    code = "shared_access_not_found"
