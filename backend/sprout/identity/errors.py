"""
Identity error taxonomy.

Identity-affecting failures are always surfaced to the caller.
"""

from typing import Any, Dict, Optional

from sprout.errors import SproutError


class IdentityError(SproutError):
    """Base exception for identity operations."""

    code = "identity_error"


class CredentialConflictError(IdentityError):
    """
    The credential is already bound to a different identity.

    Never retried. The caller decides between "sign in instead" (the
    credential owns another account) and "retry" (transient provider state).
    """

    code = "credential_conflict"

    def __init__(
        self,
        message: str = "Credential is already linked to another account",
        provider_id: Optional[str] = None,
        email: Optional[str] = None,
        provider_code: Optional[str] = None,
        can_sign_in_instead: bool = True,
    ):
        super().__init__(message)
        self.provider_id = provider_id
        self.email = email
        self.provider_code = provider_code
        self.can_sign_in_instead = can_sign_in_instead

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider_id"] = self.provider_id
        data["can_sign_in_instead"] = self.can_sign_in_instead
        return data


class IdentityLinkError(IdentityError):
    """Linking produced an identity with a different id than the anonymous one."""

    code = "identity_link_mismatch"


class NoCurrentIdentityError(IdentityError):
    """An operation needed a signed-in identity and there was none."""

    code = "no_current_identity"


class IdentityProviderError(IdentityError):
    """The identity provider rejected the request or was unreachable."""

    code = "identity_provider_error"

    def __init__(self, message: str, provider_code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider_code = provider_code
        self.status_code = status_code
