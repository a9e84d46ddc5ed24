"""
Firebase Auth REST exceptions.

Provider error strings (e.g. "EMAIL_EXISTS") are kept in provider_code so
callers can map them to user-facing copy.
"""

from typing import Any, Dict, Optional

from sprout.identity.errors import IdentityProviderError


# Error codes meaning "this credential already belongs to someone else"
CREDENTIAL_CONFLICT_CODES = frozenset({
    "EMAIL_EXISTS",
    "FEDERATED_USER_ID_ALREADY_LINKED",
    "CREDENTIAL_ALREADY_IN_USE",
})

# Error codes where retrying the same credential cannot help
INVALID_CREDENTIAL_CODES = frozenset({
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "EMAIL_NOT_FOUND",
    "INVALID_EMAIL",
    "INVALID_IDP_RESPONSE",
    "USER_DISABLED",
    "WEAK_PASSWORD",
})


class FirebaseAuthError(IdentityProviderError):
    """Base exception for Firebase Auth REST errors."""

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, provider_code=provider_code, status_code=status_code)
        self.response = response or {}


class FirebaseInvalidCredentialError(FirebaseAuthError):
    """Credential rejected (wrong password, unknown email, bad IdP token)."""

    code = "invalid_credential"


class FirebaseConnectionError(FirebaseAuthError):
    """Raised when network/connection errors occur."""

    def __init__(self, message: str = "Connection error - unable to reach Firebase Auth", **kwargs):
        super().__init__(message, **kwargs)


class FirebaseTimeoutError(FirebaseAuthError):
    """Raised when request times out."""

    def __init__(self, message: str = "Request timed out", **kwargs):
        super().__init__(message, **kwargs)
