"""
Identity data types shared by the identity provider, the linker and
every identity-change consumer.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


EMAIL_PASSWORD_PROVIDER = "password"
APPLE_PROVIDER = "apple.com"
GOOGLE_PROVIDER = "google.com"


@dataclass
class Identity:
    """
    The session principal.

    Linking mutates the same Identity in place: is_anonymous flips to
    False and provider_ids grows, while id never changes.
    """
    id: str
    is_anonymous: bool
    email: Optional[str] = None
    display_name: Optional[str] = None
    provider_ids: Tuple[str, ...] = ()

    def mark_linked(self, provider_id: str, email: Optional[str] = None) -> None:
        self.is_anonymous = False
        if email:
            self.email = email
        if provider_id not in self.provider_ids:
            self.provider_ids = self.provider_ids + (provider_id,)


@dataclass(frozen=True)
class Credential:
    """
    A permanent credential to sign in with or link to an anonymous identity.

    Secrets are excluded from repr so credentials are safe to log.
    """
    provider_id: str
    email: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    id_token: Optional[str] = field(default=None, repr=False)
    access_token: Optional[str] = field(default=None, repr=False)
    raw_nonce: Optional[str] = field(default=None, repr=False)

    @classmethod
    def email_password(cls, email: str, password: str) -> "Credential":
        if not email or not password:
            raise ValueError("email and password are required")
        return cls(
            provider_id=EMAIL_PASSWORD_PROVIDER,
            email=email.strip(),
            password=password,
        )

    @classmethod
    def oauth(
        cls,
        provider_id: str,
        id_token: Optional[str] = None,
        access_token: Optional[str] = None,
        raw_nonce: Optional[str] = None,
    ) -> "Credential":
        if not id_token and not access_token:
            raise ValueError("an id_token or access_token is required")
        return cls(
            provider_id=provider_id,
            id_token=id_token,
            access_token=access_token,
            raw_nonce=raw_nonce,
        )

    @property
    def is_email_password(self) -> bool:
        return self.provider_id == EMAIL_PASSWORD_PROVIDER


class OperationType(str, enum.Enum):
    """How a UserCredential was produced."""
    SIGN_IN = "signIn"
    LINK = "link"


@dataclass(frozen=True)
class UserCredential:
    """Result of a sign-in or link: the identity and the credential session."""
    identity: Identity
    operation: OperationType
    provider_id: Optional[str] = None
    is_new_user: bool = False
