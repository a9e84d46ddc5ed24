"""
Identity provider interface consumed by IdentityLinker and EntitlementSync.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sprout.identity.models import Credential, Identity, UserCredential
from sprout.identity.stream import IdentityStateStream


class IdentityProvider(ABC):
    """Abstract identity provider (credential sign-in, linking, session)."""

    @property
    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """The identity of the current session, or None when signed out."""

    @property
    @abstractmethod
    def identity_changes(self) -> IdentityStateStream:
        """Stream of identity transitions."""

    @abstractmethod
    async def sign_in_with_credential(self, credential: Credential) -> UserCredential:
        """Replace the current session with the credential's own identity."""

    @abstractmethod
    async def link_with_credential(
        self, identity: Identity, credential: Credential
    ) -> UserCredential:
        """
        Attach credential to identity, preserving identity.id.

        Raises:
            CredentialConflictError: credential belongs to another identity
        """

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""
