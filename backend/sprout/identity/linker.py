"""
IdentityLinker: upgrade an anonymous session to a permanent identity.

Anonymous users accumulate journal entries and recaps under their
anonymous id. Linking keeps that id, so nothing has to be migrated.
A plain sign-in is used only when the current session is already
permanent (or absent).
"""

import logging
from typing import Optional

from sprout.identity.errors import CredentialConflictError, IdentityLinkError
from sprout.identity.models import Credential, UserCredential
from sprout.identity.provider import IdentityProvider

logger = logging.getLogger(__name__)


class IdentityLinker:
    """Chooses between linking and signing in for a given credential."""

    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    def is_current_user_anonymous(self) -> bool:
        current = self.provider.current_identity
        return bool(current and current.is_anonymous)

    async def sign_in_or_link(self, credential: Credential) -> UserCredential:
        """
        Link credential to the anonymous identity, or sign in with it.

        Args:
            credential: Permanent credential (email/password or OAuth)

        Returns:
            UserCredential for the resulting identity

        Raises:
            CredentialConflictError: credential already bound to another identity
            IdentityLinkError: provider returned a different id after linking
        """
        current = self.provider.current_identity
        if current is not None and current.is_anonymous:
            return await self._link(current, credential)

        logger.info(
            "Signing in with credential",
            extra={"provider_id": credential.provider_id},
        )
        return await self.provider.sign_in_with_credential(credential)

    async def link_if_anonymous_with_email(
        self, email: str, password: str
    ) -> Optional[UserCredential]:
        """
        Link an email/password credential when the session is anonymous.

        Returns:
            The linked UserCredential, or None when the session is not
            anonymous (caller falls back to ordinary sign-in/sign-up)
        """
        current = self.provider.current_identity
        if current is None or not current.is_anonymous:
            return None

        credential = Credential.email_password(email, password)
        return await self._link(current, credential)

    async def _link(self, anonymous, credential: Credential) -> UserCredential:
        anonymous_id = anonymous.id
        logger.info(
            "Linking credential to anonymous identity",
            extra={"identity_id": anonymous_id, "provider_id": credential.provider_id},
        )

        try:
            result = await self.provider.link_with_credential(anonymous, credential)
        except CredentialConflictError as e:
            logger.warning(
                "Credential already linked to another identity",
                extra={
                    "identity_id": anonymous_id,
                    "provider_id": credential.provider_id,
                    "provider_code": e.provider_code,
                },
            )
            raise

        if result.identity.id != anonymous_id:
            logger.error(
                "Link returned a different identity id",
                extra={"identity_id": anonymous_id, "linked_id": result.identity.id},
            )
            raise IdentityLinkError(
                f"Linking replaced anonymous identity {anonymous_id} "
                f"with {result.identity.id}"
            )

        return result
