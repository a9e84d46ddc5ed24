"""
Tests for IdentityLinker.

Covers:
- Anonymous sessions are linked and keep their identity id
- Permanent or absent sessions sign in instead
- Credential conflicts propagate unchanged
- link_if_anonymous_with_email returns None for non-anonymous sessions
"""

import pytest

from sprout.identity.errors import CredentialConflictError, IdentityLinkError
from sprout.identity.linker import IdentityLinker
from sprout.identity.models import (
    APPLE_PROVIDER,
    Credential,
    Identity,
    OperationType,
    UserCredential,
)


# =============================================================================
# Linking
# =============================================================================


class TestSignInOrLink:
    @pytest.mark.asyncio
    async def test_anonymous_session_is_linked_and_keeps_id(self, identity_provider):
        anonymous = identity_provider.start_anonymous("anon_u")
        linker = IdentityLinker(identity_provider)

        result = await linker.sign_in_or_link(
            Credential.email_password("parent@example.com", "hunter22")
        )

        assert result.operation == OperationType.LINK
        assert result.identity.id == "anon_u"
        assert result.identity is anonymous
        assert anonymous.is_anonymous is False
        assert anonymous.email == "parent@example.com"
        assert identity_provider.calls == [("link", "password")]

    @pytest.mark.asyncio
    async def test_oauth_credential_is_linked(self, identity_provider):
        identity_provider.start_anonymous("anon_u")
        linker = IdentityLinker(identity_provider)

        result = await linker.sign_in_or_link(
            Credential.oauth(APPLE_PROVIDER, id_token="apple-token", raw_nonce="n")
        )

        assert result.identity.id == "anon_u"
        assert APPLE_PROVIDER in result.identity.provider_ids

    @pytest.mark.asyncio
    async def test_permanent_session_signs_in(self, identity_provider):
        identity_provider.set_signed_in("user_a")
        linker = IdentityLinker(identity_provider)

        result = await linker.sign_in_or_link(
            Credential.email_password("other@example.com", "pw123456")
        )

        assert result.operation == OperationType.SIGN_IN
        assert identity_provider.calls == [("sign_in", "password")]

    @pytest.mark.asyncio
    async def test_no_session_signs_in(self, identity_provider):
        linker = IdentityLinker(identity_provider)

        result = await linker.sign_in_or_link(
            Credential.email_password("new@example.com", "pw123456")
        )

        assert result.operation == OperationType.SIGN_IN
        assert identity_provider.current_identity is result.identity

    @pytest.mark.asyncio
    async def test_conflict_propagates_and_identity_unchanged(self, identity_provider):
        credential = Credential.email_password("taken@example.com", "pw123456")
        identity_provider.register(credential, "user_other")
        anonymous = identity_provider.start_anonymous("anon_u")
        linker = IdentityLinker(identity_provider)

        with pytest.raises(CredentialConflictError) as exc_info:
            await linker.sign_in_or_link(credential)

        assert exc_info.value.provider_code == "CREDENTIAL_ALREADY_IN_USE"
        assert exc_info.value.can_sign_in_instead is True
        assert anonymous.is_anonymous is True
        assert identity_provider.current_identity is anonymous

    @pytest.mark.asyncio
    async def test_link_returning_different_id_is_rejected(self, identity_provider):
        identity_provider.start_anonymous("anon_u")

        async def bad_link(identity, credential):
            return UserCredential(
                identity=Identity(id="someone_else", is_anonymous=False),
                operation=OperationType.LINK,
            )

        identity_provider.link_with_credential = bad_link
        linker = IdentityLinker(identity_provider)

        with pytest.raises(IdentityLinkError):
            await linker.sign_in_or_link(Credential.email_password("a@b.co", "pw123456"))


# =============================================================================
# Email helper
# =============================================================================


class TestLinkIfAnonymousWithEmail:
    @pytest.mark.asyncio
    async def test_returns_none_when_signed_in(self, identity_provider):
        identity_provider.set_signed_in("user_a")
        linker = IdentityLinker(identity_provider)

        result = await linker.link_if_anonymous_with_email("a@b.co", "pw123456")

        assert result is None
        assert identity_provider.calls == []

    @pytest.mark.asyncio
    async def test_returns_none_when_signed_out(self, identity_provider):
        linker = IdentityLinker(identity_provider)

        assert await linker.link_if_anonymous_with_email("a@b.co", "pw123456") is None

    @pytest.mark.asyncio
    async def test_links_anonymous(self, identity_provider):
        identity_provider.start_anonymous("anon_u")
        linker = IdentityLinker(identity_provider)

        result = await linker.link_if_anonymous_with_email("a@b.co", "pw123456")

        assert result is not None
        assert result.identity.id == "anon_u"
        assert linker.is_current_user_anonymous() is False

    def test_email_password_requires_both(self):
        with pytest.raises(ValueError):
            Credential.email_password("", "pw")

    def test_credential_repr_hides_secrets(self):
        credential = Credential.email_password("a@b.co", "supersecret")

        assert "supersecret" not in repr(credential)
