"""
Tests for the Firebase Identity Toolkit client.

Covers:
- Anonymous start, email sign-in and linking emit identity transitions
- Linking keeps the anonymous id and flips is_anonymous
- Provider conflict codes map to CredentialConflictError
- Invalid credentials and transport errors map to Firebase errors
"""

import json

import httpx
import pytest

from sprout.identity.errors import CredentialConflictError, NoCurrentIdentityError
from sprout.identity.linker import IdentityLinker
from sprout.identity.models import APPLE_PROVIDER, Credential, Identity, OperationType
from sprout.integrations.firebase.client import FirebaseIdentityClient
from sprout.integrations.firebase.exceptions import (
    FirebaseConnectionError,
    FirebaseInvalidCredentialError,
)


class FakeIdentityToolkit:
    """Routes Identity Toolkit endpoints to canned responses."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.requests.append((endpoint, body, dict(request.url.params)))
        status_code, payload = self.responses.get(endpoint, (404, {"error": {"message": "NOT_FOUND"}}))
        return httpx.Response(status_code, json=payload)


def _error(code: str):
    return (400, {"error": {"code": 400, "message": code}})


@pytest.fixture
def toolkit():
    fake = FakeIdentityToolkit()
    fake.responses["accounts:signUp"] = (
        200, {"localId": "anon_u", "idToken": "anon-token", "refreshToken": "r1"}
    )
    return fake


@pytest.fixture
def client(toolkit, identity_stream):
    return FirebaseIdentityClient(
        api_key="fb-key",
        base_url="https://identity.test/v1",
        stream=identity_stream,
        transport=httpx.MockTransport(toolkit.handler),
    )


# =============================================================================
# Sessions
# =============================================================================


class TestSessions:
    @pytest.mark.asyncio
    async def test_anonymous_start_emits(self, client, toolkit, identity_stream):
        seen = []
        identity_stream.subscribe(seen.append)

        result = await client.start_anonymous_session()

        assert result.identity.is_anonymous is True
        assert client.id_token == "anon-token"
        assert seen == [result.identity]
        assert toolkit.requests[0][2] == {"key": "fb-key"}
        await client.close()

    @pytest.mark.asyncio
    async def test_email_sign_in(self, client, toolkit):
        toolkit.responses["accounts:signInWithPassword"] = (
            200, {"localId": "user_a", "idToken": "t", "email": "a@b.co"}
        )

        result = await client.sign_in_with_credential(Credential.email_password("a@b.co", "pw123456"))

        assert result.operation == OperationType.SIGN_IN
        assert client.current_identity.id == "user_a"
        assert client.current_identity.is_anonymous is False
        await client.close()

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, toolkit):
        toolkit.responses["accounts:signInWithPassword"] = _error("INVALID_LOGIN_CREDENTIALS")

        with pytest.raises(FirebaseInvalidCredentialError) as exc_info:
            await client.sign_in_with_credential(Credential.email_password("a@b.co", "nope1234"))

        assert exc_info.value.provider_code == "INVALID_LOGIN_CREDENTIALS"
        assert client.current_identity is None
        await client.close()

    @pytest.mark.asyncio
    async def test_sign_out_emits_none(self, client, identity_stream):
        await client.start_anonymous_session()
        seen = []
        identity_stream.subscribe(seen.append)

        await client.sign_out()
        await client.sign_out()

        assert seen == [None]
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self, identity_stream):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = FirebaseIdentityClient(
            api_key="fb-key",
            stream=identity_stream,
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(FirebaseConnectionError):
            await client.start_anonymous_session()
        await client.close()


# =============================================================================
# Linking
# =============================================================================


class TestLinking:
    @pytest.mark.asyncio
    async def test_email_link_keeps_anonymous_id(self, client, toolkit, identity_stream):
        toolkit.responses["accounts:update"] = (
            200, {"localId": "anon_u", "idToken": "perm-token", "email": "a@b.co"}
        )
        anonymous = (await client.start_anonymous_session()).identity
        seen = []
        identity_stream.subscribe(seen.append)

        result = await IdentityLinker(client).sign_in_or_link(
            Credential.email_password("a@b.co", "pw123456")
        )

        assert result.operation == OperationType.LINK
        assert result.identity is anonymous
        assert anonymous.id == "anon_u"
        assert anonymous.is_anonymous is False
        assert client.id_token == "perm-token"
        endpoint, body, _ = toolkit.requests[-1]
        assert endpoint == "accounts:update"
        assert body["idToken"] == "anon-token"
        assert seen == [anonymous]
        await client.close()

    @pytest.mark.asyncio
    async def test_apple_link_sends_idp_body(self, client, toolkit):
        toolkit.responses["accounts:signInWithIdp"] = (200, {"localId": "anon_u", "idToken": "t2"})
        await client.start_anonymous_session()

        await IdentityLinker(client).sign_in_or_link(
            Credential.oauth(APPLE_PROVIDER, id_token="apple-jwt", raw_nonce="nonce-1")
        )

        _, body, _ = toolkit.requests[-1]
        assert body["idToken"] == "anon-token"
        assert "providerId=apple.com" in body["postBody"]
        assert "nonce=nonce-1" in body["postBody"]
        assert APPLE_PROVIDER in client.current_identity.provider_ids
        await client.close()

    @pytest.mark.asyncio
    async def test_email_exists_is_conflict(self, client, toolkit):
        toolkit.responses["accounts:update"] = _error("EMAIL_EXISTS")
        anonymous = (await client.start_anonymous_session()).identity

        with pytest.raises(CredentialConflictError) as exc_info:
            await IdentityLinker(client).sign_in_or_link(
                Credential.email_password("taken@b.co", "pw123456")
            )

        assert exc_info.value.provider_code == "EMAIL_EXISTS"
        assert anonymous.is_anonymous is True
        await client.close()

    @pytest.mark.asyncio
    async def test_link_without_session(self, client):
        with pytest.raises(NoCurrentIdentityError):
            await client.link_with_credential(
                Identity(id="ghost", is_anonymous=True),
                Credential.email_password("a@b.co", "pw123456"),
            )
        await client.close()
