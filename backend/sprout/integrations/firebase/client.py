"""
Firebase Auth client over the Identity Toolkit REST API.

This client handles:
- Anonymous session start (accounts:signUp)
- Email/password sign-in (accounts:signInWithPassword)
- OAuth sign-in with Apple/Google id tokens (accounts:signInWithIdp)
- Linking a credential to the current anonymous user (accounts:update,
  accounts:signInWithIdp with idToken)
- Emitting identity transitions on an IdentityStateStream

Documentation: https://firebase.google.com/docs/reference/rest/auth

SECURITY:
- API key, passwords and tokens are never logged
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from sprout.identity.errors import CredentialConflictError, NoCurrentIdentityError
from sprout.identity.models import (
    Credential,
    Identity,
    OperationType,
    UserCredential,
)
from sprout.identity.provider import IdentityProvider
from sprout.identity.stream import IdentityStateStream
from sprout.integrations.firebase.exceptions import (
    CREDENTIAL_CONFLICT_CODES,
    INVALID_CREDENTIAL_CODES,
    FirebaseAuthError,
    FirebaseConnectionError,
    FirebaseInvalidCredentialError,
    FirebaseTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

# requestUri is required by signInWithIdp but unused for id-token flows
_IDP_REQUEST_URI = "http://localhost"


class FirebaseIdentityClient(IdentityProvider):
    """
    Async identity provider backed by Firebase Auth.

    Holds the current session (identity + tokens) in memory.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        stream: Optional[IdentityStateStream] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Firebase client.

        Args:
            api_key: Firebase Web API key
            base_url: Identity Toolkit base URL (emulator override)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            stream: Identity stream to emit on (a new one by default)
            transport: Optional httpx transport (tests)
        """
        if not api_key:
            raise ValueError("Firebase API key is required. Set FIREBASE_API_KEY.")

        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._stream = stream or IdentityStateStream()
        self._identity: Optional[Identity] = None
        self._id_token: Optional[str] = None
        self._refresh_token: Optional[str] = None

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "FirebaseIdentityClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # IdentityProvider
    # ------------------------------------------------------------------

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def identity_changes(self) -> IdentityStateStream:
        return self._stream

    @property
    def id_token(self) -> Optional[str]:
        return self._id_token

    async def start_anonymous_session(self) -> UserCredential:
        """Create an anonymous user (first app launch)."""
        data = await self._post("accounts:signUp", {"returnSecureToken": True})
        identity = Identity(id=data["localId"], is_anonymous=True)
        self._set_session(identity, data)
        logger.info("Anonymous session started", extra={"identity_id": identity.id})
        self._stream.emit(identity)
        return UserCredential(
            identity=identity,
            operation=OperationType.SIGN_IN,
            provider_id=None,
            is_new_user=True,
        )

    async def sign_in_with_credential(self, credential: Credential) -> UserCredential:
        if credential.is_email_password:
            data = await self._post(
                "accounts:signInWithPassword",
                {
                    "email": credential.email,
                    "password": credential.password,
                    "returnSecureToken": True,
                },
            )
        else:
            data = await self._post("accounts:signInWithIdp", self._idp_body(credential))
            if data.get("needConfirmation"):
                raise CredentialConflictError(
                    "An account already exists with a different sign-in method",
                    provider_id=credential.provider_id,
                    email=data.get("email"),
                    provider_code="NEED_CONFIRMATION",
                )

        identity = Identity(
            id=data["localId"],
            is_anonymous=False,
            email=data.get("email") or credential.email,
            display_name=data.get("displayName"),
            provider_ids=(credential.provider_id,),
        )
        self._set_session(identity, data)
        logger.info(
            "Signed in with credential",
            extra={"identity_id": identity.id, "provider_id": credential.provider_id},
        )
        self._stream.emit(identity)
        return UserCredential(
            identity=identity,
            operation=OperationType.SIGN_IN,
            provider_id=credential.provider_id,
            is_new_user=bool(data.get("isNewUser")),
        )

    async def link_with_credential(
        self, identity: Identity, credential: Credential
    ) -> UserCredential:
        if self._identity is None or self._identity.id != identity.id or not self._id_token:
            raise NoCurrentIdentityError("Linking requires the identity's active session")

        if credential.is_email_password:
            data = await self._post(
                "accounts:update",
                {
                    "idToken": self._id_token,
                    "email": credential.email,
                    "password": credential.password,
                    "returnSecureToken": True,
                },
                credential=credential,
            )
        else:
            body = self._idp_body(credential)
            body["idToken"] = self._id_token
            data = await self._post("accounts:signInWithIdp", body, credential=credential)

        if data.get("localId") and data["localId"] != identity.id:
            # Firebase never does this for a link; refuse rather than swap users
            raise FirebaseAuthError(
                "Link returned a different user",
                provider_code="LOCAL_ID_MISMATCH",
            )

        # Same user, now permanent: mutate in place and refresh tokens
        identity.mark_linked(credential.provider_id, email=data.get("email") or credential.email)
        self._set_session(identity, data)
        logger.info(
            "Linked credential to anonymous identity",
            extra={"identity_id": identity.id, "provider_id": credential.provider_id},
        )
        self._stream.emit(identity)
        return UserCredential(
            identity=identity,
            operation=OperationType.LINK,
            provider_id=credential.provider_id,
            is_new_user=False,
        )

    async def sign_out(self) -> None:
        previous = self._identity
        self._identity = None
        self._id_token = None
        self._refresh_token = None
        if previous is not None:
            logger.info("Signed out", extra={"identity_id": previous.id})
            self._stream.emit(None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_session(self, identity: Identity, data: Dict[str, Any]) -> None:
        self._identity = identity
        self._id_token = data.get("idToken") or self._id_token
        self._refresh_token = data.get("refreshToken") or self._refresh_token

    def _idp_body(self, credential: Credential) -> Dict[str, Any]:
        post_body: Dict[str, str] = {"providerId": credential.provider_id}
        if credential.id_token:
            post_body["id_token"] = credential.id_token
        if credential.access_token:
            post_body["access_token"] = credential.access_token
        if credential.raw_nonce:
            post_body["nonce"] = credential.raw_nonce
        return {
            "postBody": urlencode(post_body),
            "requestUri": _IDP_REQUEST_URI,
            "returnIdpCredential": True,
            "returnSecureToken": True,
        }

    async def _post(
        self,
        endpoint: str,
        body: Dict[str, Any],
        credential: Optional[Credential] = None,
    ) -> Dict[str, Any]:
        """
        POST to an Identity Toolkit endpoint.

        Raises:
            CredentialConflictError: credential bound to another user
            FirebaseInvalidCredentialError: credential rejected
            FirebaseAuthError: any other API error
        """
        url = f"{self.base_url}/{endpoint}"

        try:
            response = await self._client.post(url, params={"key": self.api_key}, json=body)
        except httpx.TimeoutException as e:
            logger.error("Firebase Auth timeout", extra={"endpoint": endpoint, "error": str(e)})
            raise FirebaseTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Firebase Auth connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise FirebaseConnectionError(f"Connection error: {e}")

        if response.status_code < 400:
            return response.json()

        error_body: Dict[str, Any] = {}
        try:
            error_body = response.json()
        except ValueError:
            pass

        raw_message = str(error_body.get("error", {}).get("message", ""))
        # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
        provider_code = raw_message.split(":", 1)[0].strip() or None

        if provider_code in CREDENTIAL_CONFLICT_CODES:
            raise CredentialConflictError(
                "Credential is already linked to another account",
                provider_id=credential.provider_id if credential else None,
                email=credential.email if credential else None,
                provider_code=provider_code,
            )

        if provider_code in INVALID_CREDENTIAL_CODES:
            raise FirebaseInvalidCredentialError(
                f"Credential rejected: {provider_code}",
                provider_code=provider_code,
                status_code=response.status_code,
                response=error_body,
            )

        logger.error(
            "Firebase Auth API error",
            extra={
                "status_code": response.status_code,
                "endpoint": endpoint,
                "provider_code": provider_code,
            },
        )
        raise FirebaseAuthError(
            f"Firebase Auth error: {response.status_code} - {provider_code or 'unknown'}",
            provider_code=provider_code,
            status_code=response.status_code,
            response=error_body,
        )
