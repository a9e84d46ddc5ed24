"""
Firebase ID token verifier for the HTTP surface.

This module handles:
- Fetching and caching Google's securetoken JWKS
- JWT signature, issuer, audience and expiry verification
- Mapping verified claims to an Identity

SECURITY:
- Only RS256 tokens issued for FIREBASE_PROJECT_ID are accepted
- Tokens are never logged

Documentation: https://firebase.google.com/docs/auth/admin/verify-id-tokens
"""

import logging
import time
from threading import Lock
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
)

from sprout.config.settings import get_settings
from sprout.errors import SproutError
from sprout.identity.models import Identity

logger = logging.getLogger(__name__)

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
ISSUER_PREFIX = "https://securetoken.google.com/"
ANONYMOUS_SIGN_IN_PROVIDER = "anonymous"


class TokenVerificationError(SproutError):
    """Raised when a Firebase ID token cannot be verified."""

    code = "verification_failed"


class FirebaseTokenVerifier:
    """
    Verifies Firebase-issued ID tokens using JWKS.

    Usage:
        verifier = FirebaseTokenVerifier(project_id="sprout-prod")
        identity = verifier.verify_identity(token)
    """

    JWKS_CACHE_DURATION = 3600

    CLOCK_SKEW_SECONDS = 60

    def __init__(self, project_id: Optional[str] = None, jwks_url: Optional[str] = None):
        self._project_id = project_id or get_settings().firebase_project_id
        if not self._project_id:
            raise TokenVerificationError(
                "FIREBASE_PROJECT_ID environment variable is required",
                code="config_error",
            )

        self._issuer = f"{ISSUER_PREFIX}{self._project_id}"
        self._jwks_url = jwks_url or FIREBASE_JWKS_URL

        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_client_lock = Lock()
        self._jwks_last_refresh: float = 0

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_client_lock:
            now = time.time()
            if (
                self._jwks_client is None
                or now - self._jwks_last_refresh > self.JWKS_CACHE_DURATION
            ):
                self._jwks_client = PyJWKClient(
                    self._jwks_url,
                    cache_keys=True,
                    lifespan=self.JWKS_CACHE_DURATION,
                )
                self._jwks_last_refresh = now
                logger.debug("Refreshed JWKS client", extra={"jwks_url": self._jwks_url})
            return self._jwks_client

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a Firebase ID token and return its claims.

        Raises:
            TokenVerificationError: If verification fails
        """
        if not token:
            raise TokenVerificationError("Token is required", code="missing_token")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self._issuer,
                audience=self._project_id,
                options={"require": ["sub", "iss", "aud", "exp", "iat"]},
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except ExpiredSignatureError:
            logger.warning("Token has expired")
            raise TokenVerificationError("Token has expired", code="token_expired")
        except InvalidIssuerError:
            logger.warning("Invalid token issuer")
            raise TokenVerificationError("Invalid token issuer", code="invalid_issuer")
        except InvalidAudienceError:
            logger.warning("Invalid token audience")
            raise TokenVerificationError("Invalid token audience", code="invalid_audience")
        except PyJWKClientError as e:
            logger.error("JWKS client error", extra={"error": str(e)})
            raise TokenVerificationError(f"Failed to fetch signing key: {e}", code="jwks_error")
        except InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
            raise TokenVerificationError(f"Invalid token: {e}", code="invalid_token")

        if not claims.get("sub"):
            raise TokenVerificationError("Token has an empty subject", code="invalid_token")
        return claims

    def verify_identity(self, token: str) -> Identity:
        return identity_from_claims(self.verify_token(token))


def identity_from_claims(claims: Dict[str, Any]) -> Identity:
    firebase = claims.get("firebase") or {}
    sign_in_provider = firebase.get("sign_in_provider")
    linked = tuple((firebase.get("identities") or {}).keys())
    return Identity(
        id=claims["sub"],
        is_anonymous=sign_in_provider == ANONYMOUS_SIGN_IN_PROVIDER,
        email=claims.get("email"),
        display_name=claims.get("name"),
        provider_ids=linked,
    )


_verifier_instance: Optional[FirebaseTokenVerifier] = None
_verifier_lock = Lock()


def get_verifier() -> FirebaseTokenVerifier:
    """
    Get the singleton FirebaseTokenVerifier instance.

    Raises:
        TokenVerificationError: If configuration is invalid
    """
    global _verifier_instance

    with _verifier_lock:
        if _verifier_instance is None:
            _verifier_instance = FirebaseTokenVerifier()
        return _verifier_instance
