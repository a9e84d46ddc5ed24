"""
RevenueCat client over the v1 REST API.

This client handles:
- Associating the session with an app user (GET /subscribers/{id}, which
  creates the subscriber on first sight)
- Resetting to a fresh anonymous app user on log out
- Reading the "pro" entitlement for the associated app user

Documentation: https://www.revenuecat.com/docs/api-v1

SECURITY:
- The API key is sent as a Bearer token and never logged
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from sprout.entitlements.errors import ProviderNotConfiguredError
from sprout.entitlements.models import (
    ENTITLEMENT_PRO,
    EntitlementState,
    SubscriptionStatus,
    parse_datetime,
)
from sprout.entitlements.provider import EntitlementProvider
from sprout.integrations.revenuecat.exceptions import (
    RevenueCatAuthError,
    RevenueCatConnectionError,
    RevenueCatError,
    RevenueCatRateLimitError,
    RevenueCatTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.revenuecat.com/v1"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

ANONYMOUS_ID_PREFIX = "$RCAnonymousID:"


def new_anonymous_app_user_id() -> str:
    return f"{ANONYMOUS_ID_PREFIX}{uuid.uuid4().hex}"


def parse_subscriber(data: Dict[str, Any]) -> EntitlementState:
    """
    Convert a GET /subscribers response into an EntitlementState.

    Only the "pro" entitlement matters for gating.
    """
    subscriber = data.get("subscriber") or {}
    entitlement = (subscriber.get("entitlements") or {}).get(ENTITLEMENT_PRO)
    if not entitlement:
        return EntitlementState()

    product_id = entitlement.get("product_identifier")
    expires = parse_datetime(entitlement.get("expires_date"))
    subscription = (subscriber.get("subscriptions") or {}).get(product_id) or {}

    now = datetime.now(timezone.utc)

    # Lifetime purchases have no expiry
    active = expires is None or expires > now
    if active and subscription.get("period_type") == "trial":
        status = SubscriptionStatus.TRIAL
    elif active:
        status = SubscriptionStatus.ACTIVE
    elif subscription.get("unsubscribe_detected_at"):
        status = SubscriptionStatus.CANCELLED
    else:
        status = SubscriptionStatus.INACTIVE

    return EntitlementState(
        status=status,
        product_id=product_id,
        plan=ENTITLEMENT_PRO,
        platform=subscription.get("store"),
        will_renew=(
            None if not subscription
            else not subscription.get("unsubscribe_detected_at")
        ),
        expiration_date=expires,
        is_sandbox=bool(subscription.get("is_sandbox")),
    )


class RevenueCatClient(EntitlementProvider):
    """
    Async entitlement provider backed by RevenueCat.

    Tracks the currently associated app user id in memory. Unconfigured
    clients reject log_in/log_out.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize RevenueCat client.

        Args:
            base_url: API base URL
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._app_user_id: Optional[str] = None
        self._state = EntitlementState()

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def app_user_id(self) -> Optional[str]:
        return self._app_user_id

    @property
    def is_anonymous(self) -> bool:
        return self._app_user_id is None or self._app_user_id.startswith(ANONYMOUS_ID_PREFIX)

    async def configure(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("RevenueCat API key is required. Set REVENUECAT_API_KEY.")
        if self._client is not None:
            logger.debug("RevenueCat client already configured")
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "X-Platform": "server",
            },
            transport=self._transport,
        )
        self._app_user_id = new_anonymous_app_user_id()
        logger.info("RevenueCat client configured")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def log_in(self, identity_id: str) -> EntitlementState:
        if not identity_id:
            raise ValueError("identity_id is required")
        data = await self._get_subscriber(identity_id, operation="log_in")
        self._app_user_id = identity_id
        self._state = parse_subscriber(data)
        logger.info(
            "RevenueCat user logged in",
            extra={"app_user_id": identity_id, "status": self._state.status.value},
        )
        return self._state

    async def log_out(self) -> None:
        self._require_client()
        previous = self._app_user_id
        self._app_user_id = new_anonymous_app_user_id()
        self._state = EntitlementState()
        logger.info("RevenueCat user logged out", extra={"app_user_id": previous})

    async def get_entitlement_state(self) -> EntitlementState:
        if self.is_anonymous:
            return self._state
        data = await self._get_subscriber(self._app_user_id, operation="get_entitlement_state")
        self._state = parse_subscriber(data)
        return self._state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise ProviderNotConfiguredError("RevenueCat client is not configured")
        return self._client

    async def _get_subscriber(self, app_user_id: str, operation: str) -> Dict[str, Any]:
        client = self._require_client()
        path = f"/subscribers/{quote(app_user_id, safe='')}"

        try:
            response = await client.get(path)
        except httpx.TimeoutException as e:
            logger.error("RevenueCat timeout", extra={"operation": operation, "error": str(e)})
            raise RevenueCatTimeoutError(f"Request timeout: {e}", operation=operation)
        except httpx.RequestError as e:
            logger.error(
                "RevenueCat connection error",
                extra={"operation": operation, "error": str(e)},
            )
            raise RevenueCatConnectionError(f"Connection error: {e}", operation=operation)

        if response.status_code in (401, 403):
            raise RevenueCatAuthError(
                "RevenueCat rejected the API key",
                operation=operation,
                status_code=response.status_code,
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RevenueCatRateLimitError(
                "Rate limited by RevenueCat",
                retry_after=float(retry_after) if retry_after else None,
                operation=operation,
                status_code=429,
            )

        if response.status_code >= 400:
            error_body: Dict[str, Any] = {}
            try:
                error_body = response.json()
            except ValueError:
                pass
            logger.error(
                "RevenueCat API error",
                extra={"status_code": response.status_code, "operation": operation},
            )
            raise RevenueCatError(
                f"RevenueCat error: {response.status_code}",
                operation=operation,
                status_code=response.status_code,
                response=error_body,
            )

        return response.json()
