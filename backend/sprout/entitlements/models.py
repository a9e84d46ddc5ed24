"""
Entitlement state and RevenueCat status normalization.

EntitlementState is cached in memory only and used for access gating,
never for financial settlement.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


SUBSCRIPTION_PRODUCTS = {
    "MONTHLY": "sprout_pro_monthly_v1",
    "YEARLY": "sprout_pro_yearly_v1",
}

# RevenueCat entitlement identifier that unlocks premium content
ENTITLEMENT_PRO = "pro"


class SubscriptionStatus(str, enum.Enum):
    """Normalized subscription status used for gating."""
    ACTIVE = "active"
    TRIAL = "trial"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SubscriptionStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.INACTIVE


ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse provider timestamps (ISO-8601 strings or epoch milliseconds).

    Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class EntitlementState:
    """Plan status for one identity as seen by the entitlement provider."""
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    product_id: Optional[str] = None
    plan: Optional[str] = None
    platform: Optional[str] = None
    will_renew: Optional[bool] = None
    expiration_date: Optional[datetime] = None
    comp_until: Optional[datetime] = None
    is_sandbox: bool = False

    def is_comp_active(self, now: Optional[datetime] = None) -> bool:
        if not self.comp_until:
            return False
        now = now or datetime.now(timezone.utc)
        comp_until = self.comp_until
        if comp_until.tzinfo is None:
            comp_until = comp_until.replace(tzinfo=timezone.utc)
        return now < comp_until

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.status in ACTIVE_STATUSES or self.is_comp_active(now)

    @classmethod
    def from_snapshot(cls, snapshot) -> "EntitlementState":
        """Build from a SubscriptionSnapshot row (or None for no record)."""
        if snapshot is None:
            return cls()
        return cls(
            status=SubscriptionStatus.parse(snapshot.status),
            product_id=snapshot.product_id,
            plan=snapshot.plan,
            platform=snapshot.platform,
            will_renew=snapshot.will_renew,
            expiration_date=parse_datetime(snapshot.expiration_date),
            comp_until=parse_datetime(snapshot.comp_until),
            is_sandbox=bool(snapshot.is_sandbox),
        )


INACTIVE_STATE = EntitlementState()


@dataclass(frozen=True)
class NormalizedSubscription:
    """Subscription facts extracted from a RevenueCat webhook payload."""
    app_user_id: Optional[str]
    event_type: Optional[str]
    status: SubscriptionStatus
    product_id: Optional[str] = None
    platform: Optional[str] = None
    will_renew: Optional[bool] = None
    expiration_date: Optional[datetime] = None
    original_purchase_date: Optional[datetime] = None
    is_sandbox: bool = False


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def normalize_revenuecat_event(
    payload: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> NormalizedSubscription:
    """
    Infer subscription state from common RevenueCat webhook shapes.

    Any entitlement that is flagged active, or whose expiry is in the
    future, makes the status ACTIVE (TRIAL when it is a trial period).
    Otherwise CANCEL* events map to CANCELLED and everything else to
    INACTIVE.

    Args:
        payload: Parsed webhook body
        now: Clock override for expiry comparison

    Returns:
        NormalizedSubscription
    """
    now = now or datetime.now(timezone.utc)
    event: Mapping[str, Any] = payload.get("event") or payload
    subscriber: Mapping[str, Any] = payload.get("subscriber") or {}
    entitlements: Dict[str, Any] = event.get("entitlements") or subscriber.get("entitlements") or {}

    product_id = _first(event.get("product_id"), event.get("productId"))
    expiration = _first(
        event.get("expiration_at_ms"),
        event.get("expiration_at"),
        event.get("expires_at"),
        event.get("expiration"),
    )
    purchased = _first(
        event.get("purchased_at_ms"),
        event.get("purchased_at"),
        event.get("original_purchase_date"),
    )
    will_renew = _first(event.get("will_renew"), event.get("auto_renew_status"))
    platform = _first(event.get("store"), event.get("platform"))
    environment = str(_first(event.get("environment"), payload.get("environment")) or "")
    is_sandbox = environment.upper() == "SANDBOX"

    active = False
    trial = False
    for entitlement in entitlements.values():
        entitlement = entitlement or {}
        expires = parse_datetime(entitlement.get("expires_date"))
        is_active = entitlement.get("active") is True or (expires is not None and expires > now)
        if not is_active:
            continue
        active = True
        product_id = product_id or _first(
            entitlement.get("product_identifier"), entitlement.get("productId")
        )
        expiration = expiration or entitlement.get("expires_date")
        purchased = purchased or entitlement.get("purchase_date")
        trial = trial or entitlement.get("is_trial") is True or entitlement.get("period_type") == "trial"

    # Event-level trial flag (RevenueCat v2 payloads carry period_type on the event)
    if not entitlements and event.get("period_type") in ("TRIAL", "trial"):
        trial = True

    event_type = str(event.get("type") or "").upper() or None
    if not entitlements and event_type in {
        "INITIAL_PURCHASE", "RENEWAL", "UNCANCELLATION", "PRODUCT_CHANGE", "NON_RENEWING_PURCHASE",
    }:
        expires = parse_datetime(expiration)
        active = expires is None or expires > now

    if active and trial:
        status = SubscriptionStatus.TRIAL
    elif active:
        status = SubscriptionStatus.ACTIVE
    elif event_type and "CANCEL" in event_type:
        status = SubscriptionStatus.CANCELLED
    else:
        status = SubscriptionStatus.INACTIVE

    app_user_id = _first(
        event.get("app_user_id"),
        payload.get("app_user_id"),
        subscriber.get("app_user_id"),
    )

    return NormalizedSubscription(
        app_user_id=str(app_user_id).strip() if app_user_id else None,
        event_type=event_type,
        status=status,
        product_id=product_id,
        platform=platform,
        will_renew=bool(will_renew) if will_renew is not None else None,
        expiration_date=parse_datetime(expiration),
        original_purchase_date=parse_datetime(purchased),
        is_sandbox=is_sandbox,
    )
