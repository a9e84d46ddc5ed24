"""
RevenueCat webhook handler with idempotency support.

Processes RevenueCat subscription webhooks with:
- Shared-secret Bearer authorization (constant-time compare)
- Event deduplication by event id (headers, payload, or body hash)
- Raw event recording
- Status normalization and subscription snapshot upsert
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from sprout.auth.shared_secret import bearer_secret_matches
from sprout.entitlements.errors import WebhookAuthenticationError
from sprout.entitlements.models import NormalizedSubscription, normalize_revenuecat_event
from sprout.models.subscription import EntitlementWebhookEvent, SubscriptionSnapshot

logger = logging.getLogger(__name__)

EVENT_ID_HEADERS = ("x-event-id", "x-revenuecat-event-id")


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    event_id: Optional[str] = None
    app_user_id: Optional[str] = None
    status: Optional[str] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "message": self.message,
            "event_id": self.event_id,
            "status": self.status,
            "skipped_reason": self.skipped_reason,
            "error": self.error,
        }


def verify_authorization(authorization: Optional[str], secret: Optional[str]) -> None:
    """
    Check "Authorization: Bearer <secret>".

    Raises:
        WebhookAuthenticationError: secret unset, header missing or wrong
    """
    if not secret:
        logger.error("RevenueCat webhook secret not configured")
        raise WebhookAuthenticationError(
            "Webhook secret not configured", code="webhook_not_configured"
        )

    if not bearer_secret_matches(authorization, secret):
        logger.warning("RevenueCat webhook authorization failed")
        raise WebhookAuthenticationError("Invalid webhook authorization")


def resolve_event_id(
    headers: Mapping[str, str],
    payload: Mapping[str, Any],
    raw_body: bytes,
) -> str:
    """Pick the idempotency key: header, payload event id, payload id, or body hash."""
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in EVENT_ID_HEADERS:
        if lowered.get(name):
            return str(lowered[name])

    event = payload.get("event") or {}
    if isinstance(event, Mapping) and event.get("id"):
        return str(event["id"])
    if payload.get("id"):
        return str(payload["id"])

    return hashlib.sha256(raw_body).hexdigest()


class RevenueCatWebhookHandler:
    """
    Handler for RevenueCat webhooks with idempotency.

    Each event id is processed exactly once; redeliveries are skipped.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def _is_duplicate(self, event_id: str) -> bool:
        existing = self.db.query(EntitlementWebhookEvent).filter(
            EntitlementWebhookEvent.event_id == event_id
        ).first()
        return existing is not None

    def _record_event(
        self,
        event_id: str,
        raw_body: bytes,
        payload: Dict[str, Any],
        normalized: Optional[NormalizedSubscription],
    ) -> None:
        event = EntitlementWebhookEvent(
            event_id=event_id,
            app_user_id=normalized.app_user_id if normalized else None,
            event_type=normalized.event_type if normalized else None,
            payload_hash=hashlib.sha256(raw_body).hexdigest(),
            payload=payload,
            processed_at=datetime.now(timezone.utc),
        )
        self.db.add(event)

    def _upsert_snapshot(self, normalized: NormalizedSubscription) -> SubscriptionSnapshot:
        snapshot = self.db.get(SubscriptionSnapshot, normalized.app_user_id)
        if snapshot is None:
            snapshot = SubscriptionSnapshot(user_id=normalized.app_user_id)
            self.db.add(snapshot)

        snapshot.status = normalized.status.value
        snapshot.plan = normalized.product_id
        snapshot.product_id = normalized.product_id
        snapshot.platform = normalized.platform
        snapshot.will_renew = normalized.will_renew
        snapshot.expiration_date = normalized.expiration_date
        snapshot.original_purchase_date = normalized.original_purchase_date
        snapshot.is_sandbox = normalized.is_sandbox
        return snapshot

    def handle(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> WebhookProcessingResult:
        """
        Process one authorized webhook delivery.

        Args:
            raw_body: Request body bytes
            headers: Request headers
            payload: Parsed body (parsed from raw_body when omitted)

        Returns:
            WebhookProcessingResult

        Raises:
            ValueError: body is not a JSON object
        """
        if payload is None:
            try:
                payload = json.loads(raw_body or b"{}")
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON body: {e}")
        if not isinstance(payload, dict):
            raise ValueError("Webhook body must be a JSON object")

        event_id = resolve_event_id(headers, payload, raw_body)

        if self._is_duplicate(event_id):
            logger.info("Duplicate webhook skipped", extra={"event_id": event_id})
            return WebhookProcessingResult(
                processed=False,
                message="Duplicate webhook - already processed",
                event_id=event_id,
                skipped_reason="duplicate",
            )

        normalized = normalize_revenuecat_event(payload)

        if not normalized.app_user_id:
            logger.warning(
                "Webhook missing app_user_id",
                extra={"event_id": event_id, "payload_keys": list(payload.keys())},
            )
            # Record anyway so redeliveries are not reprocessed
            self._record_event(event_id, raw_body, payload, normalized)
            self.db.commit()
            return WebhookProcessingResult(
                processed=False,
                message="Missing app_user_id",
                event_id=event_id,
                error="missing_app_user_id",
            )

        try:
            self._upsert_snapshot(normalized)
            self._record_event(event_id, raw_body, payload, normalized)
            self.db.commit()
        except Exception as e:
            logger.error(
                "Error processing webhook",
                extra={"event_id": event_id, "app_user_id": normalized.app_user_id, "error": str(e)},
            )
            self.db.rollback()
            raise

        logger.info(
            "Webhook processed successfully",
            extra={
                "event_id": event_id,
                "app_user_id": normalized.app_user_id,
                "event_type": normalized.event_type,
                "status": normalized.status.value,
            },
        )
        return WebhookProcessingResult(
            processed=True,
            message="Subscription updated",
            event_id=event_id,
            app_user_id=normalized.app_user_id,
            status=normalized.status.value,
        )
