"""
Subscription snapshot and webhook event models.

The snapshot is the server-side mirror of RevenueCat's view of a user's
plan, written only by the RevenueCat webhook. It drives access gating and
is never used for financial settlement.

EntitlementWebhookEvent is used for idempotency - each RevenueCat event is
processed exactly once.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, func

from sprout.db_base import Base
from sprout.models.base import JSONType, TimestampMixin


class SubscriptionSnapshot(Base, TimestampMixin):
    """Normalized subscription state for one identity."""

    __tablename__ = "subscription_snapshots"

    user_id = Column(
        String(255),
        primary_key=True,
        comment="Identity id, equal to RevenueCat app_user_id",
    )

    status = Column(
        String(20),
        nullable=False,
        default="inactive",
        comment="active, trial, inactive, cancelled",
    )

    plan = Column(String(255), nullable=True)
    product_id = Column(String(255), nullable=True)
    platform = Column(String(50), nullable=True)
    will_renew = Column(Boolean, nullable=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True)
    original_purchase_date = Column(DateTime(timezone=True), nullable=True)
    is_sandbox = Column(Boolean, nullable=False, default=False)
    comp_until = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Complimentary access end; active while in the future",
    )

    def __repr__(self) -> str:
        return f"<SubscriptionSnapshot(user_id={self.user_id}, status={self.status})>"


class EntitlementWebhookEvent(Base):
    """
    Tracks received RevenueCat webhook events for deduplication.

    RevenueCat retries deliveries, so the same event may arrive several times.
    """

    __tablename__ = "entitlement_webhook_events"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    event_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Event id from header, payload, or SHA-256 of the raw body",
    )

    app_user_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=True)
    payload_hash = Column(String(64), nullable=True)
    payload = Column(JSONType, nullable=True)

    received_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_entitlement_webhook_events_received", "received_at"),
    )

    def __repr__(self) -> str:
        return f"<EntitlementWebhookEvent(event_id={self.event_id}, app_user_id={self.app_user_id})>"
