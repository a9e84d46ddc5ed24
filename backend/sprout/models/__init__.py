"""
Database models for family sharing, subscriptions, referrals, recaps and
notifications.
"""

from sprout.models.base import TimestampMixin, generate_uuid
from sprout.models.shared_access import (
    FamilyInvitation,
    InvitationStatus,
    SharedAccessGrant,
    SharedAccessStatus,
)
from sprout.models.subscription import SubscriptionSnapshot, EntitlementWebhookEvent
from sprout.models.recap import Recap, RecapComment, RecapStatus, RecapType
from sprout.models.notification import Notification, NotificationStatus, NotificationType
from sprout.models.referral import PromoCode, PromoRedemption, Referral, ReferralProfile

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    "FamilyInvitation",
    "InvitationStatus",
    "SharedAccessGrant",
    "SharedAccessStatus",
    "SubscriptionSnapshot",
    "EntitlementWebhookEvent",
    "Recap",
    "RecapComment",
    "RecapStatus",
    "RecapType",
    "Notification",
    "NotificationStatus",
    "NotificationType",
    "PromoCode",
    "PromoRedemption",
    "Referral",
    "ReferralProfile",
]
