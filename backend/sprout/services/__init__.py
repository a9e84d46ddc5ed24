"""
Business logic services.
"""

from sprout.services.family_access_service import FamilyAccessService
from sprout.services.notification_service import NotificationService
from sprout.services.recap_service import RecapService
from sprout.services.referral_service import ReferralService
from sprout.services.revenuecat_webhook_handler import RevenueCatWebhookHandler

__all__ = [
    "FamilyAccessService",
    "NotificationService",
    "RecapService",
    "ReferralService",
    "RevenueCatWebhookHandler",
]
