"""
Notification service: in-app notifications keyed by identity id.

Creates notifications for engagement events (comments, recap likes,
recap ready, invitation accepted) and serves the inbox.

Database errors are logged and re-raised; callers decide whether a
failed notification should fail their own operation.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sprout.models.notification import (
    Notification,
    NotificationStatus,
    NotificationType,
)

logger = logging.getLogger(__name__)

RECAP_ENTITY = "recap"
INVITATION_ENTITY = "family_invitation"


def _actor(user_id: str, name: Optional[str]) -> Dict[str, Any]:
    return {"id": user_id, "name": name or "Someone"}


class NotificationService:
    """
    Service for creating and managing notifications.

    Handles:
    - Notification creation
    - Event helpers for recap and family-sharing events
    - Inbox queries and read state
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: Optional[str] = None,
        message: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        actors: Optional[List[Dict[str, Any]]] = None,
        event_metadata: Optional[dict] = None,
    ) -> Notification:
        """
        Create an unread notification for user_id.

        Raises:
            ValueError: user_id missing
            SQLAlchemyError: persistence failed
        """
        if not user_id:
            raise ValueError("user_id is required")

        notification = Notification.create(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            actors=actors,
            event_metadata=event_metadata,
        )

        try:
            self.db.add(notification)
            self.db.flush()
        except SQLAlchemyError:
            logger.error(
                "Failed to create notification",
                extra={
                    "user_id": user_id,
                    "notification_type": notification_type.value,
                    "entity_id": entity_id,
                },
                exc_info=True,
            )
            raise

        logger.info(
            "Notification created",
            extra={
                "notification_id": notification.id,
                "user_id": user_id,
                "notification_type": notification_type.value,
                "entity_id": entity_id,
            },
        )
        return notification

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    def notify_comment(
        self,
        owner_id: str,
        recap_id: str,
        commenter_id: str,
        commenter_name: Optional[str],
        text: str,
    ) -> Optional[Notification]:
        """Tell a recap owner someone else commented. Own comments are skipped."""
        if commenter_id == owner_id:
            return None
        preview = text if len(text) <= 120 else text[:117] + "..."
        return self.notify(
            user_id=owner_id,
            notification_type=NotificationType.COMMENT,
            title=f"{commenter_name or 'Someone'} commented on your recap",
            message=preview,
            entity_type=RECAP_ENTITY,
            entity_id=recap_id,
            actors=[_actor(commenter_id, commenter_name)],
        )

    def notify_recap_love(
        self,
        owner_id: str,
        recap_id: str,
        liker_id: str,
        liker_name: Optional[str] = None,
    ) -> Optional[Notification]:
        """Tell a recap owner someone else liked it."""
        if liker_id == owner_id:
            return None
        return self.notify(
            user_id=owner_id,
            notification_type=NotificationType.RECAP_LOVE,
            title=f"{liker_name or 'Someone'} loved your recap",
            entity_type=RECAP_ENTITY,
            entity_id=recap_id,
            actors=[_actor(liker_id, liker_name)],
        )

    def notify_recap_ready(self, owner_id: str, recap_id: str, title: Optional[str] = None) -> Notification:
        return self.notify(
            user_id=owner_id,
            notification_type=NotificationType.RECAP_READY,
            title="Your recap is ready",
            message=title,
            entity_type=RECAP_ENTITY,
            entity_id=recap_id,
        )

    def notify_invitation_accepted(
        self,
        inviter_id: str,
        invitation_id: str,
        viewer_id: str,
        viewer_name: Optional[str] = None,
    ) -> Notification:
        return self.notify(
            user_id=inviter_id,
            notification_type=NotificationType.INVITATION_ACCEPTED,
            title=f"{viewer_name or 'Someone'} joined your family",
            entity_type=INVITATION_ENTITY,
            entity_id=invitation_id,
            actors=[_actor(viewer_id, viewer_name)],
        )

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def get_notifications(
        self,
        user_id: str,
        status: Optional[NotificationStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Notification], int]:
        """
        Get a user's notifications, newest first.

        Returns:
            Tuple of (notifications, total_count)
        """
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if status:
            query = query.filter(Notification.status == status)

        total = query.count()
        notifications = (
            query
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return notifications, total

    def get_unread_count(self, user_id: str) -> int:
        return (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD,
            )
            .count()
        )

    def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        """
        Mark one notification read.

        Returns:
            True if marked, False if not found or owned by someone else
        """
        notification = self._get_owned(notification_id, user_id)
        if not notification:
            return False

        notification.mark_read()
        self.db.flush()
        logger.info(
            "Notification marked as read",
            extra={"notification_id": notification_id, "user_id": user_id},
        )
        return True

    def mark_all_as_read(self, user_id: str) -> int:
        """Returns the number of notifications that changed."""
        now = datetime.now(timezone.utc)
        count = (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD,
            )
            .update(
                {
                    Notification.status: NotificationStatus.READ,
                    Notification.read_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.flush()
        logger.info(
            "All notifications marked as read",
            extra={"user_id": user_id, "count": count},
        )
        return count

    def delete(self, notification_id: str, user_id: str) -> bool:
        notification = self._get_owned(notification_id, user_id)
        if not notification:
            return False
        self.db.delete(notification)
        self.db.flush()
        logger.info(
            "Notification deleted",
            extra={"notification_id": notification_id, "user_id": user_id},
        )
        return True

    def _get_owned(self, notification_id: str, user_id: str) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
            .first()
        )
