"""
Notification model for in-app user notifications.

Notifications are keyed by identity id. They are written by the
reconciliation core when engagement events happen (comments, likes,
recap ready, invitation accepted) and read by the app's inbox.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Enum, Index, String, Text

from sprout.db_base import Base
from sprout.models.base import JSONType, TimestampMixin


class NotificationType(str, enum.Enum):
    """Kinds of in-app notification."""
    COMMENT = "comment"
    RECAP_LOVE = "recap_love"
    RECAP_READY = "recap_ready"
    REMINDER = "reminder"
    STREAK = "streak"
    INVITATION_ACCEPTED = "invitation_accepted"


class NotificationStatus(str, enum.Enum):
    """
    Notification read status.

    Lifecycle: unread -> read
    """
    UNREAD = "unread"
    READ = "read"


class Notification(Base, TimestampMixin):
    """
    Core notification record.

    actors holds denormalized {name, avatar} briefs for rendering.
    """

    __tablename__ = "notifications"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id = Column(String(255), nullable=False, index=True)
    notification_type = Column(Enum(NotificationType), nullable=False, index=True)

    title = Column(String(500), nullable=True)
    message = Column(Text, nullable=True)

    entity_type = Column(String(100), nullable=True)
    entity_id = Column(String(255), nullable=True, index=True)

    actors = Column(JSONType, nullable=False, default=list)
    event_metadata = Column(JSONType, nullable=False, default=dict)

    status = Column(
        Enum(NotificationStatus),
        nullable=False,
        default=NotificationStatus.UNREAD,
        index=True,
    )
    read_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_notifications_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user_id={self.user_id}, "
            f"type={self.notification_type.value if self.notification_type else None})>"
        )

    @property
    def is_read(self) -> bool:
        return self.status == NotificationStatus.READ

    def mark_read(self) -> None:
        """Mark notification as read by user."""
        if self.status != NotificationStatus.READ:
            self.status = NotificationStatus.READ
            self.read_at = datetime.now(timezone.utc)

    @classmethod
    def create(
        cls,
        user_id: str,
        notification_type: NotificationType,
        title: Optional[str] = None,
        message: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        actors: Optional[List[Dict[str, Any]]] = None,
        event_metadata: Optional[dict] = None,
    ) -> "Notification":
        """Factory method to create an unread notification."""
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            actors=list(actors or []),
            event_metadata=event_metadata or {},
            status=NotificationStatus.UNREAD,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.notification_type.value,
            "title": self.title,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actors": list(self.actors or []),
            "metadata": dict(self.event_metadata or {}),
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
