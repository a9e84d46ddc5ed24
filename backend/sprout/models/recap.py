"""
Recap model: an asynchronously generated summary of journal content.

Generation lifecycle: generating -> completed | failed

- GENERATING: request accepted, waiting for the content-generation service
- COMPLETED: ai_generated payload stored (present iff completed)
- FAILED: failure_reason stored, ai_generated stays empty

Terminal states are final. A new Recap is created to try again.

Engagement attributes (likes, is_favorited, is_milestone, comment_count)
are independent of generation status and may change at any time.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)

from sprout.db_base import Base
from sprout.models.base import JSONType, TimestampMixin
from sprout.recaps.errors import InvalidRecapTransitionError


class RecapStatus(str, enum.Enum):
    """Generation status of a recap."""
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class RecapType(str, enum.Enum):
    """Period a recap covers."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Valid state transitions
VALID_TRANSITIONS = {
    RecapStatus.GENERATING.value: frozenset({
        RecapStatus.COMPLETED.value,
        RecapStatus.FAILED.value,
    }),
    RecapStatus.COMPLETED.value: frozenset(),
    RecapStatus.FAILED.value: frozenset(),
}

TERMINAL_STATUSES = frozenset({RecapStatus.COMPLETED.value, RecapStatus.FAILED.value})

AI_GENERATED_FIELDS = ("title", "summary", "key_moments", "recap_text", "tone")


def known_ai_generated_fields(ai_generated: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only the payload keys a completed recap stores."""
    if not ai_generated:
        return {}
    return {key: ai_generated[key] for key in AI_GENERATED_FIELDS if key in ai_generated}


def _sort_media_entries(entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted((dict(e) for e in entries), key=lambda e: str(e.get("date") or ""))


class Recap(Base, TimestampMixin):
    """
    Recap generated for one owning account.

    - owner_id: identity that requested generation (the only writer of status)
    - child_ids: children the recap covers
    - media_entries: references to journal entries, ordered by date
    """

    __tablename__ = "recaps"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    owner_id = Column(String(255), nullable=False, index=True)
    child_ids = Column(JSONType, nullable=False, default=list)
    recap_type = Column(String(20), nullable=False, default=RecapType.WEEKLY.value)

    status = Column(
        String(20),
        nullable=False,
        default=RecapStatus.GENERATING.value,
        index=True,
    )

    ai_generated = Column(JSONType, nullable=True)
    failure_reason = Column(Text, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    date_range_start = Column(DateTime(timezone=True), nullable=False)
    date_range_end = Column(DateTime(timezone=True), nullable=False)
    media_entries = Column(JSONType, nullable=False, default=list)

    # Engagement
    likes = Column(JSONType, nullable=False, default=dict)
    is_favorited = Column(Boolean, nullable=False, default=False)
    is_milestone = Column(Boolean, nullable=False, default=False)
    comment_count = Column(Integer, nullable=False, default=0)
    last_comment_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_recaps_owner_status", "owner_id", "status"),
        Index("ix_recaps_owner_range_end", "owner_id", "date_range_end"),
    )

    def __repr__(self) -> str:
        return f"<Recap(id={self.id}, owner={self.owner_id}, status={self.status})>"

    @classmethod
    def create(
        cls,
        owner_id: str,
        date_range_start: datetime,
        date_range_end: datetime,
        recap_type: RecapType = RecapType.WEEKLY,
        child_ids: Optional[List[str]] = None,
        media_entries: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> "Recap":
        """Factory for a recap in GENERATING state with empty engagement."""
        if date_range_end < date_range_start:
            raise ValueError("date_range_end must not precede date_range_start")

        return cls(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            recap_type=recap_type.value,
            child_ids=list(child_ids or []),
            status=RecapStatus.GENERATING.value,
            ai_generated=None,
            date_range_start=date_range_start,
            date_range_end=date_range_end,
            media_entries=_sort_media_entries(media_entries or []),
            likes={},
            is_favorited=False,
            is_milestone=False,
            comment_count=0,
        )

    # ------------------------------------------------------------------
    # Generation state
    # ------------------------------------------------------------------

    @property
    def is_generating(self) -> bool:
        return self.status == RecapStatus.GENERATING.value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, target: RecapStatus) -> bool:
        return target.value in VALID_TRANSITIONS.get(self.status, frozenset())

    def _require_transition(self, target: RecapStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidRecapTransitionError(self.id, self.status, target.value)

    def mark_completed(self, ai_generated: Dict[str, Any]) -> None:
        """Store the generated payload and move to COMPLETED."""
        self._require_transition(RecapStatus.COMPLETED)
        payload = known_ai_generated_fields(ai_generated)
        if not payload:
            raise ValueError("ai_generated payload has none of: " + ", ".join(AI_GENERATED_FIELDS))

        self.ai_generated = payload
        self.status = RecapStatus.COMPLETED.value
        self.failure_reason = None
        self.generated_at = datetime.now(timezone.utc)

    def mark_failed(self, reason: str) -> None:
        """Record the failure reason and move to FAILED."""
        self._require_transition(RecapStatus.FAILED)
        self.status = RecapStatus.FAILED.value
        self.ai_generated = None
        self.failure_reason = (reason or "unknown")[:2000]
        self.failed_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Engagement (status independent)
    # ------------------------------------------------------------------

    @property
    def like_count(self) -> int:
        return sum(1 for liked in (self.likes or {}).values() if liked)

    def is_liked_by(self, user_id: str) -> bool:
        return (self.likes or {}).get(user_id) is True

    def toggle_like(self, user_id: str) -> bool:
        """
        Flip user_id's like. Liking also favorites the recap.

        Returns:
            True if the recap is now liked by user_id
        """
        likes = dict(self.likes or {})
        if likes.get(user_id) is True:
            likes.pop(user_id, None)
            liked = False
        else:
            likes[user_id] = True
            self.is_favorited = True
            liked = True
        # Reassign so the JSON column is flagged dirty
        self.likes = likes
        return liked

    def increment_likes(self, user_id: str) -> int:
        """Add user_id's like if missing. Returns the like count."""
        if not self.is_liked_by(user_id):
            self.likes = {**(self.likes or {}), user_id: True}
        return self.like_count

    def toggle_favorite(self) -> bool:
        self.is_favorited = not self.is_favorited
        return self.is_favorited

    def toggle_milestone(self) -> bool:
        self.is_milestone = not self.is_milestone
        return self.is_milestone

    def record_comment_added(self, at: Optional[datetime] = None) -> None:
        self.comment_count = (self.comment_count or 0) + 1
        self.last_comment_at = at or datetime.now(timezone.utc)

    def record_comment_removed(self) -> None:
        self.comment_count = max(0, (self.comment_count or 0) - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "child_ids": list(self.child_ids or []),
            "recap_type": self.recap_type,
            "status": self.status,
            "ai_generated": dict(self.ai_generated) if self.ai_generated else None,
            "failure_reason": self.failure_reason,
            "date_range": {
                "start": self.date_range_start.isoformat() if self.date_range_start else None,
                "end": self.date_range_end.isoformat() if self.date_range_end else None,
            },
            "media_entries": list(self.media_entries or []),
            "likes": dict(self.likes or {}),
            "like_count": self.like_count,
            "is_favorited": bool(self.is_favorited),
            "is_milestone": bool(self.is_milestone),
            "comment_count": self.comment_count or 0,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }


class RecapComment(Base, TimestampMixin):
    """A comment left on a recap by its owner or a grantee."""

    __tablename__ = "recap_comments"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    recap_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=True)
    text = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<RecapComment(id={self.id}, recap_id={self.recap_id})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recap_id": self.recap_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "text": self.text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
