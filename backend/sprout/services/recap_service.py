"""
Recap service: generation requests, completion, engagement and comments.

Generation:
1. request_generation() stores a GENERATING recap and hands it to the
   RecapGenerator
2. The generation worker later calls apply_completion() with a payload
   or a failure reason; repeated or late signals are ignored

Access:
- The owner can do everything
- Grantees with an active SharedAccessGrant can read (recaps:read), like
  (likes:write) and comment (comments:write)
- Favorite and milestone flags belong to the owner
- Nobody but the completion path writes generation state
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from sprout.models.recap import Recap, RecapComment, RecapStatus, RecapType
from sprout.models.shared_access import SharedAccessGrant, SharedAccessStatus
from sprout.recaps.errors import RecapAccessDeniedError, RecapNotFoundError
from sprout.recaps.generator import NullRecapGenerator, RecapGenerator
from sprout.recaps.lifecycle import (
    CompletionOutcome,
    CompletionResult,
    CompletionSignal,
    apply_completion,
)
from sprout.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SCOPE_READ = "recaps:read"
SCOPE_LIKE = "likes:write"
SCOPE_COMMENT = "comments:write"

MAX_COMMENT_LENGTH = 2000


class RecapService:
    """
    Service for the recap lifecycle.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        generator: Optional[RecapGenerator] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.session = session
        self.generator = generator or NullRecapGenerator()
        self.notifications = notifications

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def request_generation(
        self,
        owner_id: str,
        date_range_start: datetime,
        date_range_end: datetime,
        recap_type: RecapType = RecapType.WEEKLY,
        child_ids: Optional[List[str]] = None,
        media_entries: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Recap:
        """
        Create a GENERATING recap and submit it for generation.

        If the generator refuses the submission the recap is marked FAILED
        right away instead of waiting forever.

        Raises:
            ValueError: missing owner or inverted date range
        """
        if not owner_id:
            raise ValueError("owner_id is required")

        recap = Recap.create(
            owner_id=owner_id,
            date_range_start=date_range_start,
            date_range_end=date_range_end,
            recap_type=recap_type,
            child_ids=child_ids,
            media_entries=media_entries,
        )
        self.session.add(recap)
        self.session.flush()

        logger.info(
            "Recap generation requested",
            extra={
                "recap_id": recap.id,
                "owner_id": owner_id,
                "recap_type": recap.recap_type,
            },
        )

        try:
            self.generator.submit(recap)
        except Exception as e:
            logger.error(
                "Recap submission failed",
                extra={"recap_id": recap.id, "error": str(e)},
                exc_info=True,
            )
            apply_completion(recap, CompletionSignal.failure(f"submission failed: {e}"))
            self.session.flush()

        return recap

    def apply_completion(self, recap_id: str, signal: CompletionSignal) -> CompletionResult:
        """
        Apply a generation result. Idempotent per recap.

        Raises:
            RecapNotFoundError: unknown recap id
        """
        recap = (
            self.session.query(Recap)
            .filter(Recap.id == recap_id)
            .with_for_update()
            .first()
        )
        if not recap:
            raise RecapNotFoundError(f"Recap not found: {recap_id}")

        result = apply_completion(recap, signal)
        if not result.applied:
            return result

        self.session.flush()

        if result.outcome == CompletionOutcome.COMPLETED and self.notifications:
            self.notifications.notify_recap_ready(
                owner_id=recap.owner_id,
                recap_id=recap.id,
                title=(recap.ai_generated or {}).get("title"),
            )

        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_recap(self, recap_id: str, viewer_id: str) -> Recap:
        recap = self._get(recap_id)
        self._require_access(recap, viewer_id, SCOPE_READ)
        return recap

    def list_recaps(
        self,
        owner_id: str,
        viewer_id: str,
        status: Optional[RecapStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Recap]:
        """List owner_id's recaps, newest period first, if viewer_id may read them."""
        if viewer_id != owner_id and not self._grant_allows(owner_id, viewer_id, SCOPE_READ):
            raise RecapAccessDeniedError("No access to these recaps")

        query = self.session.query(Recap).filter(Recap.owner_id == owner_id)
        if status:
            query = query.filter(Recap.status == status.value)
        return (
            query
            .order_by(Recap.date_range_end.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Engagement (allowed in every status)
    # ------------------------------------------------------------------

    def toggle_like(self, recap_id: str, user_id: str, user_name: Optional[str] = None) -> Recap:
        recap = self._get(recap_id)
        self._require_access(recap, user_id, SCOPE_LIKE)

        liked = recap.toggle_like(user_id)
        self.session.flush()
        logger.info(
            "Recap like toggled",
            extra={"recap_id": recap_id, "user_id": user_id, "liked": liked},
        )

        if liked and self.notifications:
            self.notifications.notify_recap_love(
                owner_id=recap.owner_id,
                recap_id=recap.id,
                liker_id=user_id,
                liker_name=user_name,
            )
        return recap

    def toggle_favorite(self, recap_id: str, user_id: str) -> Recap:
        recap = self._get(recap_id)
        self._require_owner(recap, user_id)
        recap.toggle_favorite()
        self.session.flush()
        return recap

    def toggle_milestone(self, recap_id: str, user_id: str) -> Recap:
        recap = self._get(recap_id)
        self._require_owner(recap, user_id)
        recap.toggle_milestone()
        self.session.flush()
        return recap

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(
        self,
        recap_id: str,
        user_id: str,
        text: str,
        user_name: Optional[str] = None,
    ) -> RecapComment:
        """
        Add a comment and bump the recap's comment_count.

        The owner is notified of comments left by anyone else.
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Comment text is required")
        if len(text) > MAX_COMMENT_LENGTH:
            raise ValueError(f"Comment exceeds {MAX_COMMENT_LENGTH} characters")

        recap = self._get(recap_id)
        self._require_access(recap, user_id, SCOPE_COMMENT)

        comment = RecapComment(
            recap_id=recap.id,
            user_id=user_id,
            user_name=user_name,
            text=text,
        )
        self.session.add(comment)
        recap.record_comment_added()
        self.session.flush()

        logger.info(
            "Recap comment added",
            extra={"recap_id": recap_id, "comment_id": comment.id, "user_id": user_id},
        )

        if self.notifications:
            self.notifications.notify_comment(
                owner_id=recap.owner_id,
                recap_id=recap.id,
                commenter_id=user_id,
                commenter_name=user_name,
                text=text,
            )
        return comment

    def delete_comment(self, comment_id: str, user_id: str) -> bool:
        """
        Delete a comment. Allowed for its author and the recap owner.

        Returns:
            False if the comment does not exist
        """
        comment = self.session.query(RecapComment).filter(RecapComment.id == comment_id).first()
        if not comment:
            return False

        recap = self._get(comment.recap_id)
        if user_id not in (comment.user_id, recap.owner_id):
            raise RecapAccessDeniedError("Only the author or the recap owner can delete a comment")

        self.session.delete(comment)
        recap.record_comment_removed()
        self.session.flush()
        logger.info(
            "Recap comment deleted",
            extra={"recap_id": recap.id, "comment_id": comment_id, "user_id": user_id},
        )
        return True

    def list_comments(self, recap_id: str, viewer_id: str) -> List[RecapComment]:
        recap = self._get(recap_id)
        self._require_access(recap, viewer_id, SCOPE_READ)
        return (
            self.session.query(RecapComment)
            .filter(RecapComment.recap_id == recap_id)
            .order_by(RecapComment.created_at.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, recap_id: str) -> Recap:
        recap = self.session.query(Recap).filter(Recap.id == recap_id).first()
        if not recap:
            raise RecapNotFoundError(f"Recap not found: {recap_id}")
        return recap

    def _grant_allows(self, owner_id: str, viewer_id: str, scope: str) -> bool:
        grant = (
            self.session.query(SharedAccessGrant)
            .filter(
                SharedAccessGrant.owner_id == owner_id,
                SharedAccessGrant.viewer_id == viewer_id,
                SharedAccessGrant.status == SharedAccessStatus.ACTIVE.value,
            )
            .first()
        )
        return bool(grant and grant.has_scope(scope))

    def _require_access(self, recap: Recap, user_id: str, scope: str) -> None:
        if recap.owner_id == user_id:
            return
        if not self._grant_allows(recap.owner_id, user_id, scope):
            logger.warning(
                "Recap access denied",
                extra={"recap_id": recap.id, "user_id": user_id, "scope": scope},
            )
            raise RecapAccessDeniedError(f"Missing {scope} access to recap {recap.id}")

    def _require_owner(self, recap: Recap, user_id: str) -> None:
        if recap.owner_id != user_id:
            raise RecapAccessDeniedError("Only the recap owner can change this")
