"""
Tests for RecapService.

Covers:
- Requesting generation submits to the generator
- A generator that refuses the submission fails the recap
- Completion is idempotent and notifies the owner once
- Grantee access follows grant scopes
- Comments: add, delete by author/owner, count bookkeeping
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from sprout.models.notification import Notification, NotificationType
from sprout.models.recap import RecapStatus
from sprout.models.shared_access import SharedAccessGrant, SharedAccessStatus
from sprout.recaps.errors import RecapAccessDeniedError, RecapNotFoundError
from sprout.recaps.generator import RecapGenerator
from sprout.recaps.lifecycle import CompletionOutcome, CompletionSignal
from sprout.services.notification_service import NotificationService
from sprout.services.recap_service import RecapService

PAYLOAD = {"title": "Spring week", "summary": "Lots of sunshine."}


def _service(db_session, generator=None) -> RecapService:
    return RecapService(
        db_session,
        generator=generator,
        notifications=NotificationService(db_session),
    )


def _create_recap(service: RecapService, owner_id: str = "owner_1"):
    start = datetime(2026, 4, 1, tzinfo=timezone.utc)
    return service.request_generation(
        owner_id=owner_id,
        date_range_start=start,
        date_range_end=start + timedelta(days=7),
    )


def _create_grant(db_session, owner_id: str, viewer_id: str, scopes):
    grant = SharedAccessGrant(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        viewer_id=viewer_id,
        role="viewer",
        status=SharedAccessStatus.ACTIVE.value,
        scopes=list(scopes),
    )
    db_session.add(grant)
    db_session.flush()
    return grant


def _notifications(db_session, user_id: str, notification_type: NotificationType):
    return (
        db_session.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.notification_type == notification_type,
        )
        .all()
    )


# =============================================================================
# Generation
# =============================================================================


class TestGeneration:
    def test_request_submits_to_generator(self, db_session):
        generator = MagicMock(spec=RecapGenerator)
        service = _service(db_session, generator)

        recap = _create_recap(service)

        generator.submit.assert_called_once_with(recap)
        assert recap.status == RecapStatus.GENERATING.value

    def test_refused_submission_fails_recap(self, db_session):
        generator = MagicMock(spec=RecapGenerator)
        generator.submit.side_effect = RuntimeError("queue full")
        service = _service(db_session, generator)

        recap = _create_recap(service)

        assert recap.status == RecapStatus.FAILED.value
        assert "queue full" in recap.failure_reason

    def test_request_requires_owner(self, db_session):
        with pytest.raises(ValueError):
            _create_recap(_service(db_session), owner_id="")

    def test_completion_notifies_owner_once(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        first = service.apply_completion(recap.id, CompletionSignal.success(PAYLOAD))
        second = service.apply_completion(recap.id, CompletionSignal.success(PAYLOAD))

        assert first.outcome == CompletionOutcome.COMPLETED
        assert second.outcome == CompletionOutcome.IGNORED
        ready = _notifications(db_session, "owner_1", NotificationType.RECAP_READY)
        assert len(ready) == 1
        assert ready[0].message == "Spring week"

    def test_failure_does_not_notify(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        result = service.apply_completion(recap.id, CompletionSignal.failure("no media"))

        assert result.outcome == CompletionOutcome.FAILED
        assert _notifications(db_session, "owner_1", NotificationType.RECAP_READY) == []

    def test_completion_for_unknown_recap(self, db_session):
        with pytest.raises(RecapNotFoundError):
            _service(db_session).apply_completion("missing", CompletionSignal.failure("x"))


# =============================================================================
# Access
# =============================================================================


class TestAccess:
    def test_owner_reads_own_recap(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        assert service.get_recap(recap.id, "owner_1").id == recap.id

    def test_stranger_denied(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        with pytest.raises(RecapAccessDeniedError):
            service.get_recap(recap.id, "stranger")

    def test_grantee_with_read_scope(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandma", ["recaps:read"])

        assert service.get_recap(recap.id, "grandma").id == recap.id
        assert [r.id for r in service.list_recaps("owner_1", "grandma")] == [recap.id]

    def test_grantee_without_like_scope_cannot_like(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandma", ["recaps:read"])

        with pytest.raises(RecapAccessDeniedError):
            service.toggle_like(recap.id, "grandma")

    def test_revoked_grant_denied(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        grant = _create_grant(db_session, "owner_1", "grandma", ["recaps:read"])
        grant.revoke()
        db_session.flush()

        with pytest.raises(RecapAccessDeniedError):
            service.list_recaps("owner_1", "grandma")

    def test_grantee_like_notifies_owner(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandma", ["recaps:read", "likes:write"])

        service.toggle_like(recap.id, "grandma", user_name="Grandma")

        assert recap.is_liked_by("grandma")
        love = _notifications(db_session, "owner_1", NotificationType.RECAP_LOVE)
        assert len(love) == 1
        assert love[0].actors == [{"id": "grandma", "name": "Grandma"}]

    def test_only_owner_toggles_favorite(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandma", ["recaps:read", "likes:write"])

        with pytest.raises(RecapAccessDeniedError):
            service.toggle_favorite(recap.id, "grandma")

    def test_favorite_and_milestone_on_failed_recap(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        service.apply_completion(recap.id, CompletionSignal.failure("boom"))

        service.toggle_favorite(recap.id, "owner_1")
        service.toggle_milestone(recap.id, "owner_1")

        assert recap.is_favorited is True
        assert recap.is_milestone is True
        assert recap.status == RecapStatus.FAILED.value


# =============================================================================
# Comments
# =============================================================================


class TestComments:
    def test_grantee_comment_counts_and_notifies(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandpa", ["recaps:read", "comments:write"])

        comment = service.add_comment(recap.id, "grandpa", "  So cute!  ", user_name="Grandpa")

        assert comment.text == "So cute!"
        assert recap.comment_count == 1
        assert recap.last_comment_at is not None
        assert len(_notifications(db_session, "owner_1", NotificationType.COMMENT)) == 1

    def test_owner_comment_does_not_notify(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        service.add_comment(recap.id, "owner_1", "Note to self")

        assert _notifications(db_session, "owner_1", NotificationType.COMMENT) == []

    def test_empty_comment_rejected(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)

        with pytest.raises(ValueError):
            service.add_comment(recap.id, "owner_1", "   ")

    def test_owner_deletes_grantee_comment(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        _create_grant(db_session, "owner_1", "grandpa", ["recaps:read", "comments:write"])
        comment = service.add_comment(recap.id, "grandpa", "Hello")

        assert service.delete_comment(comment.id, "owner_1") is True
        assert recap.comment_count == 0
        assert service.list_comments(recap.id, "owner_1") == []

    def test_other_user_cannot_delete(self, db_session):
        service = _service(db_session)
        recap = _create_recap(service)
        comment = service.add_comment(recap.id, "owner_1", "Mine")

        with pytest.raises(RecapAccessDeniedError):
            service.delete_comment(comment.id, "stranger")

    def test_delete_missing_comment(self, db_session):
        assert _service(db_session).delete_comment("missing", "owner_1") is False
