"""
Tests for NotificationService.

Covers:
- Event helpers skip self-notifications
- Inbox queries are scoped to the recipient
- Read state and deletion
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from sprout.models.notification import NotificationStatus, NotificationType
from sprout.services.notification_service import NotificationService


class TestEventHelpers:
    def test_comment_preview_truncated(self, db_session):
        service = NotificationService(db_session)

        notification = service.notify_comment(
            owner_id="owner_1",
            recap_id="recap_1",
            commenter_id="grandma",
            commenter_name="Grandma",
            text="x" * 300,
        )

        assert notification.notification_type == NotificationType.COMMENT
        assert notification.title == "Grandma commented on your recap"
        assert len(notification.message) == 120
        assert notification.message.endswith("...")
        assert notification.entity_id == "recap_1"

    def test_self_comment_skipped(self, db_session):
        result = NotificationService(db_session).notify_comment(
            owner_id="owner_1", recap_id="r", commenter_id="owner_1", commenter_name=None, text="hi"
        )

        assert result is None

    def test_self_love_skipped(self, db_session):
        assert NotificationService(db_session).notify_recap_love("owner_1", "r", "owner_1") is None

    def test_missing_name_uses_someone(self, db_session):
        notification = NotificationService(db_session).notify_recap_love("owner_1", "r", "viewer")

        assert notification.title == "Someone loved your recap"
        assert notification.actors == [{"id": "viewer", "name": "Someone"}]

    def test_user_id_required(self, db_session):
        with pytest.raises(ValueError):
            NotificationService(db_session).notify("", NotificationType.REMINDER)

    def test_database_error_reraised(self):
        session = MagicMock()
        session.flush.side_effect = SQLAlchemyError("disk full")

        with pytest.raises(SQLAlchemyError):
            NotificationService(session).notify_recap_ready("owner_1", "recap_1")


class TestInbox:
    def _seed(self, db_session):
        service = NotificationService(db_session)
        first = service.notify_recap_ready("owner_1", "recap_1", title="Week one")
        service.notify_recap_ready("owner_1", "recap_2")
        service.notify_recap_ready("someone_else", "recap_3")
        db_session.commit()
        return service, first

    def test_scoped_to_user(self, db_session):
        service, _ = self._seed(db_session)

        notifications, total = service.get_notifications("owner_1")

        assert total == 2
        assert {n.user_id for n in notifications} == {"owner_1"}
        assert service.get_unread_count("owner_1") == 2

    def test_mark_as_read(self, db_session):
        service, first = self._seed(db_session)

        assert service.mark_as_read(first.id, "owner_1") is True
        assert service.get_unread_count("owner_1") == 1
        unread, total = service.get_notifications("owner_1", status=NotificationStatus.UNREAD)
        assert total == 1
        assert unread[0].id != first.id

    def test_cannot_touch_others_notifications(self, db_session):
        service, first = self._seed(db_session)

        assert service.mark_as_read(first.id, "someone_else") is False
        assert service.delete(first.id, "someone_else") is False

    def test_mark_all_as_read(self, db_session):
        service, _ = self._seed(db_session)

        assert service.mark_all_as_read("owner_1") == 2
        assert service.get_unread_count("owner_1") == 0
        assert service.get_unread_count("someone_else") == 1

    def test_delete(self, db_session):
        service, first = self._seed(db_session)

        assert service.delete(first.id, "owner_1") is True
        _, total = service.get_notifications("owner_1")
        assert total == 1

    def test_to_dict(self, db_session):
        _, first = self._seed(db_session)

        data = first.to_dict()

        assert data["type"] == "recap_ready"
        assert data["message"] == "Week one"
        assert data["is_read"] is False
        assert data["created_at"] is not None
