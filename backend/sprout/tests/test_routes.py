"""
HTTP surface tests.

The database dependency is bound to the per-test SQLite engine and the
Firebase token dependency is replaced with a header-driven fake:
"Authorization: Bearer <identity id>" authenticates as that id, and ids
starting with "anon_" are anonymous.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi import Header, HTTPException
from fastapi.testclient import TestClient

from sprout.auth.dependencies import get_current_identity, get_permanent_identity
from sprout.database.session import get_db_session
from sprout.identity.models import Identity
from sprout.main import app
from sprout.models.recap import Recap
from sprout.models.subscription import SubscriptionSnapshot


def _auth(identity_id: str) -> dict:
    return {"Authorization": f"Bearer {identity_id}"}


@pytest.fixture
def client(session_factory, settings):
    async def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    async def override_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        identity_id = authorization[7:]
        return Identity(id=identity_id, is_anonymous=identity_id.startswith("anon_"))

    async def override_permanent(authorization: Optional[str] = Header(default=None)) -> Identity:
        identity = await override_identity(authorization)
        if identity.is_anonymous:
            raise HTTPException(status_code=403, detail="A permanent account is required")
        return identity

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_current_identity] = override_identity
    app.dependency_overrides[get_permanent_identity] = override_permanent
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_recap(client, owner_id="owner_1") -> dict:
    start = datetime(2026, 6, 1, tzinfo=timezone.utc)
    response = client.post(
        "/api/recaps",
        json={
            "date_range_start": start.isoformat(),
            "date_range_end": (start + timedelta(days=7)).isoformat(),
            "child_ids": ["child_1"],
        },
        headers=_auth(owner_id),
    )
    assert response.status_code == 202
    return response.json()


# =============================================================================
# Health and auth
# =============================================================================


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_token(self, client):
        assert client.get("/api/account/status").status_code == 401


# =============================================================================
# Webhook
# =============================================================================


class TestWebhookRoute:
    def _payload(self, event_id="evt_1"):
        expires = datetime.now(timezone.utc) + timedelta(days=30)
        return {
            "event": {
                "id": event_id,
                "type": "INITIAL_PURCHASE",
                "app_user_id": "user_a",
                "product_id": "sprout_pro_monthly_v1",
                "expiration_at_ms": int(expires.timestamp() * 1000),
            }
        }

    def test_authorized_delivery_updates_snapshot(self, client, session_factory):
        response = client.post(
            "/api/webhooks/revenuecat",
            json=self._payload(),
            headers={"Authorization": "Bearer whsec_test"},
        )

        assert response.status_code == 200
        assert response.json()["processed"] is True
        session = session_factory()
        try:
            assert session.get(SubscriptionSnapshot, "user_a").status == "active"
        finally:
            session.close()

    def test_duplicate_acknowledged(self, client):
        headers = {"Authorization": "Bearer whsec_test"}
        client.post("/api/webhooks/revenuecat", json=self._payload(), headers=headers)

        response = client.post("/api/webhooks/revenuecat", json=self._payload(), headers=headers)

        assert response.status_code == 200
        assert response.json()["processed"] is False

    def test_wrong_secret(self, client):
        response = client.post(
            "/api/webhooks/revenuecat",
            json=self._payload(),
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401

    def test_invalid_json(self, client):
        response = client.post(
            "/api/webhooks/revenuecat",
            content=b"{not json",
            headers={"Authorization": "Bearer whsec_test", "Content-Type": "application/json"},
        )

        assert response.status_code == 400


# =============================================================================
# Family sharing and account status
# =============================================================================


class TestFamilyRoutes:
    def test_invite_accept_and_account_status(self, client):
        created = client.post(
            "/api/family/invitations",
            json={"invitee_contact": "grandma@example.com", "scopes": ["recaps:read", "likes:write"]},
            headers=_auth("owner_1"),
        )
        assert created.status_code == 201
        code = created.json()["invite_code"]

        accepted = client.post(
            "/api/family/invitations/accept",
            json={"invite_code": code},
            headers=_auth("grandma"),
        )
        assert accepted.status_code == 200
        assert accepted.json()["scopes"] == ["recaps:read", "likes:write"]

        status_response = client.get("/api/account/status", headers=_auth("grandma"))
        assert status_response.json()["account_type"] == "shared"
        assert status_response.json()["shared_access"][0]["granter_identity_id"] == "owner_1"

        owner_status = client.get("/api/account/status", headers=_auth("owner_1"))
        assert owner_status.json() == {"account_type": "full", "shared_access": []}

    def test_anonymous_cannot_invite(self, client):
        response = client.post(
            "/api/family/invitations",
            json={"invitee_contact": "x@example.com"},
            headers=_auth("anon_u"),
        )

        assert response.status_code == 403

    def test_unknown_code(self, client):
        response = client.post(
            "/api/family/invitations/accept",
            json={"invite_code": "ZZZZZZ"},
            headers=_auth("grandma"),
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "invitation_not_found"

    def test_revoke_grant(self, client):
        code = client.post(
            "/api/family/invitations",
            json={"invitee_contact": "aunt@example.com"},
            headers=_auth("owner_1"),
        ).json()["invite_code"]
        client.post("/api/family/invitations/accept", json={"invite_code": code}, headers=_auth("aunt"))

        response = client.delete("/api/family/grants/aunt", headers=_auth("owner_1"))

        assert response.status_code == 200
        assert response.json()["status"] == "revoked"
        assert client.get("/api/account/status", headers=_auth("aunt")).json()["account_type"] == "full"


# =============================================================================
# Referrals and promo codes
# =============================================================================


class TestReferralRoutes:
    def test_referral_code_redeem_and_stats(self, client, session_factory):
        code = client.post("/api/referrals/code", headers=_auth("referrer")).json()["referral_code"]
        assert client.post("/api/referrals/code", headers=_auth("referrer")).json()["referral_code"] == code

        redeemed = client.post("/api/referrals/redeem", json={"code": code}, headers=_auth("friend"))

        assert redeemed.status_code == 200
        assert redeemed.json()["source"] == "referral"
        assert redeemed.json()["comp_days"] == 30
        stats = client.get("/api/referrals/stats", headers=_auth("referrer")).json()
        assert stats["successful_referrals"] == 1
        assert stats["recent_referrals"][0]["referred_id"] == "friend"
        session = session_factory()
        try:
            assert session.get(SubscriptionSnapshot, "friend").comp_until is not None
        finally:
            session.close()

    def test_self_referral_conflict(self, client):
        code = client.post("/api/referrals/code", headers=_auth("user_a")).json()["referral_code"]

        response = client.post("/api/referrals/redeem", json={"code": code}, headers=_auth("user_a"))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "self_referral"

    def test_unknown_code(self, client):
        response = client.post("/api/referrals/redeem", json={"code": "NOSUCH"}, headers=_auth("user_a"))

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "invalid_code"

    def test_anonymous_cannot_redeem(self, client):
        response = client.post("/api/referrals/redeem", json={"code": "ANYCODE"}, headers=_auth("anon_u"))

        assert response.status_code == 403


# =============================================================================
# Recaps and notifications
# =============================================================================


class TestRecapRoutes:
    def test_completion_callback_and_notification(self, client):
        recap = _create_recap(client)
        assert recap["status"] == "generating"

        completion = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={"ai_generated": {"title": "Week one", "summary": "Sunny"}},
            headers={"Authorization": "Bearer worker_test"},
        )
        assert completion.status_code == 200
        assert completion.json()["outcome"] == "completed"

        repeat = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={"failure_reason": "late"},
            headers={"Authorization": "Bearer worker_test"},
        )
        assert repeat.json()["outcome"] == "ignored"
        assert repeat.json()["status"] == "completed"

        inbox = client.get("/api/notifications", headers=_auth("owner_1")).json()
        assert inbox["unread_count"] == 1
        assert inbox["notifications"][0]["type"] == "recap_ready"

    def test_completion_requires_worker_secret(self, client):
        recap = _create_recap(client)

        response = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={"failure_reason": "x"},
            headers=_auth("owner_1"),
        )

        assert response.status_code == 401

    def test_completion_rejects_ambiguous_signal(self, client):
        recap = _create_recap(client)

        response = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={},
            headers={"Authorization": "Bearer worker_test"},
        )

        assert response.status_code == 400

    def test_completion_with_unrecognised_payload_keeps_generating(self, client):
        recap = _create_recap(client)

        response = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={"ai_generated": {"text": "A lovely week"}},
            headers={"Authorization": "Bearer worker_test"},
        )

        assert response.status_code == 400
        current = client.get(f"/api/recaps/{recap['id']}", headers=_auth("owner_1")).json()
        assert current["status"] == "generating"
        assert current["ai_generated"] is None

    def test_empty_payload_with_failure_reason_fails_recap(self, client):
        recap = _create_recap(client)

        response = client.post(
            f"/api/recaps/{recap['id']}/completion",
            json={"ai_generated": {}, "failure_reason": "model timeout"},
            headers={"Authorization": "Bearer worker_test"},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "failed"
        assert response.json()["status"] == "failed"

    def test_stranger_cannot_read(self, client):
        recap = _create_recap(client)

        response = client.get(f"/api/recaps/{recap['id']}", headers=_auth("stranger"))

        assert response.status_code == 403

    def test_unknown_recap(self, client):
        response = client.get(f"/api/recaps/{uuid.uuid4()}", headers=_auth("owner_1"))

        assert response.status_code == 404

    def test_comment_and_mark_read(self, client, session_factory):
        code = client.post(
            "/api/family/invitations",
            json={"invitee_contact": "g@example.com", "scopes": ["recaps:read", "comments:write"]},
            headers=_auth("owner_1"),
        ).json()["invite_code"]
        client.post("/api/family/invitations/accept", json={"invite_code": code}, headers=_auth("grandpa"))
        recap = _create_recap(client)

        comment = client.post(
            f"/api/recaps/{recap['id']}/comments",
            json={"text": "Lovely"},
            headers=_auth("grandpa"),
        )
        assert comment.status_code == 201

        comments = client.get(f"/api/recaps/{recap['id']}/comments", headers=_auth("owner_1")).json()
        assert comments["total_count"] == 1

        session = session_factory()
        try:
            assert session.get(Recap, recap["id"]).comment_count == 1
        finally:
            session.close()

        read_all = client.post("/api/notifications/read-all", headers=_auth("owner_1"))
        assert read_all.json()["count"] == 2
        assert client.get("/api/notifications/unread-count", headers=_auth("owner_1")).json() == {
            "unread_count": 0
        }
