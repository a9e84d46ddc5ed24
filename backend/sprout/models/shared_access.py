"""
Family sharing models: invitations and the grants they produce.

Flow:
1. Owner calls create_invitation() -> PENDING invitation with a share code
2. Invitee enters the code -> accept_invitation()
3. On accept: a SharedAccessGrant owner -> viewer is created (or its scopes
   refreshed) and the invitation is marked ACCEPTED
4. Owner may revoke a pending invitation or an active grant at any time

SECURITY:
- Grants are read-only visibility into the owner's content
- Grantees never get write access to recap generation state
- One grant per (owner, viewer) pair
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    String,
    UniqueConstraint,
)

from sprout.db_base import Base
from sprout.models.base import JSONType, TimestampMixin


ALLOWED_SCOPES = ("recaps:read", "journal:read", "comments:write", "likes:write")
DEFAULT_SCOPES = ("recaps:read",)


def sanitize_scopes(requested: Optional[List[str]]) -> List[str]:
    """
    Filter requested scopes down to the allowed set, preserving order.

    Falls back to read-only recap access when nothing valid remains.
    """
    seen: List[str] = []
    for scope in requested or []:
        if scope in ALLOWED_SCOPES and scope not in seen:
            seen.append(scope)
    return seen or list(DEFAULT_SCOPES)


class InvitationStatus(str, enum.Enum):
    """Lifecycle status of a family invitation."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"


class SharedAccessStatus(str, enum.Enum):
    """Whether a grant is currently in force."""
    ACTIVE = "active"
    REVOKED = "revoked"


class FamilyInvitation(Base, TimestampMixin):
    """
    Invitation from an owning account to share its content.

    - inviter_id: identity id of the owner
    - invitee_contact: free-form email/phone the owner typed
    - invite_code: short human-enterable code, unique across all invitations
    - status: PENDING -> ACCEPTED|REVOKED
    """

    __tablename__ = "family_invitations"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    inviter_id = Column(String(255), nullable=False, index=True)
    invitee_contact = Column(String(320), nullable=False)
    role = Column(String(50), nullable=False, default="viewer")

    status = Column(
        String(20),
        nullable=False,
        default=InvitationStatus.PENDING.value,
        index=True,
    )

    invite_code = Column(String(16), nullable=False, unique=True, index=True)
    scopes = Column(JSONType, nullable=False, default=lambda: list(DEFAULT_SCOPES))
    expires_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_family_invitations_inviter_status", "inviter_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<FamilyInvitation(id={self.id}, inviter={self.inviter_id}, "
            f"status={self.status})>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING.value

    @property
    def is_expired(self) -> bool:
        if not self.expires_at:
            return False
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expires

    def accept(self, viewer_id: str) -> None:
        self.status = InvitationStatus.ACCEPTED.value
        self.accepted_by = viewer_id

    def revoke(self) -> None:
        self.status = InvitationStatus.REVOKED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inviter_id": self.inviter_id,
            "invitee_contact": self.invitee_contact,
            "role": self.role,
            "status": self.status,
            "invite_code": self.invite_code,
            "scopes": list(self.scopes or []),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "accepted_by": self.accepted_by,
        }


class SharedAccessGrant(Base, TimestampMixin):
    """
    One grant of visibility from an owner identity to a viewer identity.

    The owner is the granter; the viewer is the grantee.
    """

    __tablename__ = "shared_access"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    owner_id = Column(String(255), nullable=False, index=True)
    viewer_id = Column(String(255), nullable=False, index=True)
    role = Column(String(50), nullable=False, default="viewer")

    status = Column(
        String(20),
        nullable=False,
        default=SharedAccessStatus.ACTIVE.value,
        index=True,
    )

    scopes = Column(JSONType, nullable=False, default=lambda: list(DEFAULT_SCOPES))
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "viewer_id", name="uq_shared_access_owner_viewer"),
    )

    def __repr__(self) -> str:
        return (
            f"<SharedAccessGrant(owner={self.owner_id}, viewer={self.viewer_id}, "
            f"status={self.status})>"
        )

    @property
    def is_active(self) -> bool:
        return self.status == SharedAccessStatus.ACTIVE.value

    def has_scope(self, scope: str) -> bool:
        return scope in (self.scopes or [])

    def reactivate(self, scopes: List[str]) -> None:
        self.status = SharedAccessStatus.ACTIVE.value
        self.scopes = scopes
        self.revoked_at = None

    def revoke(self) -> None:
        self.status = SharedAccessStatus.REVOKED.value
        self.revoked_at = datetime.now(timezone.utc)
