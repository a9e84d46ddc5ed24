"""
Family Access Service for sharing an account's content with relatives.

Flow:
1. Owner calls create_invitation() -> PENDING invitation with a 6-char code
2. Relative enters the code -> accept_invitation()
3. On accept: SharedAccessGrant owner -> viewer is created (or refreshed)
   and the invitation is marked ACCEPTED; the owner is notified
4. Owner may revoke a pending invitation, change a grant's scopes, or
   revoke a grant

Account status:
- SHARED when the identity holds active grants as a viewer and owns none
- FULL otherwise (including an identity with no grants at all)
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from sprout.accounts.errors import (
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationNotPendingError,
    InviteCodeExhaustedError,
    SelfInvitationError,
    SharedAccessNotFoundError,
)
from sprout.accounts.models import AccountStatus, AccountType, SharedAccess
from sprout.models.shared_access import (
    FamilyInvitation,
    InvitationStatus,
    SharedAccessGrant,
    SharedAccessStatus,
    sanitize_scopes,
)
from sprout.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# No 0/O or 1/I: codes are read aloud and typed on phones
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 8


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def grant_to_shared_access(grant: SharedAccessGrant) -> SharedAccess:
    return SharedAccess(
        granter_identity_id=grant.owner_id,
        grantee_identity_id=grant.viewer_id,
        role=grant.role,
        status=grant.status,
        scopes=tuple(grant.scopes or ()),
    )


class FamilyAccessService:
    """
    Service for family invitations and the grants they produce.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    DEFAULT_TTL_DAYS = 7

    def __init__(
        self,
        session: Session,
        notifications: Optional[NotificationService] = None,
        ttl_days: int = DEFAULT_TTL_DAYS,
    ):
        self.session = session
        self.notifications = notifications
        self.ttl_days = ttl_days

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(
        self,
        inviter_id: str,
        invitee_contact: str,
        scopes: Optional[List[str]] = None,
        role: str = "viewer",
    ) -> FamilyInvitation:
        """
        Create a pending invitation with a unique share code.

        Args:
            inviter_id: Owner identity id
            invitee_contact: Email or phone the owner typed
            scopes: Requested scopes (sanitized; default recaps:read)
            role: Grant role

        Raises:
            ValueError: missing inviter or contact
            InviteCodeExhaustedError: no unused code found
        """
        if not inviter_id:
            raise ValueError("inviter_id is required")
        contact = (invitee_contact or "").strip()
        if not contact:
            raise ValueError("invitee_contact is required")

        invitation = FamilyInvitation(
            inviter_id=inviter_id,
            invitee_contact=contact,
            role=role,
            status=InvitationStatus.PENDING.value,
            invite_code=self._unused_code(),
            scopes=sanitize_scopes(scopes),
            expires_at=datetime.now(timezone.utc) + timedelta(days=self.ttl_days),
        )
        self.session.add(invitation)
        self.session.flush()

        logger.info(
            "Family invitation created",
            extra={
                "invitation_id": invitation.id,
                "inviter_id": inviter_id,
                "scopes": invitation.scopes,
            },
        )
        return invitation

    def list_invitations(
        self,
        inviter_id: str,
        status: Optional[InvitationStatus] = None,
    ) -> List[FamilyInvitation]:
        query = self.session.query(FamilyInvitation).filter(
            FamilyInvitation.inviter_id == inviter_id
        )
        if status:
            query = query.filter(FamilyInvitation.status == status.value)
        return query.order_by(FamilyInvitation.created_at.desc()).all()

    def accept_invitation(
        self,
        invite_code: str,
        viewer_id: str,
        viewer_name: Optional[str] = None,
    ) -> SharedAccessGrant:
        """
        Redeem a share code.

        Raises:
            InvitationNotFoundError: unknown code
            InvitationNotPendingError: already accepted or revoked
            InvitationExpiredError: past expires_at
            SelfInvitationError: owner redeeming their own code
        """
        code = (invite_code or "").strip().upper()
        invitation = (
            self.session.query(FamilyInvitation)
            .filter(FamilyInvitation.invite_code == code)
            .first()
        )
        if not invitation:
            raise InvitationNotFoundError("Invitation not found")
        if not invitation.is_pending:
            raise InvitationNotPendingError(
                f"Invitation is {invitation.status}, not pending"
            )
        if invitation.is_expired:
            raise InvitationExpiredError("Invitation has expired")
        if invitation.inviter_id == viewer_id:
            raise SelfInvitationError("You cannot accept your own invitation")

        scopes = sanitize_scopes(invitation.scopes)
        grant = self._find_grant(invitation.inviter_id, viewer_id)
        if grant:
            grant.role = invitation.role
            grant.reactivate(scopes)
        else:
            grant = SharedAccessGrant(
                owner_id=invitation.inviter_id,
                viewer_id=viewer_id,
                role=invitation.role,
                status=SharedAccessStatus.ACTIVE.value,
                scopes=scopes,
            )
            self.session.add(grant)

        invitation.accept(viewer_id)
        self.session.flush()

        logger.info(
            "Family invitation accepted",
            extra={
                "invitation_id": invitation.id,
                "owner_id": invitation.inviter_id,
                "viewer_id": viewer_id,
            },
        )

        if self.notifications:
            self.notifications.notify_invitation_accepted(
                inviter_id=invitation.inviter_id,
                invitation_id=invitation.id,
                viewer_id=viewer_id,
                viewer_name=viewer_name,
            )

        return grant

    def revoke_invitation(self, invitation_id: str, inviter_id: str) -> FamilyInvitation:
        """
        Revoke a pending invitation.

        Raises:
            InvitationNotFoundError: unknown id or not owned by inviter_id
            InvitationNotPendingError: no longer pending
        """
        invitation = (
            self.session.query(FamilyInvitation)
            .filter(
                FamilyInvitation.id == invitation_id,
                FamilyInvitation.inviter_id == inviter_id,
            )
            .first()
        )
        if not invitation:
            raise InvitationNotFoundError("Invitation not found")
        if not invitation.is_pending:
            raise InvitationNotPendingError(
                f"Invitation is {invitation.status}, not pending"
            )

        invitation.revoke()
        self.session.flush()
        logger.info(
            "Family invitation revoked",
            extra={"invitation_id": invitation_id, "inviter_id": inviter_id},
        )
        return invitation

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def list_grants_as_owner(self, owner_id: str, include_revoked: bool = False) -> List[SharedAccessGrant]:
        query = self.session.query(SharedAccessGrant).filter(SharedAccessGrant.owner_id == owner_id)
        if not include_revoked:
            query = query.filter(SharedAccessGrant.status == SharedAccessStatus.ACTIVE.value)
        return query.all()

    def list_grants_as_viewer(self, viewer_id: str) -> List[SharedAccessGrant]:
        return (
            self.session.query(SharedAccessGrant)
            .filter(
                SharedAccessGrant.viewer_id == viewer_id,
                SharedAccessGrant.status == SharedAccessStatus.ACTIVE.value,
            )
            .all()
        )

    def get_active_grant(self, owner_id: str, viewer_id: str) -> Optional[SharedAccessGrant]:
        grant = self._find_grant(owner_id, viewer_id)
        return grant if grant and grant.is_active else None

    def update_grant_scopes(self, owner_id: str, viewer_id: str, scopes: List[str]) -> SharedAccessGrant:
        grant = self.get_active_grant(owner_id, viewer_id)
        if not grant:
            raise SharedAccessNotFoundError("Shared access not found")

        grant.scopes = sanitize_scopes(scopes)
        self.session.flush()
        logger.info(
            "Shared access scopes updated",
            extra={"owner_id": owner_id, "viewer_id": viewer_id, "scopes": grant.scopes},
        )
        return grant

    def revoke_grant(self, owner_id: str, viewer_id: str) -> SharedAccessGrant:
        grant = self.get_active_grant(owner_id, viewer_id)
        if not grant:
            raise SharedAccessNotFoundError("Shared access not found")

        grant.revoke()
        self.session.flush()
        logger.info(
            "Shared access revoked",
            extra={"owner_id": owner_id, "viewer_id": viewer_id},
        )
        return grant

    # ------------------------------------------------------------------
    # Account status
    # ------------------------------------------------------------------

    def get_account_status(self, identity_id: str) -> AccountStatus:
        """
        Derive account type and shared access for identity_id.

        shared_access lists the grants the identity receives as a viewer.
        """
        owned = self.list_grants_as_owner(identity_id)
        received = self.list_grants_as_viewer(identity_id)

        account_type = AccountType.SHARED if received and not owned else AccountType.FULL
        return AccountStatus(
            account_type=account_type,
            shared_access=tuple(grant_to_shared_access(g) for g in received),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find_grant(self, owner_id: str, viewer_id: str) -> Optional[SharedAccessGrant]:
        return (
            self.session.query(SharedAccessGrant)
            .filter(
                SharedAccessGrant.owner_id == owner_id,
                SharedAccessGrant.viewer_id == viewer_id,
            )
            .first()
        )

    def _unused_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_invite_code()
            taken = (
                self.session.query(FamilyInvitation.id)
                .filter(FamilyInvitation.invite_code == code)
                .first()
            )
            if not taken:
                return code
        logger.error("Could not generate an unused invite code")
        raise InviteCodeExhaustedError("Could not generate a unique invite code")
