"""
Family sharing API routes.

Provides endpoints for:
- Creating, listing and revoking invitations (owners)
- Accepting an invitation by share code (relatives)
- Listing grants, changing their scopes and revoking them (owners)

SECURITY:
- The owner is always the authenticated identity, never a body field
- Invitations require a permanent (non-anonymous) account
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sprout.accounts.errors import (
    AccountError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationNotPendingError,
    InviteCodeExhaustedError,
    SelfInvitationError,
    SharedAccessNotFoundError,
)
from sprout.auth.dependencies import get_current_identity, get_permanent_identity
from sprout.config.settings import get_settings
from sprout.database.session import get_db_session
from sprout.identity.models import Identity
from sprout.models.shared_access import DEFAULT_SCOPES, SharedAccessGrant
from sprout.services.family_access_service import FamilyAccessService
from sprout.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/family", tags=["family"])

_ERROR_STATUS = {
    InvitationNotFoundError: status.HTTP_404_NOT_FOUND,
    SharedAccessNotFoundError: status.HTTP_404_NOT_FOUND,
    InvitationNotPendingError: status.HTTP_409_CONFLICT,
    SelfInvitationError: status.HTTP_409_CONFLICT,
    InvitationExpiredError: status.HTTP_410_GONE,
    InviteCodeExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# --- Request/Response Models ---


class CreateInvitationBody(BaseModel):
    invitee_contact: str = Field(..., min_length=1, max_length=320)
    scopes: List[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))


class AcceptInvitationBody(BaseModel):
    invite_code: str = Field(..., min_length=1, max_length=16)


class UpdateScopesBody(BaseModel):
    scopes: List[str]


class InvitationResponse(BaseModel):
    id: str
    inviter_id: str
    invitee_contact: str
    role: str
    status: str
    invite_code: str
    scopes: List[str]
    expires_at: Optional[str] = None
    accepted_by: Optional[str] = None


class InvitationListResponse(BaseModel):
    invitations: List[InvitationResponse]
    total_count: int


class GrantResponse(BaseModel):
    owner_id: str
    viewer_id: str
    role: str
    status: str
    scopes: List[str]


class GrantListResponse(BaseModel):
    grants: List[GrantResponse]
    total_count: int


# --- Helper Functions ---


def _service(db: Session) -> FamilyAccessService:
    return FamilyAccessService(
        db,
        notifications=NotificationService(db),
        ttl_days=get_settings().invitation_ttl_days,
    )


def _grant_response(grant: SharedAccessGrant) -> GrantResponse:
    return GrantResponse(
        owner_id=grant.owner_id,
        viewer_id=grant.viewer_id,
        role=grant.role,
        status=grant.status,
        scopes=list(grant.scopes or []),
    )


def _raise_http(e: AccountError) -> None:
    raise HTTPException(
        status_code=_ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST),
        detail=e.to_dict(),
    )


# --- API Endpoints ---


@router.post("/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    body: CreateInvitationBody,
    identity: Identity = Depends(get_permanent_identity),
    db: Session = Depends(get_db_session),
):
    try:
        invitation = _service(db).create_invitation(
            inviter_id=identity.id,
            invitee_contact=body.invitee_contact,
            scopes=body.scopes,
        )
        db.commit()
    except AccountError as e:
        db.rollback()
        _raise_http(e)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return InvitationResponse(**invitation.to_dict())


@router.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    invitations = _service(db).list_invitations(identity.id)
    return InvitationListResponse(
        invitations=[InvitationResponse(**i.to_dict()) for i in invitations],
        total_count=len(invitations),
    )


@router.post("/invitations/accept", response_model=GrantResponse)
async def accept_invitation(
    body: AcceptInvitationBody,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        grant = _service(db).accept_invitation(
            invite_code=body.invite_code,
            viewer_id=identity.id,
            viewer_name=identity.display_name,
        )
        db.commit()
    except AccountError as e:
        db.rollback()
        _raise_http(e)

    return _grant_response(grant)


@router.delete("/invitations/{invitation_id}", response_model=InvitationResponse)
async def revoke_invitation(
    invitation_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        invitation = _service(db).revoke_invitation(invitation_id, inviter_id=identity.id)
        db.commit()
    except AccountError as e:
        db.rollback()
        _raise_http(e)

    return InvitationResponse(**invitation.to_dict())


@router.get("/grants", response_model=GrantListResponse)
async def list_grants(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    grants = _service(db).list_grants_as_owner(identity.id)
    return GrantListResponse(
        grants=[_grant_response(g) for g in grants],
        total_count=len(grants),
    )


@router.patch("/grants/{viewer_id}", response_model=GrantResponse)
async def update_grant_scopes(
    viewer_id: str,
    body: UpdateScopesBody,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        grant = _service(db).update_grant_scopes(identity.id, viewer_id, body.scopes)
        db.commit()
    except AccountError as e:
        db.rollback()
        _raise_http(e)

    return _grant_response(grant)


@router.delete("/grants/{viewer_id}", response_model=GrantResponse)
async def revoke_grant(
    viewer_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        grant = _service(db).revoke_grant(identity.id, viewer_id)
        db.commit()
    except AccountError as e:
        db.rollback()
        _raise_http(e)

    return _grant_response(grant)
