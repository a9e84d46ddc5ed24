"""
Referral, promo and gift code API routes.

Provides endpoints for:
- Getting (or creating) the caller's referral code
- Redeeming a promo, gift or referral code
- Referral stats for the caller

SECURITY:
- The redeeming user is always the authenticated identity
- Redemption requires a permanent (non-anonymous) account
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sprout.auth.dependencies import get_permanent_identity
from sprout.config.settings import get_settings
from sprout.database.session import get_db_session
from sprout.entitlements.errors import (
    AlreadyReferredError,
    CodeAlreadyRedeemedError,
    CodeCapacityReachedError,
    CodeNotActiveError,
    GiftAlreadyRedeemedError,
    InvalidCodeError,
    RedemptionError,
    ReferralCodeExhaustedError,
    SelfReferralError,
)
from sprout.identity.models import Identity
from sprout.services.referral_service import ReferralService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/referrals", tags=["referrals"])

_ERROR_STATUS = {
    InvalidCodeError: status.HTTP_404_NOT_FOUND,
    CodeAlreadyRedeemedError: status.HTTP_409_CONFLICT,
    GiftAlreadyRedeemedError: status.HTTP_409_CONFLICT,
    AlreadyReferredError: status.HTTP_409_CONFLICT,
    SelfReferralError: status.HTTP_409_CONFLICT,
    CodeCapacityReachedError: status.HTTP_409_CONFLICT,
    CodeNotActiveError: status.HTTP_410_GONE,
    ReferralCodeExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# --- Request/Response Models ---


class RedeemCodeBody(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class ReferralCodeResponse(BaseModel):
    referral_code: str


class RedemptionResponse(BaseModel):
    code: str
    source: str
    comp_days: int
    comp_until: str


class ReferralResponse(BaseModel):
    id: str
    referrer_id: str
    referred_id: str
    status: str
    reward_type: str
    reward_days: int
    completed_at: Optional[str] = None


class ReferralStatsResponse(BaseModel):
    referral_code: Optional[str] = None
    total_referrals: int
    successful_referrals: int
    recent_referrals: List[ReferralResponse]


# --- Helper Functions ---


def _service(db: Session) -> ReferralService:
    settings = get_settings()
    return ReferralService(
        db,
        comp_days=settings.promo_comp_days,
        referral_comp_days=settings.referral_comp_days,
    )


def _raise_http(e: RedemptionError) -> None:
    raise HTTPException(
        status_code=_ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST),
        detail=e.to_dict(),
    )


# --- API Endpoints ---


@router.post("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    identity: Identity = Depends(get_permanent_identity),
    db: Session = Depends(get_db_session),
):
    try:
        profile = _service(db).get_or_create_referral_code(identity.id)
        db.commit()
    except RedemptionError as e:
        db.rollback()
        _raise_http(e)

    return ReferralCodeResponse(referral_code=profile.referral_code)


@router.post("/redeem", response_model=RedemptionResponse)
async def redeem_code(
    body: RedeemCodeBody,
    identity: Identity = Depends(get_permanent_identity),
    db: Session = Depends(get_db_session),
):
    try:
        redemption = _service(db).redeem_code(body.code, identity.id)
        db.commit()
    except RedemptionError as e:
        db.rollback()
        _raise_http(e)

    return RedemptionResponse(**redemption.to_dict())


@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(
    identity: Identity = Depends(get_permanent_identity),
    db: Session = Depends(get_db_session),
):
    stats = _service(db).get_referral_stats(identity.id)
    return ReferralStatsResponse(
        referral_code=stats.referral_code,
        total_referrals=stats.total_referrals,
        successful_referrals=stats.successful_referrals,
        recent_referrals=[ReferralResponse(**r.to_dict()) for r in stats.recent_referrals],
    )
