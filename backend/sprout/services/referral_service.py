"""
Referral Service for referral codes, promo codes and gift codes.

Flow:
1. A user asks for their referral code -> get_or_create_referral_code()
2. A friend enters it -> process_referral(); the referrer's counters go up
   and the friend receives complimentary days
3. Any user may enter a promo or gift code -> redeem_code(); codes that
   match no promo or gift fall through to the referral codes

Rules:
- A user redeems a given code once
- A user is credited to at most one referrer, never themselves
- Promo codes honour is_active, their validity window and max_uses
- Gift codes are redeemed by exactly one user

Complimentary access is written to SubscriptionSnapshot.comp_until. The
later of the existing and the new end wins, and a paid status is left
untouched.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from sprout.entitlements.errors import (
    AlreadyReferredError,
    CodeAlreadyRedeemedError,
    CodeCapacityReachedError,
    CodeNotActiveError,
    GiftAlreadyRedeemedError,
    InvalidCodeError,
    ReferralCodeExhaustedError,
    SelfReferralError,
)
from sprout.entitlements.models import ACTIVE_STATUSES, SubscriptionStatus
from sprout.models.referral import (
    CodeType,
    PromoCode,
    PromoRedemption,
    Referral,
    ReferralProfile,
    RedemptionSource,
)
from sprout.models.subscription import SubscriptionSnapshot
from sprout.services.family_access_service import INVITE_CODE_ALPHABET

logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 6
MIN_CODE_LENGTH = 3
MAX_CODE_ATTEMPTS = 10
RECENT_REFERRALS_LIMIT = 10
COMP_PLAN = "comp"


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_referral_code(length: int = REFERRAL_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


@dataclass
class ReferralStats:
    referral_code: Optional[str] = None
    total_referrals: int = 0
    successful_referrals: int = 0
    recent_referrals: List[Referral] = field(default_factory=list)


class ReferralService:
    """
    Service for referral, promo and gift code redemption.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    DEFAULT_COMP_DAYS = 30

    def __init__(
        self,
        session: Session,
        comp_days: int = DEFAULT_COMP_DAYS,
        referral_comp_days: Optional[int] = None,
    ):
        self.session = session
        self.comp_days = comp_days if comp_days > 0 else self.DEFAULT_COMP_DAYS
        if referral_comp_days is None or referral_comp_days <= 0:
            referral_comp_days = self.comp_days
        self.referral_comp_days = referral_comp_days

    # ------------------------------------------------------------------
    # Referral codes
    # ------------------------------------------------------------------

    def get_or_create_referral_code(self, user_id: str) -> ReferralProfile:
        """
        Return the user's referral profile, creating it with a fresh code.

        Raises:
            ValueError: missing user_id
            ReferralCodeExhaustedError: no unused code found
        """
        if not user_id:
            raise ValueError("user_id is required")

        profile = self.session.get(ReferralProfile, user_id)
        if profile:
            return profile

        profile = ReferralProfile(
            user_id=user_id,
            referral_code=self._unused_code(),
            total_referrals=0,
            successful_referrals=0,
        )
        self.session.add(profile)
        self.session.flush()

        logger.info(
            "Referral code created",
            extra={"user_id": user_id, "referral_code": profile.referral_code},
        )
        return profile

    def process_referral(self, referral_code: str, referred_id: str) -> PromoRedemption:
        """
        Credit referred_id to the owner of referral_code.

        Raises:
            InvalidCodeError: no user owns the code
            SelfReferralError: the code is the user's own
            AlreadyReferredError: referred_id was already referred
        """
        code = normalize_code(referral_code)
        profile = self._profile_by_code(code)
        if not profile:
            raise InvalidCodeError("Referral code not found")
        return self._complete_referral(profile, referred_id)

    def get_referral_stats(self, user_id: str) -> ReferralStats:
        profile = self.session.get(ReferralProfile, user_id)
        if not profile:
            return ReferralStats()

        recent = (
            self.session.query(Referral)
            .filter(Referral.referrer_id == user_id)
            .order_by(Referral.created_at.desc())
            .limit(RECENT_REFERRALS_LIMIT)
            .all()
        )
        return ReferralStats(
            referral_code=profile.referral_code,
            total_referrals=profile.total_referrals or 0,
            successful_referrals=profile.successful_referrals or 0,
            recent_referrals=recent,
        )

    # ------------------------------------------------------------------
    # Promo and gift codes
    # ------------------------------------------------------------------

    def create_promo_code(
        self,
        code: Optional[str] = None,
        code_type: CodeType = CodeType.PROMO,
        comp_days: Optional[int] = None,
        max_uses: Optional[int] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
    ) -> PromoCode:
        """
        Create a promo or gift code. A missing code is generated.

        Raises:
            ValueError: code shorter than MIN_CODE_LENGTH, or already taken
        """
        normalized = normalize_code(code) if code else self._unused_code()
        if len(normalized) < MIN_CODE_LENGTH:
            raise ValueError(f"code must be at least {MIN_CODE_LENGTH} characters")
        if self._promo_by_code(normalized) or self._profile_by_code(normalized):
            raise ValueError(f"code {normalized} is already in use")

        promo = PromoCode(
            code=normalized,
            code_type=code_type.value,
            is_active=True,
            comp_days=comp_days,
            max_uses=1 if code_type == CodeType.GIFT else max_uses,
            current_uses=0,
            valid_from=valid_from,
            valid_until=valid_until,
        )
        self.session.add(promo)
        self.session.flush()
        logger.info(
            "Promo code created",
            extra={"code": normalized, "code_type": code_type.value, "max_uses": promo.max_uses},
        )
        return promo

    def redeem_code(self, code: str, user_id: str) -> PromoRedemption:
        """
        Redeem a promo, gift or referral code for user_id.

        Raises:
            InvalidCodeError: too short, or matches nothing
            CodeAlreadyRedeemedError: user_id already redeemed this code
            GiftAlreadyRedeemedError: someone else redeemed this gift
            CodeNotActiveError: disabled or outside its validity window
            CodeCapacityReachedError: promo max_uses reached
            SelfReferralError / AlreadyReferredError: referral fallback
        """
        normalized = normalize_code(code)
        if len(normalized) < MIN_CODE_LENGTH:
            raise InvalidCodeError("Invalid code")
        if self._find_redemption(user_id, normalized):
            raise CodeAlreadyRedeemedError("You have already redeemed this code")

        promo = self._promo_by_code(normalized)
        if not promo:
            profile = self._profile_by_code(normalized)
            if not profile:
                raise InvalidCodeError("Invalid code")
            return self._complete_referral(profile, user_id)

        now = datetime.now(timezone.utc)
        if promo.is_gift and promo.redeemed_by:
            if promo.redeemed_by == user_id:
                raise CodeAlreadyRedeemedError("You have already redeemed this code")
            raise GiftAlreadyRedeemedError("Gift code has already been redeemed")
        if not promo.is_active or not promo.is_within_window(now):
            raise CodeNotActiveError("Code is not active")
        if not promo.has_capacity:
            raise CodeCapacityReachedError("Code has reached its maximum uses")

        self._claim(promo, user_id, now)

        days = promo.comp_days if promo.comp_days and promo.comp_days > 0 else self.comp_days
        source = RedemptionSource.GIFT if promo.is_gift else RedemptionSource.PROMO
        redemption = self._record_redemption(user_id, normalized, source, days, now)

        logger.info(
            "Promo code redeemed",
            extra={
                "user_id": user_id,
                "code": normalized,
                "source": source.value,
                "comp_days": days,
            },
        )
        return redemption

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _complete_referral(self, profile: ReferralProfile, referred_id: str) -> PromoRedemption:
        if profile.user_id == referred_id:
            raise SelfReferralError("You cannot redeem your own referral code")
        already = (
            self.session.query(Referral.id)
            .filter(Referral.referred_id == referred_id)
            .first()
        )
        if already:
            raise AlreadyReferredError("You have already used a referral code")

        now = datetime.now(timezone.utc)
        days = self.referral_comp_days
        self.session.add(Referral(
            referrer_id=profile.user_id,
            referred_id=referred_id,
            referral_code=profile.referral_code,
            status="completed",
            reward_days=days,
            completed_at=now,
        ))
        profile.record_referral(now)
        redemption = self._record_redemption(
            referred_id, profile.referral_code, RedemptionSource.REFERRAL, days, now
        )

        logger.info(
            "Referral processed",
            extra={
                "referrer_id": profile.user_id,
                "referred_id": referred_id,
                "comp_days": days,
            },
        )
        return redemption

    def _claim(self, promo: PromoCode, user_id: str, now: datetime) -> None:
        """Take one use of the code with a conditional UPDATE."""
        query = self.session.query(PromoCode).filter(PromoCode.id == promo.id)
        values = {PromoCode.current_uses: PromoCode.current_uses + 1}
        if promo.is_gift:
            query = query.filter(PromoCode.redeemed_by.is_(None))
            values[PromoCode.redeemed_by] = user_id
            values[PromoCode.redeemed_at] = now
        else:
            query = query.filter(
                or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses)
            )

        if not query.update(values, synchronize_session=False):
            if promo.is_gift:
                raise GiftAlreadyRedeemedError("Gift code has already been redeemed")
            raise CodeCapacityReachedError("Code has reached its maximum uses")
        self.session.expire(promo)

    def _record_redemption(
        self,
        user_id: str,
        code: str,
        source: RedemptionSource,
        days: int,
        now: datetime,
    ) -> PromoRedemption:
        redemption = PromoRedemption(
            user_id=user_id,
            code=code,
            source=source.value,
            comp_days=days,
            comp_until=self._grant_comp(user_id, days, now),
            redeemed_at=now,
        )
        self.session.add(redemption)
        self.session.flush()
        return redemption

    def _grant_comp(self, user_id: str, days: int, now: datetime) -> datetime:
        comp_until = now + timedelta(days=days)
        snapshot = self.session.get(SubscriptionSnapshot, user_id)
        if snapshot is None:
            snapshot = SubscriptionSnapshot(
                user_id=user_id,
                status=SubscriptionStatus.INACTIVE.value,
                plan=COMP_PLAN,
                is_sandbox=False,
                comp_until=comp_until,
            )
            self.session.add(snapshot)
            return comp_until

        current = snapshot.comp_until
        if current is not None and current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if current is None or current < comp_until:
            snapshot.comp_until = comp_until
        else:
            comp_until = current
        if SubscriptionStatus.parse(snapshot.status) not in ACTIVE_STATUSES:
            snapshot.plan = COMP_PLAN
        return comp_until

    def _find_redemption(self, user_id: str, code: str) -> Optional[PromoRedemption]:
        return (
            self.session.query(PromoRedemption)
            .filter(PromoRedemption.user_id == user_id, PromoRedemption.code == code)
            .first()
        )

    def _promo_by_code(self, code: str) -> Optional[PromoCode]:
        return self.session.query(PromoCode).filter(PromoCode.code == code).first()

    def _profile_by_code(self, code: str) -> Optional[ReferralProfile]:
        return (
            self.session.query(ReferralProfile)
            .filter(ReferralProfile.referral_code == code)
            .first()
        )

    def _unused_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_referral_code()
            if not self._profile_by_code(code) and not self._promo_by_code(code):
                return code
        logger.error("Could not generate an unused referral code")
        raise ReferralCodeExhaustedError("Could not generate a unique code")
