"""
Referral, promo and gift code models.

Every successful redemption writes complimentary access
(SubscriptionSnapshot.comp_until) for the redeeming user.

- ReferralProfile: one per user who shared a referral code
- Referral: referrer -> referred pair; a user can be referred once
- PromoCode: promo codes (capacity limited) and gift codes (single use)
- PromoRedemption: one row per (user, code); a user redeems a code once
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from sprout.db_base import Base
from sprout.models.base import TimestampMixin


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CodeType(str, enum.Enum):
    PROMO = "promo"
    GIFT = "gift"


class RedemptionSource(str, enum.Enum):
    PROMO = "promo"
    GIFT = "gift"
    REFERRAL = "referral"


class ReferralProfile(Base, TimestampMixin):
    """A user's shareable referral code and referral counters."""

    __tablename__ = "referral_profiles"

    user_id = Column(String(255), primary_key=True)
    referral_code = Column(String(16), nullable=False, unique=True, index=True)
    total_referrals = Column(Integer, nullable=False, default=0)
    successful_referrals = Column(Integer, nullable=False, default=0)
    last_referral_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ReferralProfile(user_id={self.user_id}, code={self.referral_code})>"

    def record_referral(self, at: datetime) -> None:
        self.total_referrals = (self.total_referrals or 0) + 1
        self.successful_referrals = (self.successful_referrals or 0) + 1
        self.last_referral_at = at


class Referral(Base, TimestampMixin):
    """
    A completed referral.

    referred_id is unique: the first referral code a user redeems is the
    only one credited.
    """

    __tablename__ = "referrals"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    referrer_id = Column(String(255), nullable=False, index=True)
    referred_id = Column(String(255), nullable=False, unique=True)
    referral_code = Column(String(16), nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    reward_type = Column(String(50), nullable=False, default="extended_trial")
    reward_days = Column(Integer, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_id", name="uq_referrals_pair"),
    )

    def __repr__(self) -> str:
        return f"<Referral(referrer={self.referrer_id}, referred={self.referred_id})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "referrer_id": self.referrer_id,
            "referred_id": self.referred_id,
            "status": self.status,
            "reward_type": self.reward_type,
            "reward_days": self.reward_days,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class PromoCode(Base, TimestampMixin):
    """
    Promo or gift code granting complimentary days.

    Promo codes may be redeemed by many users up to max_uses (None means
    unlimited). Gift codes are redeemed once; redeemed_by records who.
    """

    __tablename__ = "promo_codes"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    code = Column(String(32), nullable=False, unique=True, index=True)
    code_type = Column(String(20), nullable=False, default=CodeType.PROMO.value)
    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    comp_days = Column(Integer, nullable=True, comment="Falls back to PROMO_COMP_DAYS when unset")
    redeemed_by = Column(String(255), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PromoCode(code={self.code}, type={self.code_type})>"

    @property
    def is_gift(self) -> bool:
        return self.code_type == CodeType.GIFT.value

    @property
    def has_capacity(self) -> bool:
        return self.max_uses is None or (self.current_uses or 0) < self.max_uses

    def is_within_window(self, now: datetime) -> bool:
        valid_from = _aware(self.valid_from)
        valid_until = _aware(self.valid_until)
        if valid_from and now < valid_from:
            return False
        if valid_until and now > valid_until:
            return False
        return True


class PromoRedemption(Base):
    """One redemption of a promo, gift or referral code by a user."""

    __tablename__ = "promo_redemptions"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id = Column(String(255), nullable=False)
    code = Column(String(32), nullable=False)
    source = Column(String(20), nullable=False)
    comp_days = Column(Integer, nullable=False)
    comp_until = Column(DateTime(timezone=True), nullable=False)
    redeemed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "code", name="uq_promo_redemptions_user_code"),
        Index("ix_promo_redemptions_code", "code"),
    )

    def __repr__(self) -> str:
        return f"<PromoRedemption(user_id={self.user_id}, code={self.code})>"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "source": self.source,
            "comp_days": self.comp_days,
            "comp_until": _aware(self.comp_until).isoformat(),
        }
