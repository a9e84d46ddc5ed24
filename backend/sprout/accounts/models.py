"""
Account access types.

AccountType is derived from the identity's sharing relationships and is
recomputed on every identity change; it is never stored client-side as
ground truth.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class AccountType(str, enum.Enum):
    """
    FULL accounts own their content. SHARED accounts only see content
    other accounts granted to them.
    """
    FULL = "full"
    SHARED = "shared"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AccountType"]:
        """Parse wire values; the legacy "view-only" maps to SHARED."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "view-only":
            return cls.SHARED
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown account type: {value!r}")


@dataclass(frozen=True)
class SharedAccess:
    """One sharing relationship as seen from the current identity."""
    granter_identity_id: str
    grantee_identity_id: str
    role: str = "viewer"
    status: str = "active"
    scopes: Tuple[str, ...] = ("recaps:read",)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "granter_identity_id": self.granter_identity_id,
            "grantee_identity_id": self.grantee_identity_id,
            "role": self.role,
            "status": self.status,
            "scopes": list(self.scopes),
        }


@dataclass(frozen=True)
class AccountStatus:
    """Result of an account-status lookup."""
    account_type: AccountType = AccountType.FULL
    shared_access: Tuple[SharedAccess, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_type": self.account_type.value,
            "shared_access": [grant.to_dict() for grant in self.shared_access],
        }


class ResolutionState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class AccountAccessSnapshot:
    """What the UI reads from AccountAccessResolver."""
    state: ResolutionState = ResolutionState.IDLE
    identity_id: Optional[str] = None
    account_type: Optional[AccountType] = None
    shared_access: List[SharedAccess] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state == ResolutionState.LOADING

    @property
    def is_full_account(self) -> bool:
        return (self.account_type or AccountType.FULL) == AccountType.FULL


@dataclass(frozen=True)
class FallbackPolicy:
    """Values used when account status cannot be resolved."""
    name: str
    account_type: AccountType
    shared_access: Tuple[SharedAccess, ...] = ()


# A failed lookup must never lock an owner out of their own content
FULL_ACCESS_FALLBACK = FallbackPolicy(name="full_access", account_type=AccountType.FULL)


class AccountStatusSource(ABC):
    """Account-status collaborator."""

    @abstractmethod
    async def load(self, identity_id: str) -> AccountStatus:
        """Resolve account type and shared access for identity_id."""
