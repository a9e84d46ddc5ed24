"""
Runtime configuration loaded from environment variables.

All settings are read once into a frozen Settings instance. Missing
provider keys are not an error: features that need them stay dormant
(e.g. EntitlementSync registers its listener but never configures the
provider until REVENUECAT_API_KEY is supplied).

Usage:
    from sprout.config.settings import get_settings

    settings = get_settings()
    if settings.revenuecat_api_key:
        ...
"""

import logging
import os
from dataclasses import dataclass
from threading import Lock
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_TOOLKIT_BASE_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_SECURE_TOKEN_BASE_URL = "https://securetoken.googleapis.com/v1"
DEFAULT_REVENUECAT_BASE_URL = "https://api.revenuecat.com/v1"
DEFAULT_UPSELL_DESTINATION = "/(auth)/pricing"

_EMULATOR_VARS = (
    "FUNCTIONS_EMULATOR",
    "FIRESTORE_EMULATOR_HOST",
    "AUTH_EMULATOR_HOST",
    "FIREBASE_AUTH_EMULATOR_HOST",
)


def _normalize_database_url(url: Optional[str]) -> Optional[str]:
    # Render/Heroku style URLs; SQLAlchemy requires postgresql://
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s, using default %s", name, default)
        return default
    if value <= 0:
        logger.warning("Non-positive value for %s, using default %s", name, default)
        return default
    return value


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s, using default %s", name, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    env: str = "development"
    database_url: Optional[str] = None

    # Identity provider (Firebase Auth)
    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    identity_toolkit_base_url: str = DEFAULT_IDENTITY_TOOLKIT_BASE_URL
    secure_token_base_url: str = DEFAULT_SECURE_TOKEN_BASE_URL

    # Entitlement provider (RevenueCat)
    revenuecat_api_key: Optional[str] = None
    revenuecat_base_url: str = DEFAULT_REVENUECAT_BASE_URL
    revenuecat_webhook_secret: Optional[str] = None

    # Timeouts
    entitlement_provider_timeout_seconds: float = 10.0
    account_status_timeout_seconds: float = 10.0
    identity_provider_timeout_seconds: float = 15.0

    # Shared secret the recap generation worker presents on completion callbacks
    recap_worker_secret: Optional[str] = None

    upsell_destination: str = DEFAULT_UPSELL_DESTINATION
    invitation_ttl_days: int = 7

    # Complimentary days granted by promo codes without their own comp_days,
    # and by referral codes
    promo_comp_days: int = 30
    referral_comp_days: int = 30

    @property
    def is_emulator(self) -> bool:
        return self.env == "emulator"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from a mapping of environment variables.

        Args:
            env: Mapping to read (default: os.environ)

        Returns:
            Settings instance
        """
        env = os.environ if env is None else env

        is_emulator = any(env.get(name) for name in _EMULATOR_VARS)
        env_name = env.get("ENV") or ("emulator" if is_emulator else "development")

        # Emulators may use a local secret to avoid clashing with deployed secrets
        webhook_secret = env.get("REVENUECAT_WEBHOOK_SECRET") or (
            env.get("LOCAL_REVENUECAT_WEBHOOK_SECRET") if is_emulator else None
        )
        promo_comp_days = _int(env, "PROMO_COMP_DAYS", 30)

        return cls(
            env=env_name,
            database_url=_normalize_database_url(env.get("DATABASE_URL")),
            firebase_api_key=env.get("FIREBASE_API_KEY") or None,
            firebase_project_id=env.get("FIREBASE_PROJECT_ID") or None,
            identity_toolkit_base_url=(
                env.get("IDENTITY_TOOLKIT_BASE_URL") or DEFAULT_IDENTITY_TOOLKIT_BASE_URL
            ).rstrip("/"),
            secure_token_base_url=(
                env.get("SECURE_TOKEN_BASE_URL") or DEFAULT_SECURE_TOKEN_BASE_URL
            ).rstrip("/"),
            revenuecat_api_key=env.get("REVENUECAT_API_KEY") or None,
            revenuecat_base_url=(
                env.get("REVENUECAT_BASE_URL") or DEFAULT_REVENUECAT_BASE_URL
            ).rstrip("/"),
            revenuecat_webhook_secret=webhook_secret or None,
            entitlement_provider_timeout_seconds=_float(
                env, "ENTITLEMENT_PROVIDER_TIMEOUT_SECONDS", 10.0
            ),
            account_status_timeout_seconds=_float(
                env, "ACCOUNT_STATUS_TIMEOUT_SECONDS", 10.0
            ),
            identity_provider_timeout_seconds=_float(
                env, "IDENTITY_PROVIDER_TIMEOUT_SECONDS", 15.0
            ),
            recap_worker_secret=env.get("RECAP_WORKER_SECRET") or None,
            upsell_destination=env.get("UPSELL_DESTINATION") or DEFAULT_UPSELL_DESTINATION,
            invitation_ttl_days=_int(env, "INVITATION_TTL_DAYS", 7),
            promo_comp_days=promo_comp_days,
            referral_comp_days=_int(env, "REFERRAL_COMP_DAYS", promo_comp_days),
        )


_settings: Optional[Settings] = None
_settings_lock = Lock()


def get_settings() -> Settings:
    """Get the process settings, loading from the environment on first use."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = Settings.from_env()
    return _settings


def reset_settings(settings: Optional[Settings] = None) -> None:
    """Replace (or clear) the cached settings. Used by tests."""
    global _settings
    with _settings_lock:
        _settings = settings
