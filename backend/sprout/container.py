"""
Composition root for the identity and entitlement reconciliation core.

Wires one identity provider to its consumers:
- IdentityLinker (anonymous upgrade)
- EntitlementSync (entitlement provider session follows identity)
- AccountAccessResolver (full vs shared account)
- EntitlementResolver + PremiumGate factory (premium screens)

Nothing here is a module-level singleton; tests build their own Core
with fakes.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from sprout.accounts.models import FULL_ACCESS_FALLBACK, AccountStatusSource, FallbackPolicy
from sprout.accounts.resolver import AccountAccessResolver
from sprout.accounts.sources import DatabaseAccountStatusSource
from sprout.config.settings import Settings, get_settings
from sprout.entitlements.gate import Navigator, PremiumGate
from sprout.entitlements.provider import EntitlementProvider
from sprout.entitlements.resolver import (
    EntitlementResolver,
    EntitlementSource,
    SnapshotEntitlementSource,
)
from sprout.entitlements.sync import EntitlementSync
from sprout.identity.linker import IdentityLinker
from sprout.identity.provider import IdentityProvider
from sprout.integrations.firebase.client import FirebaseIdentityClient
from sprout.integrations.revenuecat.client import RevenueCatClient

logger = logging.getLogger(__name__)


@dataclass
class Core:
    settings: Settings
    identity_provider: IdentityProvider
    linker: IdentityLinker
    entitlement_sync: EntitlementSync
    account_resolver: AccountAccessResolver
    entitlement_resolver: EntitlementResolver
    navigator: Navigator

    def premium_gate(self) -> PremiumGate:
        """A fresh gate for one premium screen."""
        return PremiumGate(self.navigator, destination=self.settings.upsell_destination)

    async def start(self) -> None:
        """
        Bind every consumer to the identity stream.

        The current identity (if any) is resolved right away; later
        transitions arrive through the stream.
        """
        stream = self.identity_provider.identity_changes
        current = self.identity_provider.current_identity

        self.entitlement_sync.start(current_identity=current)
        self.account_resolver.attach(stream)
        self.entitlement_resolver.attach(stream)

        if current is not None:
            self.account_resolver.on_identity_changed(current)
        # Settles the entitlement view when nobody is signed in
        self.entitlement_resolver.on_identity_changed(current)

        logger.info(
            "Reconciliation core started",
            extra={"identity_id": current.id if current else None},
        )

    async def stop(self) -> None:
        self.account_resolver.detach()
        self.entitlement_resolver.detach()
        await self.entitlement_sync.stop()
        logger.info("Reconciliation core stopped")


def build_core(
    identity_provider: IdentityProvider,
    entitlement_provider: EntitlementProvider,
    account_source: AccountStatusSource,
    entitlement_source: EntitlementSource,
    navigator: Navigator,
    settings: Optional[Settings] = None,
    fallback: FallbackPolicy = FULL_ACCESS_FALLBACK,
) -> Core:
    settings = settings or get_settings()
    return Core(
        settings=settings,
        identity_provider=identity_provider,
        linker=IdentityLinker(identity_provider),
        entitlement_sync=EntitlementSync(
            identity_provider.identity_changes,
            entitlement_provider,
            api_key=settings.revenuecat_api_key,
            provider_timeout=settings.entitlement_provider_timeout_seconds,
        ),
        account_resolver=AccountAccessResolver(
            account_source,
            fallback=fallback,
            timeout=settings.account_status_timeout_seconds,
        ),
        entitlement_resolver=EntitlementResolver(
            entitlement_source,
            timeout=settings.entitlement_provider_timeout_seconds,
        ),
        navigator=navigator,
    )


def build_default_core(
    navigator: Navigator,
    session_factory: sessionmaker,
    settings: Optional[Settings] = None,
) -> Core:
    """
    Production wiring: Firebase identity, RevenueCat entitlements and
    database-backed account/entitlement sources.
    """
    settings = settings or get_settings()
    identity_provider = FirebaseIdentityClient(
        api_key=settings.firebase_api_key,
        base_url=settings.identity_toolkit_base_url,
        timeout=settings.identity_provider_timeout_seconds,
    )
    entitlement_provider = RevenueCatClient(
        base_url=settings.revenuecat_base_url,
        timeout=settings.entitlement_provider_timeout_seconds,
    )
    return build_core(
        identity_provider=identity_provider,
        entitlement_provider=entitlement_provider,
        account_source=DatabaseAccountStatusSource(session_factory),
        entitlement_source=SnapshotEntitlementSource(session_factory),
        navigator=navigator,
        settings=settings,
    )
