"""
Entitlement provider interface consumed by EntitlementSync.
"""

from abc import ABC, abstractmethod

from sprout.entitlements.models import EntitlementState


class EntitlementProvider(ABC):
    """
    Abstract subscription backend (RevenueCat in production).

    Every method may raise ProviderUnavailableError; none of them may
    block indefinitely on its own, but callers still bound them with a
    timeout.
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True once configure() has succeeded."""

    @abstractmethod
    async def configure(self, api_key: str) -> None:
        """Initialize the provider. Called at most once per process."""

    @abstractmethod
    async def log_in(self, identity_id: str) -> EntitlementState:
        """Associate the provider session with a permanent identity."""

    @abstractmethod
    async def log_out(self) -> None:
        """Dissociate the provider session from any identity."""

    @abstractmethod
    async def get_entitlement_state(self) -> EntitlementState:
        """Entitlement state for the currently associated session."""
