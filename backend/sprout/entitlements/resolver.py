"""
EntitlementResolver: derive the (loading, is_active) view that PremiumGate
consumes from the current identity's subscription record.

is_active is true for status active or trial, or while a complimentary
grant (comp_until) is in the future.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from sqlalchemy.orm import Session, sessionmaker

from sprout.entitlements.models import EntitlementState, SubscriptionStatus
from sprout.identity.models import Identity
from sprout.identity.stream import IdentityStateStream
from sprout.models.subscription import SubscriptionSnapshot
from sprout.resolution import ResolutionGuard, ResolutionTicket

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class EntitlementSource(ABC):
    """Where subscription records come from."""

    @abstractmethod
    async def get_entitlement_state(self, identity_id: str) -> EntitlementState:
        """Entitlement state for identity_id (inactive when no record exists)."""


class SnapshotEntitlementSource(EntitlementSource):
    """Reads the webhook-maintained subscription_snapshots table."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load(self, identity_id: str) -> EntitlementState:
        session: Session = self.session_factory()
        try:
            snapshot = session.get(SubscriptionSnapshot, identity_id)
            return EntitlementState.from_snapshot(snapshot)
        finally:
            session.close()

    async def get_entitlement_state(self, identity_id: str) -> EntitlementState:
        return await asyncio.to_thread(self.load, identity_id)


@dataclass(frozen=True)
class EntitlementView:
    """What a premium gate needs to decide."""
    loading: bool = False
    is_active: bool = False
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    error: Optional[str] = None


EntitlementListener = Callable[[EntitlementView], None]


class EntitlementResolver:
    """
    Tracks the entitlement view for the current identity.

    On failure the view settles as not loading and inactive, with the
    error recorded; premium content stays locked but the rest of the app
    is unaffected.
    """

    def __init__(self, source: EntitlementSource, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.source = source
        self.timeout = timeout
        # Loading until the first identity transition is known
        self._view = EntitlementView(loading=True)
        self._guard = ResolutionGuard()
        self._listeners: List[EntitlementListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def view(self) -> EntitlementView:
        return self._view

    @property
    def identity_id(self) -> Optional[str]:
        return self._guard.identity_id

    def subscribe(self, listener: EntitlementListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def attach(self, stream: IdentityStateStream) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = stream.subscribe(self.on_identity_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_identity_changed(self, identity: Optional[Identity]) -> None:
        """Identity stream listener; schedules resolution on the running loop."""
        ticket = self._begin(identity)
        if ticket is None:
            return
        task = asyncio.get_running_loop().create_task(self._resolve(ticket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def set_identity(self, identity: Optional[Identity]) -> EntitlementView:
        ticket = self._begin(identity)
        if ticket is not None:
            await self._resolve(ticket)
        return self._view

    async def refresh(self) -> EntitlementView:
        identity_id = self._guard.identity_id
        if identity_id is None:
            return self._view
        ticket = self._guard.issue(identity_id)
        self._publish(EntitlementView(loading=True))
        await self._resolve(ticket)
        return self._view

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _begin(self, identity: Optional[Identity]) -> Optional[ResolutionTicket]:
        if identity is None:
            self._guard.issue(None)
            self._publish(EntitlementView())
            return None
        ticket = self._guard.issue(identity.id)
        self._publish(EntitlementView(loading=True))
        return ticket

    async def _resolve(self, ticket: ResolutionTicket) -> None:
        try:
            state = await asyncio.wait_for(
                self.source.get_entitlement_state(ticket.identity_id),
                timeout=self.timeout,
            )
        except Exception as e:
            if not self._guard.is_current(ticket):
                return
            logger.warning(
                "Entitlement resolution failed",
                extra={"identity_id": ticket.identity_id, "error": str(e)},
            )
            self._publish(EntitlementView(loading=False, is_active=False, error=str(e) or type(e).__name__))
            return

        if not self._guard.is_current(ticket):
            logger.debug(
                "Discarding stale entitlement result",
                extra={"identity_id": ticket.identity_id},
            )
            return

        self._publish(
            EntitlementView(loading=False, is_active=state.is_active(), status=state.status)
        )

    def _publish(self, view: EntitlementView) -> None:
        self._view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Entitlement listener failed")
