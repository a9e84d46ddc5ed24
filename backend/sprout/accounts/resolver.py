"""
AccountAccessResolver: resolve the current identity's account type and
shared-access grants.

State machine per identity: idle -> loading -> ready | error.
Sign-out resets to idle synchronously. A failed or timed-out lookup
settles in error with the values of the resolver's FallbackPolicy
(full access by default) and the error message recorded.

Every lookup carries the identity id and a generation number; a lookup
that finishes after a newer one started is discarded.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from sprout.accounts.errors import ResolutionFailure
from sprout.accounts.models import (
    FULL_ACCESS_FALLBACK,
    AccountAccessSnapshot,
    AccountStatus,
    AccountStatusSource,
    AccountType,
    FallbackPolicy,
    ResolutionState,
)
from sprout.identity.models import Identity
from sprout.identity.stream import IdentityStateStream
from sprout.resolution import ResolutionGuard, ResolutionTicket

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

SnapshotListener = Callable[[AccountAccessSnapshot], None]


class AccountAccessResolver:
    """Resolves AccountAccessSnapshot for whoever is currently signed in."""

    def __init__(
        self,
        source: AccountStatusSource,
        fallback: FallbackPolicy = FULL_ACCESS_FALLBACK,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.source = source
        self.fallback = fallback
        self.timeout = timeout
        self._snapshot = AccountAccessSnapshot()
        self._guard = ResolutionGuard()
        self._listeners: List[SnapshotListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AccountAccessSnapshot:
        return self._snapshot

    @property
    def account_type(self) -> Optional[AccountType]:
        return self._snapshot.account_type

    @property
    def is_full_account(self) -> bool:
        return self._snapshot.is_full_account

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Identity binding
    # ------------------------------------------------------------------

    def attach(self, stream: IdentityStateStream) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = stream.subscribe(self.on_identity_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_identity_changed(self, identity: Optional[Identity]) -> None:
        """
        Identity stream listener.

        The reset (or the move to loading) happens before this returns;
        the lookup itself runs as a task on the running loop.
        """
        ticket = self._begin(identity.id if identity else None)
        if ticket is None:
            return
        task = asyncio.get_running_loop().create_task(self._resolve(ticket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def set_identity(self, identity: Optional[Identity]) -> AccountAccessSnapshot:
        """Resolve for identity and wait for the result."""
        ticket = self._begin(identity.id if identity else None)
        if ticket is not None:
            await self._resolve(ticket)
        return self._snapshot

    async def refresh(self) -> AccountAccessSnapshot:
        """Re-run resolution for the current identity."""
        identity_id = self._guard.identity_id
        if identity_id is None:
            return self._snapshot
        ticket = self._begin(identity_id)
        await self._resolve(ticket)
        return self._snapshot

    async def wait_idle(self) -> None:
        """Wait for scheduled lookups to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self, identity_id: Optional[str]) -> Optional[ResolutionTicket]:
        ticket = self._guard.issue(identity_id)
        if identity_id is None:
            self._publish(AccountAccessSnapshot())
            return None
        self._publish(
            AccountAccessSnapshot(
                state=ResolutionState.LOADING,
                identity_id=identity_id,
                account_type=self._snapshot.account_type
                if self._snapshot.identity_id == identity_id else None,
                shared_access=list(self._snapshot.shared_access)
                if self._snapshot.identity_id == identity_id else [],
            )
        )
        return ticket

    async def _resolve(self, ticket: ResolutionTicket) -> None:
        try:
            status = await self._load(ticket.identity_id)
        except ResolutionFailure as e:
            if not self._guard.is_current(ticket):
                logger.debug(
                    "Discarding stale account status failure",
                    extra={"identity_id": ticket.identity_id},
                )
                return
            logger.warning(
                "Account status resolution failed; using fallback",
                extra={
                    "identity_id": ticket.identity_id,
                    "fallback": self.fallback.name,
                    "error": e.message,
                },
            )
            self._publish(
                AccountAccessSnapshot(
                    state=ResolutionState.ERROR,
                    identity_id=ticket.identity_id,
                    account_type=self.fallback.account_type,
                    shared_access=list(self.fallback.shared_access),
                    error=e.message,
                )
            )
            return

        if not self._guard.is_current(ticket):
            logger.debug(
                "Discarding stale account status",
                extra={"identity_id": ticket.identity_id},
            )
            return

        self._publish(
            AccountAccessSnapshot(
                state=ResolutionState.READY,
                identity_id=ticket.identity_id,
                account_type=status.account_type,
                shared_access=list(status.shared_access or ()),
            )
        )

    async def _load(self, identity_id: str) -> AccountStatus:
        try:
            return await asyncio.wait_for(self.source.load(identity_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ResolutionFailure(
                f"Account status lookup timed out after {self.timeout}s",
                identity_id=identity_id,
            )
        except ResolutionFailure:
            raise
        except Exception as e:
            raise ResolutionFailure(str(e) or type(e).__name__, identity_id=identity_id) from e

    def _publish(self, snapshot: AccountAccessSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Account access listener failed")
