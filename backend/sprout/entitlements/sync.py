"""
EntitlementSync: keep the entitlement provider's session in step with
the identity provider's current identity.

Identity transitions are captured synchronously (at emission time) into
an ordered queue and applied by a single worker task, so provider calls
for transition N+1 never start before transition N has finished.

Per transition:
1. configure the provider once, if an API key is present
2. permanent identity -> log_in(identity.id)
3. no identity (sign-out) -> log_out()
4. anonymous identity -> nothing (anonymous sessions are not entitled)

Provider failures are logged and swallowed. A failed or timed-out call
never blocks the app and never stops later transitions from running.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sprout.entitlements.provider import EntitlementProvider
from sprout.identity.models import Identity
from sprout.identity.stream import IdentityStateStream

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class IdentityTransition:
    """
    Identity facts captured when the transition was emitted.

    Identity objects are mutated in place by linking, so the worker must
    not read them later.
    """
    identity_id: Optional[str]
    is_anonymous: bool = False

    @classmethod
    def capture(cls, identity: Optional[Identity]) -> "IdentityTransition":
        if identity is None:
            return cls(identity_id=None)
        return cls(identity_id=identity.id, is_anonymous=identity.is_anonymous)

    @property
    def is_sign_out(self) -> bool:
        return self.identity_id is None


class EntitlementSync:
    """
    Binds one EntitlementProvider to one IdentityStateStream.

    start()/stop() are the lifecycle; setup()/teardown() are aliases kept
    for app-shell code that calls them by those names.
    """

    def __init__(
        self,
        identity_stream: IdentityStateStream,
        provider: EntitlementProvider,
        api_key: Optional[str] = None,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ):
        self.identity_stream = identity_stream
        self.provider = provider
        self.api_key = api_key
        self.provider_timeout = provider_timeout

        self.subscribed = False
        self.configured = False

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, current_identity: Optional[Identity] = None) -> bool:
        """
        Register the identity listener. Idempotent.

        Must be called from a running event loop. When current_identity
        is given it is processed as the first transition.

        Returns:
            True if this call registered the listener, False if already started
        """
        if self.subscribed:
            return False
        # Claimed before anything that could yield, so concurrent start()
        # calls register exactly one listener
        self.subscribed = True

        if not self.api_key:
            logger.info("Entitlement provider key not set; provider will stay unconfigured")

        self._queue = asyncio.Queue()
        self._worker = asyncio.get_running_loop().create_task(self._run())
        self._unsubscribe = self.identity_stream.subscribe(self._on_identity_changed)

        if current_identity is not None:
            self._queue.put_nowait(IdentityTransition.capture(current_identity))

        logger.info("Entitlement sync started")
        return True

    async def stop(self) -> None:
        """Remove the listener and reset flags so start() can run again."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        worker = self._worker
        self._worker = None
        self._queue = None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        self.subscribed = False
        self.configured = False
        logger.info("Entitlement sync stopped")

    setup = start
    teardown = stop

    async def drain(self) -> None:
        """Wait until every transition queued so far has been handled."""
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        if self._queue is None:
            return
        self._queue.put_nowait(IdentityTransition.capture(identity))

    async def _run(self) -> None:
        queue = self._queue
        while True:
            transition = await queue.get()
            try:
                await self._handle(transition)
            except Exception:
                logger.exception(
                    "Entitlement sync transition failed",
                    extra={"identity_id": transition.identity_id},
                )
            finally:
                queue.task_done()

    async def _handle(self, transition: IdentityTransition) -> None:
        if self.api_key and not self.configured:
            if await self._call("configure", self.provider.configure(self.api_key)):
                self.configured = True

        if not self.configured:
            logger.debug(
                "Entitlement provider not configured; skipping transition",
                extra={"identity_id": transition.identity_id},
            )
            return

        if transition.is_sign_out:
            await self._call("log_out", self.provider.log_out())
        elif transition.is_anonymous:
            logger.debug(
                "Anonymous identity; not logging in to entitlement provider",
                extra={"identity_id": transition.identity_id},
            )
        else:
            await self._call(
                "log_in",
                self.provider.log_in(transition.identity_id),
                identity_id=transition.identity_id,
            )

    async def _call(
        self,
        operation: str,
        call: Awaitable,
        identity_id: Optional[str] = None,
    ) -> bool:
        """Run one provider call under the timeout. Returns True on success."""
        try:
            await asyncio.wait_for(call, timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Entitlement provider call timed out",
                extra={
                    "operation": operation,
                    "identity_id": identity_id,
                    "timeout_seconds": self.provider_timeout,
                },
            )
            return False
        except Exception as e:
            logger.warning(
                "Entitlement provider call failed",
                extra={
                    "operation": operation,
                    "identity_id": identity_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False
        return True
