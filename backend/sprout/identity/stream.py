"""
Identity-change event stream.

Listeners are called synchronously, in registration order, for every
transition the identity provider emits. A transition is a new Identity
(sign-in, anonymous start, or an anonymous identity becoming permanent)
or None (sign-out).
"""

import logging
from threading import Lock
from typing import Callable, List, Optional

from sprout.identity.models import Identity

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]


class IdentityStateStream:
    """Ordered fan-out of identity transitions."""

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self._lock = Lock()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener; calling it twice is harmless
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, identity: Optional[Identity]) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(identity)
            except Exception:
                # One broken consumer must not starve the others
                logger.exception(
                    "Identity listener failed",
                    extra={"identity_id": identity.id if identity else None},
                )
