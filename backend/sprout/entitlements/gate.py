"""
PremiumGate: decide what a premium-only screen shows and send inactive
users to the upsell destination.

The gate is edge-triggered. Navigation fires when the view enters the
settled-inactive state (loading false, is_active false), not on every
evaluation while it stays there. Leaving that state re-arms the gate, so
a later loading -> inactive transition redirects again.
"""

import asyncio
import enum
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from sprout.config.settings import DEFAULT_UPSELL_DESTINATION
from sprout.entitlements.resolver import EntitlementView

logger = logging.getLogger(__name__)


class Navigator(ABC):
    """Navigation side effect owned by the app shell."""

    @abstractmethod
    def navigate_to_upsell(self, destination: str) -> Any:
        """Navigate to the upsell screen. May return an awaitable."""


class GateRender(str, enum.Enum):
    NOTHING = "nothing"
    CHILDREN = "children"
    FALLBACK = "fallback"


class GatePhase(str, enum.Enum):
    UNSET = "unset"
    LOADING = "loading"
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def of(cls, view: EntitlementView) -> "GatePhase":
        if view.loading:
            return cls.LOADING
        return cls.ACTIVE if view.is_active else cls.INACTIVE


@dataclass(frozen=True)
class GateDecision:
    render: GateRender
    content: Any = None
    redirected: bool = False


class PremiumGate:
    """
    One gate instance per mounted premium screen.

    evaluate() is called on every render with the current view.
    """

    def __init__(self, navigator: Navigator, destination: str = DEFAULT_UPSELL_DESTINATION):
        self.navigator = navigator
        self.destination = destination
        self._phase = GatePhase.UNSET

    @property
    def phase(self) -> GatePhase:
        return self._phase

    def evaluate(
        self,
        view: EntitlementView,
        children: Any = None,
        fallback: Any = None,
    ) -> GateDecision:
        """
        Args:
            view: Current entitlement view
            children: Premium content
            fallback: Shown instead of nothing while inactive

        Returns:
            GateDecision (nothing while loading, children when active,
            fallback or nothing when inactive)
        """
        phase = GatePhase.of(view)
        entered_inactive = phase == GatePhase.INACTIVE and self._phase != GatePhase.INACTIVE
        self._phase = phase

        if phase == GatePhase.LOADING:
            return GateDecision(render=GateRender.NOTHING)
        if phase == GatePhase.ACTIVE:
            return GateDecision(render=GateRender.CHILDREN, content=children)

        if entered_inactive:
            self._redirect()
        if fallback is not None:
            return GateDecision(render=GateRender.FALLBACK, content=fallback, redirected=entered_inactive)
        return GateDecision(render=GateRender.NOTHING, redirected=entered_inactive)

    def reset(self) -> None:
        """Forget the last phase (e.g. the gate was unmounted and remounted)."""
        self._phase = GatePhase.UNSET

    def _redirect(self) -> None:
        logger.info("Redirecting to upsell", extra={"destination": self.destination})
        try:
            result = self.navigator.navigate_to_upsell(self.destination)
        except Exception:
            logger.exception("Upsell navigation failed", extra={"destination": self.destination})
            return

        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.error(
                    "Upsell navigation could not be scheduled: no running event loop",
                    extra={"destination": self.destination},
                )
                if inspect.iscoroutine(result):
                    result.close()
                return
            # Fire and forget; the render must not wait on navigation
            task = asyncio.ensure_future(result, loop=loop)
            task.add_done_callback(self._log_navigation_failure)

    def _log_navigation_failure(self, task: "asyncio.Future") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Upsell navigation failed",
                extra={"destination": self.destination, "error": str(error)},
            )
