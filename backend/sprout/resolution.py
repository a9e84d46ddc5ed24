"""
Latest-request bookkeeping for identity-scoped async resolution.

Both AccountAccessResolver and EntitlementResolver start an async fetch
whenever the identity changes. A fetch that finishes after a newer one
started must not overwrite the newer result, so every fetch carries a
ticket and only the current ticket may commit.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ResolutionTicket:
    identity_id: Optional[str]
    generation: int


class ResolutionGuard:
    """Issues tickets and tells whether a ticket is still the newest."""

    def __init__(self) -> None:
        self._generation = 0
        self._identity_id: Optional[str] = None

    @property
    def identity_id(self) -> Optional[str]:
        return self._identity_id

    def issue(self, identity_id: Optional[str]) -> ResolutionTicket:
        self._generation += 1
        self._identity_id = identity_id
        return ResolutionTicket(identity_id=identity_id, generation=self._generation)

    def is_current(self, ticket: ResolutionTicket) -> bool:
        return ticket.generation == self._generation and ticket.identity_id == self._identity_id
