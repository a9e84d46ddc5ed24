"""
Content-generation collaborator.

Generation itself happens elsewhere (an AI worker). The core only hands
over the recap and later receives a completion signal for it.
"""

from abc import ABC, abstractmethod

from sprout.models.recap import Recap


class RecapGenerator(ABC):
    """Accepts recaps for asynchronous generation."""

    @abstractmethod
    def submit(self, recap: Recap) -> None:
        """
        Queue recap for generation. Must not block on generation.

        The eventual result arrives as a CompletionSignal for recap.id.
        """


class NullRecapGenerator(RecapGenerator):
    """Accepts and drops submissions (no generation worker configured)."""

    def submit(self, recap: Recap) -> None:
        return None
