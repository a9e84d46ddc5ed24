"""
Recaps: generation lifecycle and engagement.
"""

from sprout.recaps.errors import (
    GenerationFailure,
    InvalidRecapTransitionError,
    RecapAccessDeniedError,
    RecapError,
    RecapNotFoundError,
)

__all__ = [
    "GenerationFailure",
    "InvalidRecapTransitionError",
    "RecapAccessDeniedError",
    "RecapError",
    "RecapNotFoundError",
]
