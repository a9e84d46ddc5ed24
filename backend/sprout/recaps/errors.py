"""
Recap lifecycle errors.
"""

from typing import Any, Dict, Optional

from sprout.errors import SproutError


class RecapError(SproutError):
    """Base exception for recap operations."""

    code = "recap_error"


class InvalidRecapTransitionError(RecapError):
    """Raised when a status change would break the generation state machine."""

    code = "invalid_recap_transition"

    def __init__(self, recap_id: Optional[str], current_status: str, target_status: str):
        self.recap_id = recap_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Recap {recap_id} cannot move from '{current_status}' to '{target_status}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_status"] = self.current_status
        data["target_status"] = self.target_status
        return data


class RecapNotFoundError(RecapError):
    """Raised when a recap id does not exist."""

    code = "recap_not_found"


class RecapAccessDeniedError(RecapError):
    """Raised when an identity has no owner or grantee rights on a recap."""

    code = "recap_access_denied"


class GenerationFailure(RecapError):
    """
    External generation reported failure.

    Recorded as the recap's terminal FAILED status; never retried by this core.
    """

    code = "generation_failed"

    def __init__(self, recap_id: str, reason: str):
        self.recap_id = recap_id
        self.reason = reason
        super().__init__(f"Recap {recap_id} generation failed: {reason}")
