"""
Recap completion: apply the result of external generation exactly once.

Generation is a two-phase commit. Phase one (request_generation) stores
the recap as GENERATING. Phase two applies a CompletionSignal. Signals
for a recap that is already terminal are ignored, so redelivery from the
generation worker is harmless and a recap is never resurrected.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sprout.models.recap import AI_GENERATED_FIELDS, Recap, known_ai_generated_fields
from sprout.recaps.errors import GenerationFailure

logger = logging.getLogger(__name__)


class CompletionOutcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CompletionSignal:
    """
    Result of one generation attempt: a payload or a failure reason.

    ai_generated is reduced to the fields a recap stores; a payload with
    none of them counts as absent.
    """
    ai_generated: Optional[Dict[str, Any]] = None
    failure_reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "ai_generated", known_ai_generated_fields(self.ai_generated) or None)
        if (self.ai_generated is None) == (not self.failure_reason):
            raise ValueError(
                "A completion signal carries exactly one of ai_generated "
                "(with at least one of: " + ", ".join(AI_GENERATED_FIELDS) + ") or failure_reason"
            )

    @classmethod
    def success(cls, ai_generated: Dict[str, Any]) -> "CompletionSignal":
        return cls(ai_generated=ai_generated)

    @classmethod
    def failure(cls, reason: str) -> "CompletionSignal":
        return cls(failure_reason=reason)

    @property
    def is_success(self) -> bool:
        return self.ai_generated is not None


@dataclass(frozen=True)
class CompletionResult:
    recap_id: str
    outcome: CompletionOutcome
    status: str
    failure: Optional[GenerationFailure] = None

    @property
    def applied(self) -> bool:
        return self.outcome != CompletionOutcome.IGNORED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recap_id": self.recap_id,
            "outcome": self.outcome.value,
            "status": self.status,
        }


def apply_completion(recap: Recap, signal: CompletionSignal) -> CompletionResult:
    """
    Apply signal to recap in memory.

    Returns:
        CompletionResult; IGNORED when the recap is already terminal
    """
    if recap.is_terminal:
        logger.info(
            "Ignoring completion for terminal recap",
            extra={"recap_id": recap.id, "status": recap.status},
        )
        return CompletionResult(
            recap_id=recap.id,
            outcome=CompletionOutcome.IGNORED,
            status=recap.status,
        )

    if signal.is_success:
        recap.mark_completed(signal.ai_generated)
        logger.info("Recap generation completed", extra={"recap_id": recap.id})
        return CompletionResult(
            recap_id=recap.id,
            outcome=CompletionOutcome.COMPLETED,
            status=recap.status,
        )

    failure = GenerationFailure(recap.id, signal.failure_reason)
    recap.mark_failed(signal.failure_reason)
    logger.warning(
        "Recap generation failed",
        extra={"recap_id": recap.id, "reason": signal.failure_reason},
    )
    return CompletionResult(
        recap_id=recap.id,
        outcome=CompletionOutcome.FAILED,
        status=recap.status,
        failure=failure,
    )
