"""
Base error type shared by every Sprout error family.

Each package defines its own subclasses (identity, entitlements, accounts,
recaps). All of them carry a machine-readable code for API responses.
"""

from typing import Any, Dict, Optional


class SproutError(Exception):
    """Base exception for the reconciliation core."""

    code = "sprout_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.code,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"
