"""
Bearer shared-secret checks for server-to-server callers (RevenueCat
webhooks, the recap generation worker).
"""

import hmac
from typing import Optional


def extract_bearer(authorization: Optional[str]) -> str:
    header = (authorization or "").strip()
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return ""


def bearer_secret_matches(authorization: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of "Authorization: Bearer <secret>"."""
    token = extract_bearer(authorization)
    if not token or not secret:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())
