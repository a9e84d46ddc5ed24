"""
FastAPI dependencies for the authenticated identity.

Usage:
    @router.get("/me")
    async def me(identity: Identity = Depends(get_current_identity)):
        ...
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from sprout.auth.firebase_verifier import TokenVerificationError, get_verifier
from sprout.identity.models import Identity


async def get_current_identity(
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    """
    Resolve the caller's Identity from "Authorization: Bearer <id token>".

    Raises:
        HTTPException 401: missing or invalid token
        HTTPException 503: verifier not configured
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        verifier = get_verifier()
    except TokenVerificationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    try:
        return verifier.verify_identity(authorization)
    except TokenVerificationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_permanent_identity(
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    """Like get_current_identity, but rejects anonymous sessions with 403."""
    identity = await get_current_identity(authorization)
    if identity.is_anonymous:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="A permanent account is required",
        )
    return identity
