"""
Recap API routes.

Provides endpoints for:
- Requesting generation and reading recaps (owner, or grantees with scope)
- The generation worker's completion callback
- Engagement: like, favorite, milestone
- Comments

SECURITY:
- The completion callback authenticates with RECAP_WORKER_SECRET, not a
  user token; it is the only writer of generation status
- Owner/grantee checks happen in RecapService
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sprout.auth.dependencies import get_current_identity
from sprout.auth.shared_secret import bearer_secret_matches
from sprout.config.settings import get_settings
from sprout.database.session import get_db_session
from sprout.identity.models import Identity
from sprout.models.recap import Recap, RecapType
from sprout.recaps.errors import RecapAccessDeniedError, RecapError, RecapNotFoundError
from sprout.recaps.generator import NullRecapGenerator, RecapGenerator
from sprout.recaps.lifecycle import CompletionSignal
from sprout.services.notification_service import NotificationService
from sprout.services.recap_service import RecapService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recaps", tags=["recaps"])


# --- Request/Response Models ---


class RequestRecapBody(BaseModel):
    date_range_start: datetime
    date_range_end: datetime
    recap_type: RecapType = RecapType.WEEKLY
    child_ids: List[str] = Field(default_factory=list)
    media_entries: List[Dict[str, Any]] = Field(default_factory=list)


class CompletionBody(BaseModel):
    ai_generated: Optional[Dict[str, Any]] = None
    failure_reason: Optional[str] = None


class CompletionResponse(BaseModel):
    recap_id: str
    outcome: str
    status: str


class CommentBody(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class RecapListResponse(BaseModel):
    recaps: List[Dict[str, Any]]
    total_count: int


# --- Helper Functions ---


def get_recap_generator(request: Request) -> RecapGenerator:
    """Generator installed on app.state by the container, if any."""
    return getattr(request.app.state, "recap_generator", None) or NullRecapGenerator()


def _service(db: Session, generator: Optional[RecapGenerator] = None) -> RecapService:
    return RecapService(db, generator=generator, notifications=NotificationService(db))


def _raise_http(e: RecapError) -> None:
    if isinstance(e, RecapNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, RecapAccessDeniedError):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_409_CONFLICT
    raise HTTPException(status_code=code, detail=e.to_dict())


def _recap_dict(recap: Recap) -> Dict[str, Any]:
    return recap.to_dict()


# --- API Endpoints ---


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def request_recap(
    body: RequestRecapBody,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
    generator: RecapGenerator = Depends(get_recap_generator),
):
    """Create a recap in generating state and hand it to the generator."""
    try:
        recap = _service(db, generator).request_generation(
            owner_id=identity.id,
            date_range_start=body.date_range_start,
            date_range_end=body.date_range_end,
            recap_type=body.recap_type,
            child_ids=body.child_ids,
            media_entries=body.media_entries,
        )
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return _recap_dict(recap)


@router.get("", response_model=RecapListResponse)
async def list_recaps(
    owner_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        recaps = _service(db).list_recaps(
            owner_id=owner_id or identity.id,
            viewer_id=identity.id,
            limit=min(max(limit, 1), 100),
            offset=max(offset, 0),
        )
    except RecapError as e:
        _raise_http(e)

    return RecapListResponse(recaps=[_recap_dict(r) for r in recaps], total_count=len(recaps))


@router.get("/{recap_id}")
async def get_recap(
    recap_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        recap = _service(db).get_recap(recap_id, identity.id)
    except RecapError as e:
        _raise_http(e)
    return _recap_dict(recap)


@router.post("/{recap_id}/completion", response_model=CompletionResponse)
async def complete_recap(
    recap_id: str,
    body: CompletionBody,
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db_session),
):
    """
    Generation worker callback. Idempotent: signals for a recap that is
    already completed or failed return outcome "ignored".
    """
    secret = get_settings().recap_worker_secret
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Recap worker secret not configured",
        )
    if not bearer_secret_matches(authorization, secret):
        logger.warning("Recap completion authorization failed", extra={"recap_id": recap_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        signal = CompletionSignal(
            ai_generated=body.ai_generated,
            failure_reason=body.failure_reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        result = _service(db).apply_completion(recap_id, signal)
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return CompletionResponse(**result.to_dict())


@router.post("/{recap_id}/like")
async def toggle_like(
    recap_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        recap = _service(db).toggle_like(recap_id, identity.id, user_name=identity.display_name)
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    return _recap_dict(recap)


@router.post("/{recap_id}/favorite")
async def toggle_favorite(
    recap_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        recap = _service(db).toggle_favorite(recap_id, identity.id)
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    return _recap_dict(recap)


@router.post("/{recap_id}/milestone")
async def toggle_milestone(
    recap_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        recap = _service(db).toggle_milestone(recap_id, identity.id)
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    return _recap_dict(recap)


@router.get("/{recap_id}/comments")
async def list_comments(
    recap_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        comments = _service(db).list_comments(recap_id, identity.id)
    except RecapError as e:
        _raise_http(e)
    return {"comments": [c.to_dict() for c in comments], "total_count": len(comments)}


@router.post("/{recap_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    recap_id: str,
    body: CommentBody,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        comment = _service(db).add_comment(
            recap_id, identity.id, body.text, user_name=identity.display_name
        )
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return comment.to_dict()


@router.delete("/{recap_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    recap_id: str,
    comment_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    try:
        deleted = _service(db).delete_comment(comment_id, identity.id)
        db.commit()
    except RecapError as e:
        db.rollback()
        _raise_http(e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
