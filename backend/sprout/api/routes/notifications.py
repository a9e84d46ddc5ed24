"""
Notification inbox routes.

Every query is scoped to the authenticated identity.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sprout.auth.dependencies import get_current_identity
from sprout.database.session import get_db_session
from sprout.identity.models import Identity
from sprout.models.notification import NotificationStatus
from sprout.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: Optional[str] = None
    message: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    actors: List[dict]
    metadata: dict
    is_read: bool
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total_count: int
    unread_count: int


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    service = NotificationService(db)
    notifications, total = service.get_notifications(
        user_id=identity.id,
        status=NotificationStatus.UNREAD if unread_only else None,
        limit=min(max(limit, 1), 100),
        offset=max(offset, 0),
    )
    return NotificationListResponse(
        notifications=[NotificationResponse(**n.to_dict()) for n in notifications],
        total_count=total,
        unread_count=service.get_unread_count(identity.id),
    )


@router.get("/unread-count")
async def unread_count(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    return {"unread_count": NotificationService(db).get_unread_count(identity.id)}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    if not NotificationService(db).mark_as_read(notification_id, identity.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    db.commit()
    return {"success": True}


@router.post("/read-all")
async def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    count = NotificationService(db).mark_all_as_read(identity.id)
    db.commit()
    return {"success": True, "count": count}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    if not NotificationService(db).delete(notification_id, identity.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    db.commit()
