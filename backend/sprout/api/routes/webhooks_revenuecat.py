"""
RevenueCat webhook route.

SECURITY: every delivery must carry "Authorization: Bearer <secret>",
where the secret is REVENUECAT_WEBHOOK_SECRET (or the local secret when
running against emulators). Comparison is constant-time.

Documentation: https://www.revenuecat.com/docs/integrations/webhooks
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sprout.config.settings import get_settings
from sprout.database.session import get_db_session
from sprout.entitlements.errors import WebhookAuthenticationError
from sprout.services.revenuecat_webhook_handler import (
    RevenueCatWebhookHandler,
    verify_authorization,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/revenuecat", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    processed: bool = False
    message: str = "Webhook processed"
    event_id: Optional[str] = None
    status: Optional[str] = None


@router.post("", response_model=WebhookResponse)
async def handle_revenuecat_webhook(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db_session),
):
    """
    Receive a RevenueCat event and mirror it into subscription_snapshots.

    Duplicates are acknowledged with 200 so RevenueCat stops retrying.
    """
    try:
        verify_authorization(authorization, get_settings().revenuecat_webhook_secret)
    except WebhookAuthenticationError as e:
        if e.code == "webhook_not_configured":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Webhook secret not configured",
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    raw_body = await request.body()
    handler = RevenueCatWebhookHandler(db)
    try:
        result = handler.handle(raw_body, dict(request.headers))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return WebhookResponse(
        processed=result.processed,
        message=result.message,
        event_id=result.event_id,
        status=result.status,
    )
