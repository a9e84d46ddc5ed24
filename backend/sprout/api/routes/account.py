"""
Account status route.

Returns the caller's account type (full or shared) and the shared-access
grants they hold as a viewer. The app falls back to full access on its
own if this call fails.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sprout.auth.dependencies import get_current_identity
from sprout.database.session import get_db_session
from sprout.identity.models import Identity
from sprout.services.family_access_service import FamilyAccessService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/account", tags=["account"])


class SharedAccessResponse(BaseModel):
    granter_identity_id: str
    grantee_identity_id: str
    role: str
    status: str
    scopes: List[str]


class AccountStatusResponse(BaseModel):
    account_type: str
    shared_access: List[SharedAccessResponse]


@router.get("/status", response_model=AccountStatusResponse)
async def get_account_status(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    account_status = FamilyAccessService(db).get_account_status(identity.id)
    logger.debug(
        "Account status resolved",
        extra={"identity_id": identity.id, "account_type": account_status.account_type.value},
    )
    return AccountStatusResponse(**account_status.to_dict())
