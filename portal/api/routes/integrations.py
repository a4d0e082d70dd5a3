"""Integration Routes — the owner's Twilio account credentials."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_current_user
from portal.infrastructure.database import get_db
from portal.models.user import User
from portal.schemas.integrations import TwilioConfigUpdate
from portal.services import twilio_integration

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/portal/integrations", tags=["integrations"])


@router.get("/twilio")
async def get_twilio(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db),
):
    creds = await twilio_integration.get_twilio_config(db, user.id)
    return {"twilio": twilio_integration.masked_view(creds)}


@router.put("/twilio")
async def put_twilio(
    body: TwilioConfigUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    creds = await twilio_integration.save_twilio_config(
        db, user.id, body.account_sid, body.auth_token, body.from_number,
    )
    await db.commit()
    logger.info("Twilio integration saved", extra={"owner_id": user.id})
    return {"twilio": twilio_integration.masked_view(creds)}
