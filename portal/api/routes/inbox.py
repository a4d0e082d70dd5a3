"""Portal Inbox Routes — settings, threads, messages, and outbound SMS.

Invariants:
    - Every query is scoped to the caller's owner id
    - Reading settings for the first time mints and commits the webhook token
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_current_user
from portal.config import get_settings
from portal.core.domain_types import InboxChannel
from portal.infrastructure.database import get_db
from portal.infrastructure.twilio_client import TwilioGateway, get_twilio_gateway
from portal.models.inbox_message import PortalInboxMessage
from portal.models.user import User
from portal.schemas.inbox import (
    AttachmentResponse, MessageResponse, SendSmsRequest, ThreadResponse,
)
from portal.services import inbox

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/portal/inbox", tags=["inbox"])


def _settings_payload(settings: dict) -> dict:
    token = settings.get("webhook_token", "")
    return {
        "settings": {"webhook_token": token},
        "webhook_urls": inbox.webhook_urls(get_settings().public_base_url, token),
    }


def _message_response(message: PortalInboxMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        channel=message.channel,
        direction=message.direction,
        from_address=message.from_address,
        to_address=message.to_address,
        subject=message.subject,
        body_text=message.body_text,
        provider=message.provider,
        created_at=message.created_at,
        attachments=[
            AttachmentResponse(
                id=a.id, file_name=a.file_name, mime_type=a.mime_type,
                file_size=a.file_size, url=inbox.attachment_url(a),
            )
            for a in message.attachments
        ],
    )


@router.get("/settings")
async def get_inbox_settings(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db),
):
    settings = await inbox.get_or_create_inbox_settings(db, user.id)
    await db.commit()
    return _settings_payload(settings)


@router.post("/settings/regenerate-token")
async def regenerate_token(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db),
):
    settings = await inbox.regenerate_inbox_token(db, user.id)
    await db.commit()
    return _settings_payload(settings)


@router.get("/threads", response_model=list[ThreadResponse])
async def list_threads(
    channel: InboxChannel | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    threads = await inbox.list_threads(db, user.id, channel=channel, limit=limit)
    return [ThreadResponse.model_validate(t, from_attributes=True) for t in threads]


@router.get("/threads/{thread_id}/messages", response_model=list[MessageResponse])
async def list_thread_messages(
    thread_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    messages = await inbox.list_thread_messages(db, user.id, thread_id)
    return [_message_response(m) for m in messages]


@router.post("/send-sms")
async def send_sms(
    body: SendSmsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: TwilioGateway = Depends(get_twilio_gateway),
):
    """Send through the owner's Twilio account; the sent message lands in its SMS thread."""
    result = await inbox.send_sms(db, gateway, user.id, body.to, body.body)
    await db.commit()
    return {
        "ok": True,
        "thread_id": str(result.thread_id),
        "message_id": str(result.message_id),
    }
