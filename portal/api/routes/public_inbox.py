"""Public Inbox Routes — provider webhooks and tokenized attachment downloads.

Invariants:
    - No identity header: the path token is the only credential
    - Twilio SMS always answers empty messaging TwiML; email webhooks always
      answer {"ok": true} (unknown tokens included)
    - Attachment downloads 404 on any id/token mismatch

Design Decisions:
    - Token → owner resolution happens here, before the handler runs, so the
      Twilio signature can be checked against that owner's auth token
"""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer
from starlette.datastructures import UploadFile as StarletteUpload

from portal.api.deps import form_params, require_twilio_signature
from portal.config import get_settings
from portal.core import twiml
from portal.core.errors import ResourceNotFoundError
from portal.core.media_paths import content_disposition
from portal.core.tokens import tokens_match
from portal.infrastructure.database import get_db
from portal.infrastructure.twilio_client import TwilioGateway, get_twilio_gateway
from portal.models.inbox_attachment import PortalInboxAttachment
from portal.services import inbound_webhooks
from portal.services.media_library import UploadFile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/public/inbox", tags=["public-inbox"])


def _twiml(body: str) -> Response:
    return Response(content=body, media_type=twiml.TWIML_MEDIA_TYPE)


@router.get("/attachments/{attachment_id}/{token}")
async def download_attachment(
    attachment_id: UUID, token: str, db: AsyncSession = Depends(get_db),
):
    attachment = (await db.execute(
        select(PortalInboxAttachment)
        .options(undefer(PortalInboxAttachment.content))
        .where(PortalInboxAttachment.id == attachment_id),
    )).scalar_one_or_none()
    if attachment is None or not tokens_match(attachment.public_token, token):
        raise ResourceNotFoundError("Attachment", str(attachment_id))
    return Response(
        content=attachment.content,
        media_type=attachment.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition("inline", attachment.file_name),
            "Cache-Control": "private, max-age=3600",
        },
    )


# ─── Twilio SMS ──────────────────────────────────────────────────

@router.get("/{token}/twilio/sms")
async def twilio_sms_probe(token: str):
    return _twiml(twiml.empty_messaging_response())


@router.post("/{token}/twilio/sms")
async def twilio_sms_webhook(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: TwilioGateway = Depends(get_twilio_gateway),
):
    owner_id = await inbound_webhooks.resolve_inbox_owner(db, token)
    form = form_params(await request.form())
    await require_twilio_signature(request, db, owner_id, form)
    await inbound_webhooks.handle_twilio_sms(
        db, gateway, owner_id, form, get_settings().inbound_attachment_max_bytes,
    )
    return _twiml(twiml.empty_messaging_response())


# ─── Email providers ─────────────────────────────────────────────

@router.get("/{token}/postmark")
@router.get("/{token}/postmark/inbound")
async def postmark_probe(token: str):
    return {"ok": True}


@router.post("/{token}/postmark")
@router.post("/{token}/postmark/inbound")
async def postmark_webhook(
    token: str, request: Request, db: AsyncSession = Depends(get_db),
):
    owner_id = await inbound_webhooks.resolve_inbox_owner(db, token)
    if owner_id is None:
        return {"ok": True}
    try:
        payload = json.loads(await request.body())
    except ValueError:
        logger.warning("Postmark webhook body is not JSON", extra={"owner_id": owner_id})
        return {"ok": True}
    await inbound_webhooks.handle_postmark(
        db, owner_id, payload, get_settings().inbound_attachment_max_bytes,
    )
    return {"ok": True}


@router.get("/{token}/sendgrid")
@router.get("/{token}/sendgrid/inbound")
async def sendgrid_probe(token: str):
    return {"ok": True}


@router.post("/{token}/sendgrid")
@router.post("/{token}/sendgrid/inbound")
async def sendgrid_webhook(
    token: str, request: Request, db: AsyncSession = Depends(get_db),
):
    owner_id = await inbound_webhooks.resolve_inbox_owner(db, token)
    if owner_id is None:
        return {"ok": True}
    form = await request.form()
    files = [
        UploadFile(
            v.filename or "attachment.bin",
            v.content_type or "application/octet-stream",
            await v.read(),
        )
        for _, v in form.multi_items()
        if isinstance(v, StarletteUpload)
    ]
    await inbound_webhooks.handle_sendgrid(
        db, owner_id, form_params(form), files, get_settings().inbound_attachment_max_bytes,
    )
    return {"ok": True}
