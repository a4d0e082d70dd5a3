"""Inbound Webhooks — Twilio SMS/MMS, Postmark and SendGrid deliveries into the inbox.

Invariants:
    - Unknown token or unusable sender → nothing written, still a 2xx answer
      (providers retry non-2xx; a revoked token must not cause retry storms)
    - The message row is committed before any attachment work starts
    - Each attachment is stored and mirrored under its own best-effort step:
      one bad file never drops the message or its siblings
    - At most MAX_ATTACHMENTS per delivery, each ≤ the configured byte cap
    - MMS media is only fetched from https *.twilio.com URLs; the fetch sends
      the owner's Twilio credentials

Design Decisions:
    - Handlers take an already-resolved owner id: the route resolves the token
      first so it can check the Twilio signature with that owner's auth token
    - Attachment bytes are passed around as media_library.UploadFile so
      Postmark (base64 JSON) and SendGrid (multipart) share one storage path
"""

import base64
import binascii
import logging
import mimetypes
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.domain_types import (
    InboxChannel, InboxDirection, InboxProvider, ServiceSlug,
)
from portal.core.inbox_keys import (
    NO_SUBJECT, extract_email_address, make_email_thread_key,
    make_sms_thread_key, strip_html,
)
from portal.core.phone import normalize_phone_for_storage
from portal.infrastructure.twilio_client import TwilioGateway, is_twilio_media_url
from portal.services.best_effort import best_effort
from portal.services.inbox import store_inbox_attachment, upsert_inbox_message
from portal.services.media_library import UploadFile, mirror_upload_to_media_library
from portal.services.service_setup import find_owner_by_webhook_token
from portal.services.twilio_integration import get_twilio_config

logger = logging.getLogger(__name__)

MAX_ATTACHMENTS = 10


async def resolve_inbox_owner(db: AsyncSession, token: str) -> UUID | None:
    return await find_owner_by_webhook_token(db, ServiceSlug.INBOX, token)


def _extension_for(mime_type: str) -> str:
    if mime_type == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(mime_type or "") or ""


async def _store_attachments(
    db: AsyncSession,
    owner_id: UUID,
    message_id: UUID,
    files: list[UploadFile],
    max_bytes: int,
) -> int:
    stored = 0
    for upload in files[:MAX_ATTACHMENTS]:
        if not upload.content or len(upload.content) > max_bytes:
            continue
        async with best_effort("inbox.attachment", db, owner_id=owner_id):
            await store_inbox_attachment(
                db, owner_id, message_id, upload.file_name, upload.mime_type, upload.content,
            )
            await db.commit()
            stored += 1
        async with best_effort("inbox.attachment_mirror", db, owner_id=owner_id):
            await mirror_upload_to_media_library(
                db, owner_id, upload.file_name, upload.mime_type, upload.content,
            )
            await db.commit()
    return stored


# ─── Twilio SMS / MMS ────────────────────────────────────────────

async def _fetch_mms_media(
    db: AsyncSession,
    gateway: TwilioGateway,
    owner_id: UUID,
    form: Mapping[str, Any],
    max_bytes: int,
) -> list[UploadFile]:
    try:
        count = min(int(form.get("NumMedia") or 0), MAX_ATTACHMENTS)
    except ValueError:
        count = 0
    if count <= 0:
        return []
    creds = await get_twilio_config(db, owner_id)
    if creds is None:
        logger.warning(
            "MMS media skipped: Twilio not configured",
            extra={"owner_id": owner_id, "provider": InboxProvider.TWILIO.value},
        )
        return []

    sid_tail = str(form.get("MessageSid") or "")[-8:] or "msg"
    files: list[UploadFile] = []
    for i in range(count):
        url = str(form.get(f"MediaUrl{i}") or "").strip()
        if not url:
            continue
        if not is_twilio_media_url(url):
            logger.warning(
                "MMS media skipped: URL is not a Twilio host",
                extra={"owner_id": owner_id, "provider": InboxProvider.TWILIO.value},
            )
            continue
        async with best_effort("inbox.mms_fetch", owner_id=owner_id):
            content, content_type = await gateway.fetch_media(creds, url, max_bytes)
            mime = str(form.get(f"MediaContentType{i}") or "").strip() or content_type
            name = f"mms-{sid_tail}-{i + 1}{_extension_for(mime)}"
            files.append(UploadFile(name, mime, content))
    return files


async def handle_twilio_sms(
    db: AsyncSession,
    gateway: TwilioGateway,
    owner_id: UUID | None,
    form: Mapping[str, Any],
    max_attachment_bytes: int,
) -> bool:
    """Record one inbound SMS (plus MMS media). False when nothing was stored."""
    if owner_id is None:
        return False
    from_raw = str(form.get("From") or "").strip()
    key = make_sms_thread_key(from_raw)
    if key is None:
        return False

    message_sid = str(form.get("MessageSid") or "").strip() or None
    result = await upsert_inbox_message(
        db, owner_id,
        channel=InboxChannel.SMS,
        direction=InboxDirection.IN,
        key=key,
        from_address=key.peer_address,
        to_address=normalize_phone_for_storage(form.get("To")) or str(form.get("To") or ""),
        body_text=str(form.get("Body") or ""),
        provider=InboxProvider.TWILIO.value,
        provider_message_id=message_sid,
    )
    await db.commit()
    message_id = result.message_id
    if result.duplicate:
        return True

    files: list[UploadFile] = []
    async with best_effort("inbox.mms", db, owner_id=owner_id):
        files = await _fetch_mms_media(db, gateway, owner_id, form, max_attachment_bytes)
    if files:
        await _store_attachments(db, owner_id, message_id, files, max_attachment_bytes)
    return True


# ─── Email ───────────────────────────────────────────────────────

async def _record_email(
    db: AsyncSession,
    owner_id: UUID,
    *,
    from_raw: str,
    to_raw: str,
    subject: str,
    text: str,
    html_body: str,
    provider: InboxProvider,
    provider_message_id: str | None,
    files: list[UploadFile],
    max_attachment_bytes: int,
) -> bool:
    from_email = extract_email_address(from_raw)
    if not from_email:
        return False
    to_email = extract_email_address(to_raw)
    body = text.strip() or (strip_html(html_body) if html_body else "")

    result = await upsert_inbox_message(
        db, owner_id,
        channel=InboxChannel.EMAIL,
        direction=InboxDirection.IN,
        key=make_email_thread_key(from_email, subject or NO_SUBJECT),
        from_address=from_email,
        to_address=to_email or to_raw,
        body_text=body or " ",
        provider=provider.value,
        provider_message_id=provider_message_id,
    )
    await db.commit()
    if not result.duplicate and files:
        await _store_attachments(db, owner_id, result.message_id, files, max_attachment_bytes)
    return True


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _postmark_attachments(payload: Mapping[str, Any]) -> list[UploadFile]:
    raw = payload.get("Attachments")
    files: list[UploadFile] = []
    for entry in (raw if isinstance(raw, list) else [])[:MAX_ATTACHMENTS]:
        if not isinstance(entry, dict) or not _str(entry.get("Content")):
            continue
        try:
            content = base64.b64decode(entry["Content"], validate=False)
        except (binascii.Error, ValueError):
            logger.warning("Undecodable Postmark attachment skipped")
            continue
        files.append(UploadFile(
            _str(entry.get("Name")) or "attachment",
            _str(entry.get("ContentType")) or "application/octet-stream",
            content,
        ))
    return files


async def handle_postmark(
    db: AsyncSession,
    owner_id: UUID | None,
    payload: Any,
    max_attachment_bytes: int,
) -> bool:
    if owner_id is None or not isinstance(payload, dict):
        return False
    from_full = payload.get("FromFull") if isinstance(payload.get("FromFull"), dict) else {}
    to_full = payload.get("ToFull")
    first_to = to_full[0] if isinstance(to_full, list) and to_full else to_full
    first_to = first_to if isinstance(first_to, dict) else {}

    return await _record_email(
        db, owner_id,
        from_raw=_str(from_full.get("Email")) or _str(payload.get("From")),
        to_raw=_str(first_to.get("Email")) or _str(payload.get("To")),
        subject=_str(payload.get("Subject")),
        text=_str(payload.get("TextBody")),
        html_body=_str(payload.get("HtmlBody")),
        provider=InboxProvider.POSTMARK_INBOUND,
        provider_message_id=_str(payload.get("MessageID")) or _str(payload.get("MessageId")) or None,
        files=_postmark_attachments(payload),
        max_attachment_bytes=max_attachment_bytes,
    )


async def handle_sendgrid(
    db: AsyncSession,
    owner_id: UUID | None,
    form: Mapping[str, Any],
    files: list[UploadFile],
    max_attachment_bytes: int,
) -> bool:
    """SendGrid Inbound Parse (multipart). SendGrid sends no stable message id."""
    if owner_id is None:
        return False
    return await _record_email(
        db, owner_id,
        from_raw=_str(form.get("from")).strip(),
        to_raw=_str(form.get("to")).strip(),
        subject=_str(form.get("subject")),
        text=_str(form.get("text")),
        html_body=_str(form.get("html")),
        provider=InboxProvider.SENDGRID_INBOUND,
        provider_message_id=None,
        files=files,
        max_attachment_bytes=max_attachment_bytes,
    )
