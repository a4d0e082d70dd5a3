"""Inbox Service — thread/message upserts, attachments, and inbox settings.

Invariants:
    - One thread per (owner, channel, thread_key); every new message refreshes the
      thread's last_message_* snapshot
    - One message per (owner, provider, provider_message_id): a repeat delivery
      returns the existing message, back-filling its body if it was stored empty
    - Contact enrichment never blocks message storage (best-effort)
    - Callers commit; this module flushes

Design Decisions:
    - Select-then-insert upserts: portable across PostgreSQL and SQLite; racing
      inserts are rejected by the unique constraints and surface as DatabaseError
    - try_upsert_inbox_message for callers that log to the inbox as a side effect
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.domain_types import (
    InboxChannel, InboxDirection, InboxProvider, ServiceSlug,
)
from portal.core.errors import ConflictError, InvalidRequestError, ResourceNotFoundError
from portal.core.inbox_keys import (
    ThreadKey, extract_email_address, make_sms_thread_key, preview_from_body,
)
from portal.core.media_paths import safe_filename
from portal.core.phone import normalize_phone_strict
from portal.core.tokens import looks_like_token, new_public_token, new_webhook_token
from portal.infrastructure.twilio_client import TwilioGateway
from portal.models.inbox_attachment import PortalInboxAttachment
from portal.models.inbox_message import PortalInboxMessage
from portal.models.inbox_thread import PortalInboxThread
from portal.services.best_effort import best_effort
from portal.services.contacts import find_or_create_contact
from portal.services.service_setup import (
    get_service_data, save_service_data, settings_of,
)
from portal.services.twilio_integration import get_twilio_config

logger = logging.getLogger(__name__)

BODY_MAX = 20_000
ADDRESS_MAX = 240
PROVIDER_MAX = 40
PROVIDER_MESSAGE_ID_MAX = 120
MIME_MAX = 120


@dataclass(frozen=True)
class UpsertResult:
    thread_id: UUID
    message_id: UUID
    duplicate: bool = False


# ─── Settings ────────────────────────────────────────────────────

async def get_or_create_inbox_settings(db: AsyncSession, owner_id: UUID) -> dict:
    """Inbox settings; mints the webhook token on first access."""
    data = await get_service_data(db, owner_id, ServiceSlug.INBOX)
    settings = settings_of(data)
    if looks_like_token(settings.get("webhook_token")):
        return settings
    settings["webhook_token"] = new_webhook_token()
    await save_service_data(db, owner_id, ServiceSlug.INBOX, {**data, "settings": settings})
    return settings


async def regenerate_inbox_token(db: AsyncSession, owner_id: UUID) -> dict:
    data = await get_service_data(db, owner_id, ServiceSlug.INBOX)
    settings = {**settings_of(data), "webhook_token": new_webhook_token()}
    await save_service_data(db, owner_id, ServiceSlug.INBOX, {**data, "settings": settings})
    logger.info("Inbox webhook token regenerated", extra={"owner_id": owner_id})
    return settings


def webhook_urls(base_url: str, token: str) -> dict:
    base = f"{base_url.rstrip('/')}/api/v1/public/inbox/{token}"
    return {
        "twilio_sms": f"{base}/twilio/sms",
        "postmark": f"{base}/postmark",
        "sendgrid": f"{base}/sendgrid",
    }


# ─── Messages ────────────────────────────────────────────────────

async def _enrich_contact(
    db: AsyncSession, owner_id: UUID, channel: InboxChannel, key: ThreadKey,
) -> UUID | None:
    if channel is InboxChannel.SMS:
        return await find_or_create_contact(
            db, owner_id, name=key.peer_address[:80] or "SMS Contact", phone=key.peer_key,
        )
    email = extract_email_address(key.peer_address) or key.peer_key
    return await find_or_create_contact(
        db, owner_id, name=email or "Email Contact", email=email or None,
    )


async def _get_or_create_thread(
    db: AsyncSession,
    owner_id: UUID,
    channel: InboxChannel,
    key: ThreadKey,
) -> PortalInboxThread:
    result = await db.execute(
        select(PortalInboxThread).where(
            PortalInboxThread.owner_id == owner_id,
            PortalInboxThread.channel == channel.value,
            PortalInboxThread.thread_key == key.thread_key,
        ),
    )
    thread = result.scalar_one_or_none()
    if thread is None:
        thread = PortalInboxThread(
            owner_id=owner_id,
            channel=channel.value,
            thread_key=key.thread_key,
            peer_address=key.peer_address,
            peer_key=key.peer_key,
        )
        db.add(thread)
    return thread


async def upsert_inbox_message(
    db: AsyncSession,
    owner_id: UUID,
    *,
    channel: InboxChannel,
    direction: InboxDirection,
    key: ThreadKey,
    from_address: str,
    to_address: str | None,
    body_text: str,
    provider: str | None = None,
    provider_message_id: str | None = None,
    created_at: datetime | None = None,
) -> UpsertResult:
    """Store one message in its thread, deduplicating on the provider message id."""
    contact_id: UUID | None = None
    async with best_effort(
        "inbox.contact_enrichment", db, savepoint=True, owner_id=owner_id,
    ):
        contact_id = await _enrich_contact(db, owner_id, channel, key)

    now = created_at or datetime.now(timezone.utc)
    body = str(body_text or "")[:BODY_MAX]
    sender = str(from_address or "")[:ADDRESS_MAX]
    recipient = str(to_address or "")[:ADDRESS_MAX] or None

    thread = await _get_or_create_thread(db, owner_id, channel, key)
    thread.peer_address = key.peer_address
    thread.peer_key = key.peer_key
    thread.subject = key.subject
    thread.subject_key = key.subject_key
    if contact_id:
        thread.contact_id = contact_id
    thread.last_message_at = now
    thread.last_message_preview = preview_from_body(body)
    thread.last_message_direction = direction.value
    thread.last_message_from = sender
    thread.last_message_to = recipient
    thread.last_message_subject = key.subject
    await db.flush()

    provider_tag = str(provider)[:PROVIDER_MAX] if provider else None
    provider_id = str(provider_message_id)[:PROVIDER_MESSAGE_ID_MAX] if provider_message_id else None

    if provider_tag and provider_id:
        existing = (await db.execute(
            select(PortalInboxMessage).where(
                PortalInboxMessage.owner_id == owner_id,
                PortalInboxMessage.provider == provider_tag,
                PortalInboxMessage.provider_message_id == provider_id,
            ),
        )).scalar_one_or_none()
        if existing is not None:
            if not (existing.body_text or "").strip() and body.strip():
                existing.body_text = body
                await db.flush()
            return UpsertResult(existing.thread_id, existing.id, duplicate=True)

    message = PortalInboxMessage(
        owner_id=owner_id,
        thread_id=thread.id,
        channel=channel.value,
        direction=direction.value,
        from_address=sender,
        to_address=recipient,
        subject=key.subject,
        body_text=body,
        provider=provider_tag,
        provider_message_id=provider_id,
        created_at=now,
    )
    db.add(message)
    await db.flush()
    return UpsertResult(thread.id, message.id)


async def try_upsert_inbox_message(
    db: AsyncSession, owner_id: UUID, **kwargs,
) -> UpsertResult | None:
    """upsert_inbox_message for side-effect logging: failures are logged, never raised."""
    async with best_effort("inbox.upsert", db, savepoint=True, owner_id=owner_id):
        return await upsert_inbox_message(db, owner_id, **kwargs)
    return None


async def store_inbox_attachment(
    db: AsyncSession,
    owner_id: UUID,
    message_id: UUID | None,
    file_name: str,
    mime_type: str,
    content: bytes,
) -> PortalInboxAttachment:
    attachment = PortalInboxAttachment(
        owner_id=owner_id,
        message_id=message_id,
        file_name=safe_filename(file_name, default="attachment.bin"),
        mime_type=(mime_type or "application/octet-stream")[:MIME_MAX],
        file_size=len(content),
        content=content,
        public_token=new_public_token(),
    )
    db.add(attachment)
    await db.flush()
    return attachment


def attachment_url(attachment: PortalInboxAttachment) -> str:
    return f"/api/v1/public/inbox/attachments/{attachment.id}/{attachment.public_token}"


# ─── Reads ───────────────────────────────────────────────────────

async def list_threads(
    db: AsyncSession,
    owner_id: UUID,
    channel: InboxChannel | None = None,
    limit: int = 100,
) -> list[PortalInboxThread]:
    query = select(PortalInboxThread).where(PortalInboxThread.owner_id == owner_id)
    if channel is not None:
        query = query.where(PortalInboxThread.channel == channel.value)
    query = query.order_by(PortalInboxThread.last_message_at.desc()).limit(limit)
    return list((await db.execute(query)).scalars().all())


async def list_thread_messages(
    db: AsyncSession, owner_id: UUID, thread_id: UUID, limit: int = 500,
) -> list[PortalInboxMessage]:
    thread = (await db.execute(
        select(PortalInboxThread.id).where(
            PortalInboxThread.id == thread_id,
            PortalInboxThread.owner_id == owner_id,
        ),
    )).scalar_one_or_none()
    if thread is None:
        raise ResourceNotFoundError("Thread", str(thread_id))
    result = await db.execute(
        select(PortalInboxMessage)
        .where(PortalInboxMessage.thread_id == thread_id)
        .order_by(PortalInboxMessage.created_at.asc())
        .limit(limit),
    )
    return list(result.scalars().all())


# ─── Outbound ────────────────────────────────────────────────────

async def send_sms(
    db: AsyncSession,
    gateway: TwilioGateway,
    owner_id: UUID,
    to: str,
    body: str,
) -> UpsertResult:
    """Send an SMS through the owner's Twilio account and log it to the inbox."""
    phone = normalize_phone_strict(to)
    if not phone.ok or not phone.e164:
        raise InvalidRequestError(phone.error or "Phone number is required", field="to")
    key = make_sms_thread_key(phone.e164)

    creds = await get_twilio_config(db, owner_id)
    if creds is None or not creds.from_number_e164:
        raise ConflictError("Twilio is not configured for this account")

    sid = await gateway.send_sms(creds, phone.e164, body)
    logger.info("SMS sent", extra={"owner_id": owner_id, "provider": "TWILIO"})
    return await upsert_inbox_message(
        db, owner_id,
        channel=InboxChannel.SMS,
        direction=InboxDirection.OUT,
        key=key,
        from_address=creds.from_number_e164,
        to_address=phone.e164,
        body_text=body,
        provider=InboxProvider.TWILIO.value,
        provider_message_id=sid or None,
    )
