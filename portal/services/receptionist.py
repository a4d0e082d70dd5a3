"""AI Receptionist Service — settings, call event log, voice webhooks, and status reconciliation.

Invariants:
    - Unknown webhook token → Reject (voice) / Hangup (status); nothing is written
    - Every answered webhook records an event keyed by CallSid before returning TwiML
    - Status callbacks only move IN_PROGRESS/UNKNOWN events (terminal is final)
    - Reconciliation polls at most call_reconcile_batch calls per settings read;
      its failures are logged and discarded
    - Callers commit; this module flushes

Design Decisions:
    - Events stored in data_json["events"] beside the settings: one row read
      serves the whole settings page (ADR: JSON blob per service)
    - Call routing is a flat sequence of checks (disabled → agent → forward →
      hangup), mirroring what the owner configures in the UI
    - Recording lookup after a terminal status is best-effort: Twilio may not
      have finalized the recording yet
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.call_events import (
    CallEvent, apply_call_status, clean_call_sid, dump_call_events,
    find_call_event, parse_call_events, remove_call_event,
    select_stale_in_progress, upsert_call_event,
)
from portal.core.domain_types import CallStatus, ReceptionistMode, ServiceSlug
from portal.core.phone import normalize_phone_for_storage
from portal.core.receptionist_settings import (
    ReceptionistSettings, ReceptionistSettingsUpdate, apply_settings_update,
    parse_receptionist_settings,
)
from portal.core.tokens import looks_like_token, new_webhook_token
from portal.core import twiml
from portal.infrastructure.twilio_client import TwilioGateway
from portal.models.user import User
from portal.services.best_effort import best_effort, gather_best_effort
from portal.services.service_setup import (
    find_owner_by_webhook_token, get_service_data, save_service_data,
)
from portal.services.twilio_integration import get_twilio_config

logger = logging.getLogger(__name__)

SLUG = ServiceSlug.AI_RECEPTIONIST


@dataclass(frozen=True)
class ReceptionistState:
    settings: ReceptionistSettings
    events: list[CallEvent]


@dataclass(frozen=True)
class VoiceCallbacks:
    """Absolute callback URLs handed to Twilio for one owner's webhook token."""
    call_status: str
    recording: str
    agent_stream: str | None = None

    @classmethod
    def for_token(cls, base_url: str, token: str, agent_stream: str | None = None):
        base = f"{base_url.rstrip('/')}/api/v1/public/twilio/ai-receptionist/{token}"
        return cls(
            call_status=f"{base}/call-status",
            recording=f"{base}/recording",
            agent_stream=agent_stream or None,
        )


# ─── Storage ─────────────────────────────────────────────────────

async def _load(db: AsyncSession, owner_id: UUID) -> tuple[dict, ReceptionistState]:
    data = await get_service_data(db, owner_id, SLUG)
    state = ReceptionistState(
        settings=parse_receptionist_settings(data.get("settings")),
        events=parse_call_events(data.get("events")),
    )
    return data, state


async def _save(
    db: AsyncSession, owner_id: UUID, data: dict, state: ReceptionistState,
) -> ReceptionistState:
    await save_service_data(db, owner_id, SLUG, {
        **data,
        "settings": state.settings.model_dump(mode="json"),
        "events": dump_call_events(state.events),
    })
    return state


async def get_receptionist_state(db: AsyncSession, owner_id: UUID) -> ReceptionistState:
    """Settings + events; mints and persists the webhook token on first read."""
    data, state = await _load(db, owner_id)
    if looks_like_token(state.settings.webhook_token):
        return state
    settings = state.settings.model_copy(update={"webhook_token": new_webhook_token()})
    return await _save(db, owner_id, data, ReceptionistState(settings, state.events))


async def update_receptionist_settings(
    db: AsyncSession, owner_id: UUID, update: ReceptionistSettingsUpdate,
) -> ReceptionistState:
    data, state = await _load(db, owner_id)
    settings = apply_settings_update(state.settings, update)
    return await _save(db, owner_id, data, ReceptionistState(settings, state.events))


async def regenerate_receptionist_token(db: AsyncSession, owner_id: UUID) -> ReceptionistState:
    data, state = await _load(db, owner_id)
    settings = state.settings.model_copy(update={"webhook_token": new_webhook_token()})
    logger.info("Receptionist webhook token regenerated", extra={"owner_id": owner_id})
    return await _save(db, owner_id, data, ReceptionistState(settings, state.events))


async def record_call_event(
    db: AsyncSession, owner_id: UUID, patch: dict,
) -> ReceptionistState:
    data, state = await _load(db, owner_id)
    events = upsert_call_event(state.events, patch)
    return await _save(db, owner_id, data, ReceptionistState(state.settings, events))


async def delete_call_event(db: AsyncSession, owner_id: UUID, call_sid: str) -> bool:
    data, state = await _load(db, owner_id)
    events = remove_call_event(state.events, call_sid)
    if len(events) == len(state.events):
        return False
    await _save(db, owner_id, data, ReceptionistState(state.settings, events))
    return True


async def find_owner(db: AsyncSession, token: str) -> UUID | None:
    return await find_owner_by_webhook_token(db, SLUG, token)


# ─── Voice webhook ───────────────────────────────────────────────

async def _owner_profile_phone(db: AsyncSession, owner_id: UUID) -> str | None:
    phone = (await db.execute(
        select(User.phone).where(User.id == owner_id),
    )).scalar_one_or_none()
    return normalize_phone_for_storage(phone)


async def handle_voice_webhook(
    db: AsyncSession,
    owner_id: UUID | None,
    form: Mapping[str, str],
    callbacks: VoiceCallbacks,
) -> str:
    """Route one inbound call; returns the TwiML document."""
    call_sid = clean_call_sid(form.get("CallSid"))
    from_e164 = normalize_phone_for_storage(form.get("From"))
    to_e164 = normalize_phone_for_storage(form.get("To"))
    if owner_id is None or not call_sid or not from_e164:
        return twiml.reject_response()

    _, state = await _load(db, owner_id)
    settings = state.settings
    base = {"call_sid": call_sid, "from_number_e164": from_e164, "to_number_e164": to_e164}
    await record_call_event(db, owner_id, {**base, "status": CallStatus.IN_PROGRESS.value})

    if not settings.enabled:
        await record_call_event(db, owner_id, {
            **base, "status": CallStatus.COMPLETED.value, "notes": "Disabled",
        })
        return twiml.reject_response()

    if (
        settings.mode is ReceptionistMode.AI
        and callbacks.agent_stream
        and settings.voice_agent_id
    ):
        logger.info("Handing call to voice agent", extra={"owner_id": owner_id, "call_sid": call_sid})
        return twiml.agent_stream_response(
            callbacks.agent_stream,
            parameters={
                "owner_id": str(owner_id),
                "agent_id": settings.voice_agent_id,
                "call_sid": call_sid,
                "caller_number": from_e164,
                "business_name": settings.business_name,
            },
            greeting=settings.greeting,
            status_callback=callbacks.call_status,
        )

    forward_to = settings.forward_to_phone_e164 or await _owner_profile_phone(db, owner_id)
    if forward_to:
        logger.info("Forwarding call", extra={"owner_id": owner_id, "call_sid": call_sid})
        return twiml.forward_call_response(forward_to, recording_callback=callbacks.recording)

    await record_call_event(db, owner_id, {
        **base,
        "status": CallStatus.COMPLETED.value,
        "notes": "No forwarding number configured",
    })
    return twiml.hangup_response()


# ─── Status & recording callbacks ────────────────────────────────

async def _backfill_recording(
    db: AsyncSession, gateway: TwilioGateway, owner_id: UUID, call_sid: str,
) -> None:
    creds = await get_twilio_config(db, owner_id)
    if creds is None:
        return
    recording = await gateway.fetch_latest_recording(creds, call_sid)
    if not recording:
        return
    await record_call_event(db, owner_id, {
        "call_sid": call_sid,
        "recording_sid": recording.get("sid"),
        "recording_duration_sec": _int_or_none(recording.get("duration")),
    })


async def handle_call_status_webhook(
    db: AsyncSession,
    gateway: TwilioGateway,
    owner_id: UUID | None,
    form: Mapping[str, str],
) -> str:
    call_sid = clean_call_sid(form.get("CallSid"))
    if owner_id is None or not call_sid:
        return twiml.hangup_response()

    _, state = await _load(db, owner_id)
    event = find_call_event(state.events, call_sid)
    patch = apply_call_status(event, form.get("CallStatus"))
    if patch is None:
        return twiml.hangup_response()

    await record_call_event(db, owner_id, {"call_sid": call_sid, **patch})
    await db.commit()

    if event is None or not event.recording_sid:
        async with best_effort("receptionist.recording_backfill", db, call_sid=call_sid):
            await _backfill_recording(db, gateway, owner_id, call_sid)
    return twiml.hangup_response()


async def handle_recording_webhook(
    db: AsyncSession, owner_id: UUID | None, form: Mapping[str, str],
) -> bool:
    call_sid = clean_call_sid(form.get("CallSid"))
    recording_sid = str(form.get("RecordingSid") or "").strip()
    if owner_id is None or not call_sid or not recording_sid:
        return False
    await record_call_event(db, owner_id, {
        "call_sid": call_sid,
        "recording_sid": recording_sid,
        "recording_duration_sec": _int_or_none(form.get("RecordingDuration")),
    })
    return True


# ─── Reconciliation ──────────────────────────────────────────────

async def reconcile_stale_calls(
    db: AsyncSession,
    gateway: TwilioGateway,
    owner_id: UUID,
    now: datetime | None = None,
    after_seconds: int = 90,
    batch: int = 3,
) -> int:
    """Poll Twilio for IN_PROGRESS calls whose status callback never arrived."""
    _, state = await _load(db, owner_id)
    stale = select_stale_in_progress(
        state.events, now or datetime.now(timezone.utc), after_seconds, batch,
    )
    if not stale:
        return 0
    creds = await get_twilio_config(db, owner_id)
    if creds is None:
        return 0

    calls = await gather_best_effort(
        "receptionist.reconcile",
        *(gateway.fetch_call(creds, e.call_sid) for e in stale),
    )
    updated = 0
    for event, call in zip(stale, calls):
        if not call:
            continue
        patch = apply_call_status(event, call.get("status"))
        if patch is None:
            continue
        await record_call_event(db, owner_id, {"call_sid": event.call_sid, **patch})
        updated += 1
    if updated:
        logger.info(
            f"Reconciled {updated} stale call(s)", extra={"owner_id": owner_id},
        )
    return updated


def _int_or_none(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
