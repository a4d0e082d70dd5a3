"""AI Receptionist Routes — portal settings/events and the public Twilio voice webhooks.

Invariants:
    - Portal routes are scoped to the caller; public routes trust only the path token
    - Voice and status webhooks always answer TwiML (application/xml)
    - Settings GET reconciles stale IN_PROGRESS calls before answering;
      reconciliation failures never fail the request
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import form_params, get_current_user, require_twilio_signature
from portal.config import get_settings
from portal.core import twiml
from portal.core.errors import ResourceNotFoundError
from portal.core.receptionist_settings import ReceptionistSettingsUpdate, public_view
from portal.infrastructure.database import get_db
from portal.infrastructure.twilio_client import TwilioGateway, get_twilio_gateway
from portal.models.user import User
from portal.services import receptionist
from portal.services.best_effort import best_effort
from portal.services.receptionist import ReceptionistState, VoiceCallbacks

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/portal/ai-receptionist", tags=["ai-receptionist"])
public_router = APIRouter(
    prefix="/api/v1/public/twilio/ai-receptionist", tags=["public-twilio"],
)


def _callbacks(token: str) -> VoiceCallbacks:
    settings = get_settings()
    return VoiceCallbacks.for_token(
        settings.public_base_url, token, settings.voice_agent_stream_url,
    )


def _state_payload(state: ReceptionistState) -> dict:
    token = state.settings.webhook_token
    callbacks = _callbacks(token)
    base = callbacks.call_status.rsplit("/", 1)[0]
    return {
        "settings": public_view(state.settings),
        "events": [e.model_dump(mode="json") for e in state.events],
        "webhook_urls": {
            "voice": f"{base}/voice",
            "call_status": callbacks.call_status,
            "recording": callbacks.recording,
        },
    }


def _twiml(body: str) -> Response:
    return Response(content=body, media_type=twiml.TWIML_MEDIA_TYPE)


# ─── Portal ──────────────────────────────────────────────────────

@router.get("/settings")
async def get_settings_and_events(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: TwilioGateway = Depends(get_twilio_gateway),
):
    owner_id = user.id
    await receptionist.get_receptionist_state(db, owner_id)
    await db.commit()

    settings = get_settings()
    async with best_effort("receptionist.reconcile", db, owner_id=owner_id):
        await receptionist.reconcile_stale_calls(
            db, gateway, owner_id,
            after_seconds=settings.call_reconcile_after_seconds,
            batch=settings.call_reconcile_batch,
        )
        await db.commit()

    return _state_payload(await receptionist.get_receptionist_state(db, owner_id))


@router.put("/settings")
async def update_settings(
    body: ReceptionistSettingsUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    state = await receptionist.update_receptionist_settings(db, user.id, body)
    await db.commit()
    return _state_payload(state)


@router.post("/settings/regenerate-token")
async def regenerate_token(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    state = await receptionist.regenerate_receptionist_token(db, user.id)
    await db.commit()
    return _state_payload(state)


@router.delete("/events/{call_sid}")
async def delete_event(
    call_sid: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await receptionist.delete_call_event(db, user.id, call_sid):
        raise ResourceNotFoundError("Call event", call_sid)
    await db.commit()
    return {"ok": True}


# ─── Public Twilio webhooks ──────────────────────────────────────

@public_router.post("/{token}/voice")
async def voice_webhook(
    token: str, request: Request, db: AsyncSession = Depends(get_db),
):
    owner_id = await receptionist.find_owner(db, token)
    form = form_params(await request.form())
    await require_twilio_signature(request, db, owner_id, form)
    body = await receptionist.handle_voice_webhook(db, owner_id, form, _callbacks(token))
    await db.commit()
    return _twiml(body)


@public_router.post("/{token}/call-status")
async def call_status_webhook(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: TwilioGateway = Depends(get_twilio_gateway),
):
    owner_id = await receptionist.find_owner(db, token)
    form = form_params(await request.form())
    await require_twilio_signature(request, db, owner_id, form)
    body = await receptionist.handle_call_status_webhook(db, gateway, owner_id, form)
    await db.commit()
    return _twiml(body)


@public_router.post("/{token}/recording")
async def recording_webhook(
    token: str, request: Request, db: AsyncSession = Depends(get_db),
):
    owner_id = await receptionist.find_owner(db, token)
    form = form_params(await request.form())
    await require_twilio_signature(request, db, owner_id, form)
    recorded = await receptionist.handle_recording_webhook(db, owner_id, form)
    await db.commit()
    return {"ok": recorded}
