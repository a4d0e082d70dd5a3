"""Receptionist Settings — lenient parsing and update rules for the AI receptionist config.

Invariants:
    - Parsing never raises: any malformed field falls back to its default
    - forward_to_phone_e164 is always E.164 or None
    - voice_agent_api_key never leaves the server (public_view replaces it with a flag)
    - Text fields are capped: business_name 120, greeting 360, system_prompt 6000

Design Decisions:
    - Settings live in PortalServiceSetup.data_json["settings"]: one row per owner
      per service, no schema migration when a field is added
    - Lenient over strict on read: a bad stored value must not take the voice
      webhook down mid-call
"""

from typing import Any

from pydantic import BaseModel, Field

from portal.core.domain_types import ReceptionistMode
from portal.core.phone import normalize_phone_for_storage
from portal.core.tokens import looks_like_token, new_webhook_token

DEFAULT_GREETING = "Thanks for calling. How can I help?"


class ReceptionistSettings(BaseModel):
    enabled: bool = False
    mode: ReceptionistMode = ReceptionistMode.AI
    webhook_token: str = ""
    business_name: str = ""
    greeting: str = DEFAULT_GREETING
    system_prompt: str = ""
    ai_can_transfer_to_human: bool = False
    forward_to_phone_e164: str | None = None
    voice_agent_id: str = ""
    voice_agent_api_key: str = ""


class ReceptionistSettingsUpdate(BaseModel):
    """Partial update — None means 'leave unchanged'."""
    enabled: bool | None = None
    mode: ReceptionistMode | None = None
    business_name: str | None = Field(None, max_length=120)
    greeting: str | None = Field(None, max_length=360)
    system_prompt: str | None = Field(None, max_length=6000)
    ai_can_transfer_to_human: bool | None = None
    forward_to_phone_e164: str | None = None
    voice_agent_id: str | None = Field(None, max_length=120)
    voice_agent_api_key: str | None = Field(None, max_length=400)


def _text(value: Any, limit: int, default: str = "") -> str:
    return value.strip()[:limit] if isinstance(value, str) else default


def parse_receptionist_settings(raw: Any) -> ReceptionistSettings:
    """Build settings from a stored dict, substituting defaults for bad fields."""
    data = raw if isinstance(raw, dict) else {}
    mode_raw = str(data.get("mode") or "").upper()
    mode = ReceptionistMode(mode_raw) if mode_raw in ReceptionistMode.__members__ else ReceptionistMode.AI
    token = data.get("webhook_token")
    greeting = _text(data.get("greeting"), 360)

    return ReceptionistSettings(
        enabled=data.get("enabled") is True,
        mode=mode,
        webhook_token=token.strip() if looks_like_token(token) else "",
        business_name=_text(data.get("business_name"), 120),
        greeting=greeting or DEFAULT_GREETING,
        system_prompt=_text(data.get("system_prompt"), 6000),
        ai_can_transfer_to_human=data.get("ai_can_transfer_to_human") is True,
        forward_to_phone_e164=normalize_phone_for_storage(data.get("forward_to_phone_e164")),
        voice_agent_id=_text(data.get("voice_agent_id"), 120),
        voice_agent_api_key=_text(data.get("voice_agent_api_key"), 400),
    )


def apply_settings_update(
    current: ReceptionistSettings, update: ReceptionistSettingsUpdate,
) -> ReceptionistSettings:
    """Merge a partial update. An empty-string API key clears it; a missing one keeps it."""
    data = current.model_dump()
    for key, value in update.model_dump(exclude_none=True).items():
        data[key] = value.strip() if isinstance(value, str) else value
    if update.forward_to_phone_e164 is not None:
        data["forward_to_phone_e164"] = normalize_phone_for_storage(update.forward_to_phone_e164)
    if not looks_like_token(data.get("webhook_token")):
        data["webhook_token"] = new_webhook_token()
    if not data.get("greeting"):
        data["greeting"] = DEFAULT_GREETING
    return ReceptionistSettings.model_validate(data)


def public_view(settings: ReceptionistSettings) -> dict:
    """Settings safe to return to the browser."""
    data = settings.model_dump(mode="json", exclude={"voice_agent_api_key"})
    data["voice_agent_configured"] = bool(settings.voice_agent_api_key.strip())
    return data
