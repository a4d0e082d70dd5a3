"""Twilio Integration Settings — per-owner Twilio account credentials.

Invariants:
    - Stored under slug "integrations", data_json["twilio"]
    - account_sid matches AC + 32 hex chars; from number is strict E.164
    - auth_token never returned to the browser (masked_view shows the last 4 chars)
    - An empty auth_token on save keeps the stored one
"""

import re
from typing import Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from twilio.request_validator import RequestValidator

from portal.core.domain_types import ServiceSlug
from portal.core.errors import InvalidRequestError
from portal.core.phone import normalize_phone_strict
from portal.infrastructure.twilio_client import TwilioCredentials
from portal.services.service_setup import get_service_data, save_service_data

_ACCOUNT_SID = re.compile(r"^AC[0-9a-fA-F]{32}$")


async def get_twilio_config(db: AsyncSession, owner_id: UUID) -> TwilioCredentials | None:
    """Owner's Twilio credentials, or None when not (fully) configured."""
    data = await get_service_data(db, owner_id, ServiceSlug.INTEGRATIONS)
    raw = data.get("twilio")
    if not isinstance(raw, dict):
        return None
    sid = str(raw.get("account_sid") or "").strip()
    token = str(raw.get("auth_token") or "").strip()
    if not _ACCOUNT_SID.match(sid) or not token:
        return None
    from_number = str(raw.get("from_number_e164") or "").strip() or None
    return TwilioCredentials(sid, token, from_number)


async def save_twilio_config(
    db: AsyncSession,
    owner_id: UUID,
    account_sid: str,
    auth_token: str | None,
    from_number: str | None,
) -> TwilioCredentials:
    sid = account_sid.strip()
    if not _ACCOUNT_SID.match(sid):
        raise InvalidRequestError("Invalid Twilio Account SID", field="account_sid")

    phone = normalize_phone_strict(from_number)
    if not phone.ok:
        raise InvalidRequestError(phone.error or "Invalid phone number", field="from_number")

    data = await get_service_data(db, owner_id, ServiceSlug.INTEGRATIONS)
    previous = data.get("twilio") if isinstance(data.get("twilio"), dict) else {}
    token = (auth_token or "").strip() or str(previous.get("auth_token") or "")
    if not token:
        raise InvalidRequestError("Twilio auth token is required", field="auth_token")

    data["twilio"] = {
        "account_sid": sid,
        "auth_token": token,
        "from_number_e164": phone.e164,
    }
    await save_service_data(db, owner_id, ServiceSlug.INTEGRATIONS, data)
    return TwilioCredentials(sid, token, phone.e164)


def masked_view(creds: TwilioCredentials | None) -> dict:
    if creds is None:
        return {"configured": False}
    return {
        "configured": True,
        "account_sid": creds.account_sid,
        "auth_token_hint": f"••••{creds.auth_token[-4:]}",
        "from_number_e164": creds.from_number_e164,
    }


async def verify_twilio_signature(
    db: AsyncSession,
    owner_id: UUID,
    url: str,
    params: Mapping[str, str],
    signature: str | None,
) -> bool:
    """X-Twilio-Signature check against the owner's auth token. False when unconfigured."""
    if not signature:
        return False
    creds = await get_twilio_config(db, owner_id)
    if creds is None:
        return False
    return RequestValidator(creds.auth_token).validate(url, dict(params), signature)
