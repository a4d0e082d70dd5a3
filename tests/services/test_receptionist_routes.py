"""AI Receptionist Routes — settings, voice routing, status callbacks, reconciliation.

Tests:
    - Settings GET mints a token; API key never returned, only a flag
    - Voice: unknown token / disabled → Reject; forward → Dial with recording
      callback; no number anywhere → Hangup; AI mode → Connect/Stream;
      missing or over-long CallSid → Reject
    - Call status: busy → FAILED with note; terminal status is final;
      completed back-fills the recording through the gateway
    - Recording webhook stores the recording on the event
    - Settings GET reconciles stale IN_PROGRESS calls via the gateway
    - Deleting an event: 200 then 404
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal.config import get_settings
from portal.services import receptionist

CALLER = "+14155550177"
BASE = "/api/v1/portal/ai-receptionist"


async def _state(client, user, auth):
    res = await client.get(f"{BASE}/settings", headers=auth(user))
    assert res.status_code == 200
    return res.json()


async def _configure(client, user, auth, **settings):
    res = await client.put(f"{BASE}/settings", json=settings, headers=auth(user))
    assert res.status_code == 200, res.text
    return res.json()


def _public(token: str, hook: str) -> str:
    return f"/api/v1/public/twilio/ai-receptionist/{token}/{hook}"


@pytest.fixture
async def token(client, owner, auth):
    return (await _state(client, owner, auth))["settings"]["webhook_token"]


def _event(state: dict, call_sid: str) -> dict:
    return next(e for e in state["events"] if e["call_sid"] == call_sid)


# ─── Settings ────────────────────────────────────────────────────

async def test_settings_hide_api_key(client, owner, auth, token):
    state = await _configure(
        client, owner, auth, voice_agent_api_key="secret-key", business_name="Acme",
    )

    assert "voice_agent_api_key" not in state["settings"]
    assert state["settings"]["voice_agent_configured"] is True
    assert state["settings"]["webhook_token"] == token
    assert state["webhook_urls"]["voice"].endswith(_public(token, "voice"))


async def test_settings_normalize_forward_number(client, owner, auth, token):
    state = await _configure(client, owner, auth, forward_to_phone_e164="(415) 555-0100")

    assert state["settings"]["forward_to_phone_e164"] == "+14155550100"


async def test_regenerate_token_invalidates_old_webhooks(client, owner, auth, token):
    res = await client.post(f"{BASE}/settings/regenerate-token", headers=auth(owner))
    new_token = res.json()["settings"]["webhook_token"]

    stale = await client.post(_public(token, "voice"), data={"CallSid": "CA1", "From": CALLER})

    assert new_token != token
    assert "<Reject" in stale.text


# ─── Voice ───────────────────────────────────────────────────────

async def test_voice_unknown_token_rejects(client):
    res = await client.post(
        _public("unknown-token-unknown-token", "voice"), data={"CallSid": "CA1", "From": CALLER},
    )

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/xml")
    assert "<Reject" in res.text


async def test_voice_disabled_rejects_and_logs(client, owner, auth, token):
    res = await client.post(_public(token, "voice"), data={"CallSid": "CA2", "From": CALLER})

    assert "<Reject" in res.text
    event = _event(await _state(client, owner, auth), "CA2")
    assert event["status"] == "COMPLETED"
    assert event["notes"] == "Disabled"
    assert event["from_number_e164"] == CALLER


async def test_voice_forward_dials_with_recording(client, owner, auth, token):
    await _configure(client, owner, auth, enabled=True, mode="FORWARD", forward_to_phone_e164="+14155550100")

    res = await client.post(
        _public(token, "voice"), data={"CallSid": "CA3", "From": CALLER, "To": "+14155550199"},
    )

    assert "<Dial" in res.text
    assert "+14155550100" in res.text
    assert _public(token, "recording") in res.text
    event = _event(await _state(client, owner, auth), "CA3")
    assert event["status"] == "IN_PROGRESS"


async def test_voice_forward_falls_back_to_profile_phone(client, owner, auth, token):
    await _configure(client, owner, auth, enabled=True, mode="FORWARD")

    res = await client.post(_public(token, "voice"), data={"CallSid": "CA4", "From": CALLER})

    assert "<Dial" in res.text
    assert owner.phone in res.text


async def test_voice_without_any_number_hangs_up(client, make_user, auth):
    user = await make_user("nophone@example.com")
    token = (await _state(client, user, auth))["settings"]["webhook_token"]
    await _configure(client, user, auth, enabled=True, mode="FORWARD")

    res = await client.post(_public(token, "voice"), data={"CallSid": "CA5", "From": CALLER})

    assert "<Hangup" in res.text
    event = _event(await _state(client, user, auth), "CA5")
    assert event["status"] == "COMPLETED"
    assert event["notes"] == "No forwarding number configured"


async def test_voice_ai_mode_connects_stream(client, owner, auth, token, monkeypatch):
    monkeypatch.setattr(get_settings(), "voice_agent_stream_url", "wss://agent.test/stream")
    await _configure(
        client, owner, auth, enabled=True, mode="AI", voice_agent_id="agent-42", greeting="Hi there",
    )

    res = await client.post(_public(token, "voice"), data={"CallSid": "CA6", "From": CALLER})

    assert "<Connect>" in res.text
    assert 'url="wss://agent.test/stream"' in res.text
    assert 'value="agent-42"' in res.text
    assert "Hi there" in res.text


async def test_voice_ai_mode_without_agent_forwards(client, owner, auth, token):
    await _configure(client, owner, auth, enabled=True, mode="AI")

    res = await client.post(_public(token, "voice"), data={"CallSid": "CA7", "From": CALLER})

    assert "<Dial" in res.text


async def test_voice_missing_call_sid_rejects(client, token):
    res = await client.post(_public(token, "voice"), data={"From": CALLER})
    assert "<Reject" in res.text


async def test_voice_overlong_call_sid_rejects_without_logging(client, owner, auth, token):
    await _configure(
        client, owner, auth, enabled=True, mode="FORWARD", forward_to_phone_e164="+14155550100",
    )

    res = await client.post(
        _public(token, "voice"), data={"CallSid": "CA" + "9" * 100, "From": CALLER},
    )

    assert res.status_code == 200
    assert "<Reject" in res.text
    assert (await _state(client, owner, auth))["events"] == []


# ─── Status & recording ──────────────────────────────────────────

async def _answered_call(client, owner, auth, token, call_sid):
    await _configure(client, owner, auth, enabled=True, mode="FORWARD")
    await client.post(_public(token, "voice"), data={"CallSid": call_sid, "From": CALLER})


async def test_busy_status_marks_failed_and_stays_final(client, owner, auth, token):
    await _answered_call(client, owner, auth, token, "CA10")

    res = await client.post(_public(token, "call-status"), data={"CallSid": "CA10", "CallStatus": "busy"})
    await client.post(_public(token, "call-status"), data={"CallSid": "CA10", "CallStatus": "completed"})

    assert "<Hangup" in res.text
    event = _event(await _state(client, owner, auth), "CA10")
    assert event["status"] == "FAILED"
    assert event["notes"] == "Call status: busy"


async def test_live_status_changes_nothing(client, owner, auth, token):
    await _answered_call(client, owner, auth, token, "CA11")

    await client.post(_public(token, "call-status"), data={"CallSid": "CA11", "CallStatus": "ringing"})

    assert _event(await _state(client, owner, auth), "CA11")["status"] == "IN_PROGRESS"


async def test_completed_status_backfills_recording(
    client, owner, auth, token, twilio_configured, fake_twilio,
):
    await _answered_call(client, owner, auth, token, "CA12")
    fake_twilio.recordings["CA12"] = {"sid": "RE12", "duration": "42"}

    await client.post(_public(token, "call-status"), data={"CallSid": "CA12", "CallStatus": "completed"})

    event = _event(await _state(client, owner, auth), "CA12")
    assert event["status"] == "COMPLETED"
    assert event["recording_sid"] == "RE12"
    assert event["recording_duration_sec"] == 42


async def test_recording_webhook_stores_recording(client, owner, auth, token):
    await _answered_call(client, owner, auth, token, "CA13")

    res = await client.post(
        _public(token, "recording"),
        data={"CallSid": "CA13", "RecordingSid": "RE13", "RecordingDuration": "17"},
    )

    assert res.json() == {"ok": True}
    event = _event(await _state(client, owner, auth), "CA13")
    assert event["recording_sid"] == "RE13"
    assert event["recording_duration_sec"] == 17


async def test_recording_webhook_unknown_token(client):
    res = await client.post(
        _public("unknown-token-unknown-token", "recording"),
        data={"CallSid": "CA1", "RecordingSid": "RE1"},
    )
    assert res.json() == {"ok": False}


# ─── Reconciliation & deletion ───────────────────────────────────

async def test_settings_read_reconciles_stale_calls(
    client, owner, auth, token, twilio_configured, fake_twilio, test_db,
):
    old = (datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat()
    await receptionist.record_call_event(test_db, owner.id, {
        "call_sid": "CA20", "status": "IN_PROGRESS", "created_at_iso": old,
    })
    await receptionist.record_call_event(test_db, owner.id, {
        "call_sid": "CA21", "status": "IN_PROGRESS", "created_at_iso": old,
    })
    await test_db.commit()
    fake_twilio.calls["CA20"] = {"sid": "CA20", "status": "no-answer"}
    # CA21 unknown to Twilio: lookup fails, event left alone

    state = await _state(client, owner, auth)

    assert _event(state, "CA20")["status"] == "FAILED"
    assert _event(state, "CA21")["status"] == "IN_PROGRESS"


async def test_delete_event(client, owner, auth, token):
    await client.post(_public(token, "voice"), data={"CallSid": "CA30", "From": CALLER})

    deleted = await client.delete(f"{BASE}/events/CA30", headers=auth(owner))
    again = await client.delete(f"{BASE}/events/CA30", headers=auth(owner))

    assert deleted.status_code == 200
    assert again.status_code == 404
    assert all(e["call_sid"] != "CA30" for e in (await _state(client, owner, auth))["events"])
