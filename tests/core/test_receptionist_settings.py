"""Receptionist Settings — lenient parse, partial updates, and the browser-safe view."""

from portal.core.domain_types import ReceptionistMode
from portal.core.receptionist_settings import (
    DEFAULT_GREETING, ReceptionistSettings, ReceptionistSettingsUpdate,
    apply_settings_update, parse_receptionist_settings, public_view,
)


def test_parse_garbage_yields_defaults():
    settings = parse_receptionist_settings("not a dict")
    assert settings.enabled is False
    assert settings.mode is ReceptionistMode.AI
    assert settings.greeting == DEFAULT_GREETING
    assert settings.webhook_token == ""


def test_parse_bad_fields_fall_back_individually():
    settings = parse_receptionist_settings({
        "enabled": "yes",
        "mode": "forward",
        "webhook_token": "short",
        "business_name": 42,
        "forward_to_phone_e164": "415 555 0100",
    })
    assert settings.enabled is False
    assert settings.mode is ReceptionistMode.FORWARD
    assert settings.webhook_token == ""
    assert settings.business_name == ""
    assert settings.forward_to_phone_e164 == "+14155550100"


def test_update_merges_only_provided_fields():
    current = ReceptionistSettings(business_name="Acme", webhook_token="t" * 24)
    updated = apply_settings_update(current, ReceptionistSettingsUpdate(enabled=True))
    assert updated.enabled is True
    assert updated.business_name == "Acme"
    assert updated.webhook_token == "t" * 24


def test_update_mints_token_when_missing():
    updated = apply_settings_update(ReceptionistSettings(), ReceptionistSettingsUpdate())
    assert len(updated.webhook_token) >= 12


def test_update_normalizes_forward_number_and_restores_greeting():
    updated = apply_settings_update(
        ReceptionistSettings(),
        ReceptionistSettingsUpdate(forward_to_phone_e164="(415) 555-0100", greeting="   "),
    )
    assert updated.forward_to_phone_e164 == "+14155550100"
    assert updated.greeting == DEFAULT_GREETING


def test_public_view_hides_api_key():
    view = public_view(ReceptionistSettings(voice_agent_api_key="secret-key"))
    assert "voice_agent_api_key" not in view
    assert view["voice_agent_configured"] is True
    assert view["mode"] == "AI"
