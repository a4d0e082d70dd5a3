"""Call Events — AI receptionist call log stored as a JSON list inside the service setup.

Invariants:
    - Events are keyed by call_sid; at most one event per call
    - Newest events first; list capped at MAX_EVENTS (oldest dropped)
    - created_at_iso is set once and never overwritten by later patches
    - Terminal statuses (COMPLETED, FAILED) are never moved again by Twilio callbacks
    - Pure: every function returns new objects, inputs are never mutated
    - Webhook CallSids pass through clean_call_sid: an over-long value is
      treated as missing rather than failing validation

Design Decisions:
    - JSON list over a dedicated table: call volume per owner is small and the
      list is always read whole by the settings page
    - Polling reconciliation picks IN_PROGRESS events older than a threshold:
      Twilio status callbacks are occasionally dropped
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portal.core.domain_types import CallStatus

MAX_EVENTS = 200
CALL_SID_MAX = 80
NOTES_SEPARATOR = " · "

_TWILIO_TERMINAL = {
    "completed": CallStatus.COMPLETED,
    "failed": CallStatus.FAILED,
    "busy": CallStatus.FAILED,
    "no-answer": CallStatus.FAILED,
    "canceled": CallStatus.FAILED,
}

_MOVABLE = {CallStatus.IN_PROGRESS.value, CallStatus.UNKNOWN.value, ""}


class CallEvent(BaseModel):
    """One inbound call handled by the receptionist."""
    model_config = ConfigDict(extra="ignore")

    call_sid: str = Field(min_length=1, max_length=CALL_SID_MAX)
    from_number_e164: str | None = None
    to_number_e164: str | None = None
    created_at_iso: str = ""
    status: str = CallStatus.UNKNOWN.value
    notes: str | None = Field(None, max_length=2000)
    recording_sid: str | None = None
    recording_duration_sec: int | None = None
    transcript: str | None = None


def clean_call_sid(raw: Any) -> str | None:
    """CallSid from a webhook form, or None when missing or longer than CALL_SID_MAX."""
    call_sid = str(raw or "").strip()
    if not call_sid or len(call_sid) > CALL_SID_MAX:
        return None
    return call_sid


def parse_call_events(raw: Any) -> list[CallEvent]:
    """Lenient parse of the stored list — malformed entries are skipped."""
    if not isinstance(raw, list):
        return []
    events: list[CallEvent] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            events.append(CallEvent.model_validate(item))
        except ValidationError:
            continue
    return events[:MAX_EVENTS]


def dump_call_events(events: list[CallEvent]) -> list[dict]:
    return [e.model_dump(exclude_none=True) for e in events]


def upsert_call_event(
    events: list[CallEvent], patch: dict, now: datetime | None = None,
    max_events: int = MAX_EVENTS,
) -> list[CallEvent]:
    """Merge patch into the event with the same call_sid, or prepend a new one."""
    call_sid = str(patch.get("call_sid") or "").strip()
    if not call_sid:
        return list(events)
    stamp = (now or datetime.now(timezone.utc)).isoformat()

    for idx, existing in enumerate(events):
        if existing.call_sid == call_sid:
            merged = existing.model_dump()
            merged.update({k: v for k, v in patch.items() if k != "created_at_iso"})
            merged["call_sid"] = call_sid
            merged["created_at_iso"] = existing.created_at_iso or stamp
            updated = list(events)
            updated[idx] = CallEvent.model_validate(merged)
            return updated[:max_events]

    fresh = CallEvent.model_validate({
        "status": CallStatus.UNKNOWN.value,
        **patch,
        "call_sid": call_sid,
        "created_at_iso": patch.get("created_at_iso") or stamp,
    })
    return [fresh, *events][:max_events]


def remove_call_event(events: list[CallEvent], call_sid: str) -> list[CallEvent]:
    return [e for e in events if e.call_sid != call_sid]


def find_call_event(events: list[CallEvent], call_sid: str) -> CallEvent | None:
    return next((e for e in events if e.call_sid == call_sid), None)


def terminal_status_from_twilio(status: str | None) -> CallStatus | None:
    """Map a Twilio CallStatus to our terminal status; None while the call is live."""
    return _TWILIO_TERMINAL.get(str(status or "").strip().lower())


def append_note(notes: str | None, note: str) -> str:
    existing = str(notes or "").strip()
    return f"{existing}{NOTES_SEPARATOR}{note}" if existing else note


def apply_call_status(event: CallEvent | None, twilio_status: str | None) -> dict | None:
    """Patch for a Twilio status callback, or None when nothing should change."""
    terminal = terminal_status_from_twilio(twilio_status)
    if terminal is None:
        return None
    if event is not None and event.status not in _MOVABLE:
        return None
    patch: dict = {"status": terminal.value}
    if terminal is CallStatus.FAILED:
        previous = event.notes if event else None
        patch["notes"] = append_note(previous, f"Call status: {str(twilio_status).strip().lower()}")
    return patch


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def select_stale_in_progress(
    events: list[CallEvent], now: datetime, after_seconds: int = 90, limit: int = 3,
) -> list[CallEvent]:
    """IN_PROGRESS events older than after_seconds (or undated), newest first."""
    cutoff = now - timedelta(seconds=after_seconds)
    stale: list[CallEvent] = []
    for event in events:
        if event.status != CallStatus.IN_PROGRESS.value:
            continue
        created = _parse_iso(event.created_at_iso)
        if created is None or created <= cutoff:
            stale.append(event)
        if len(stale) >= limit:
            break
    return stale
