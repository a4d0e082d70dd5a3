"""Call Events — JSON call log upserts and Twilio status mapping.

Tests:
    - Upsert merges by call_sid and keeps the original created_at_iso
    - New events are prepended; the list is capped
    - Only IN_PROGRESS/UNKNOWN events move; FAILED appends a note
    - Stale IN_PROGRESS selection honors the age threshold and batch limit
    - Webhook CallSids: blank or over-long → None
"""

from datetime import datetime, timedelta, timezone

from portal.core.call_events import (
    CallEvent, apply_call_status, clean_call_sid, parse_call_events, remove_call_event,
    select_stale_in_progress, terminal_status_from_twilio, upsert_call_event,
)
from portal.core.domain_types import CallStatus

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def test_new_event_is_prepended_with_timestamp():
    events = upsert_call_event([CallEvent(call_sid="CA1")], {"call_sid": "CA2"}, now=NOW)
    assert [e.call_sid for e in events] == ["CA2", "CA1"]
    assert events[0].created_at_iso == NOW.isoformat()
    assert events[0].status == CallStatus.UNKNOWN.value


def test_upsert_merges_and_keeps_created_at():
    first = upsert_call_event([], {"call_sid": "CA1", "status": "IN_PROGRESS"}, now=NOW)
    later = upsert_call_event(
        first,
        {"call_sid": "CA1", "status": "COMPLETED", "created_at_iso": "ignored"},
        now=NOW + timedelta(minutes=5),
    )
    assert len(later) == 1
    assert later[0].status == "COMPLETED"
    assert later[0].created_at_iso == NOW.isoformat()


def test_upsert_without_call_sid_is_a_no_op():
    events = [CallEvent(call_sid="CA1")]
    assert upsert_call_event(events, {"status": "COMPLETED"}) == events


def test_list_is_capped():
    events: list[CallEvent] = []
    for i in range(5):
        events = upsert_call_event(events, {"call_sid": f"CA{i}"}, max_events=3)
    assert [e.call_sid for e in events] == ["CA4", "CA3", "CA2"]


def test_parse_skips_malformed_entries():
    events = parse_call_events([{"call_sid": "CA1"}, {"no_sid": True}, "junk", {"call_sid": ""}])
    assert [e.call_sid for e in events] == ["CA1"]
    assert parse_call_events(None) == []


def test_remove_call_event():
    events = [CallEvent(call_sid="CA1"), CallEvent(call_sid="CA2")]
    assert [e.call_sid for e in remove_call_event(events, "CA1")] == ["CA2"]


def test_terminal_mapping():
    assert terminal_status_from_twilio("completed") is CallStatus.COMPLETED
    assert terminal_status_from_twilio("no-answer") is CallStatus.FAILED
    assert terminal_status_from_twilio("ringing") is None


def test_in_progress_moves_to_completed():
    event = CallEvent(call_sid="CA1", status="IN_PROGRESS")
    assert apply_call_status(event, "completed") == {"status": "COMPLETED"}


def test_failed_appends_note():
    event = CallEvent(call_sid="CA1", status="IN_PROGRESS", notes="Forwarded")
    patch = apply_call_status(event, "busy")
    assert patch == {"status": "FAILED", "notes": "Forwarded · Call status: busy"}


def test_terminal_events_never_move():
    event = CallEvent(call_sid="CA1", status="COMPLETED")
    assert apply_call_status(event, "failed") is None


def test_non_terminal_twilio_status_is_ignored():
    assert apply_call_status(CallEvent(call_sid="CA1", status="IN_PROGRESS"), "in-progress") is None


def test_stale_selection_uses_threshold_and_limit():
    old = (NOW - timedelta(seconds=120)).isoformat()
    fresh = (NOW - timedelta(seconds=30)).isoformat()
    events = [
        CallEvent(call_sid="CA1", status="IN_PROGRESS", created_at_iso=fresh),
        CallEvent(call_sid="CA2", status="IN_PROGRESS", created_at_iso=old),
        CallEvent(call_sid="CA3", status="COMPLETED", created_at_iso=old),
        CallEvent(call_sid="CA4", status="IN_PROGRESS", created_at_iso=""),
        CallEvent(call_sid="CA5", status="IN_PROGRESS", created_at_iso=old),
    ]
    stale = select_stale_in_progress(events, NOW, after_seconds=90, limit=2)
    assert [e.call_sid for e in stale] == ["CA2", "CA4"]


def test_clean_call_sid_rejects_blank_and_overlong():
    assert clean_call_sid("  CA123  ") == "CA123"
    assert clean_call_sid(None) is None
    assert clean_call_sid("   ") is None
    assert clean_call_sid("CA" + "x" * 79) is None
