"""Closer Booking — pure slot coverage, conflict detection, and fair closer selection.

Invariants:
    - Intervals are half-open: [start, end) — back-to-back appointments never overlap
    - A closer is eligible only if ONE availability block covers the whole slot
    - A closer is free only if no SCHEDULED/RESCHEDULED appointment overlaps the slot
    - Fair pick = fewest SCHEDULED appointments on the slot's UTC day; ties keep input order
    - All datetimes are compared in UTC (naive values are treated as UTC)

Design Decisions:
    - Linear scans over small lists: a portal has a handful of closers, SQL
      prefilters by time range before rows reach here
    - Selection is deterministic for a given input order: callers order closers
      by creation time so ties are reproducible
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence
from uuid import UUID

from portal.core.domain_types import AppointmentStatus, BLOCKING_APPOINTMENT_STATUSES
from portal.core.repository_protocols import (
    AppointmentLike, AvailabilityLike, CloserLike,
)

SLOT_STEP = timedelta(minutes=30)


@dataclass(frozen=True)
class SlotSuggestion:
    start_at: datetime
    end_at: datetime
    closer_count: int


def as_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime,
) -> bool:
    return as_utc(a_start) < as_utc(b_end) and as_utc(b_start) < as_utc(a_end)


def covers(block: AvailabilityLike, start: datetime, end: datetime) -> bool:
    return as_utc(block.start_at) <= as_utc(start) and as_utc(block.end_at) >= as_utc(end)


def _status(appt: AppointmentLike) -> str:
    return getattr(appt.status, "value", appt.status)


def _is_blocking(appt: AppointmentLike) -> bool:
    return _status(appt) in {s.value for s in BLOCKING_APPOINTMENT_STATUSES}


def eligible_closers(
    closers: Sequence[CloserLike],
    blocks: Iterable[AvailabilityLike],
    start: datetime,
    end: datetime,
) -> list[CloserLike]:
    """Active closers with at least one availability block covering [start, end)."""
    covered: set[UUID] = {b.user_id for b in blocks if covers(b, start, end)}
    return [c for c in closers if c.active and c.id in covered]


def free_closers(
    closers: Sequence[CloserLike],
    appointments: Iterable[AppointmentLike],
    start: datetime,
    end: datetime,
    exclude_appointment_id: UUID | None = None,
) -> list[CloserLike]:
    """Drop closers with a calendar-blocking appointment overlapping [start, end)."""
    busy: set[UUID] = {
        a.closer_id for a in appointments
        if a.id != exclude_appointment_id
        and _is_blocking(a)
        and overlaps(a.start_at, a.end_at, start, end)
    }
    return [c for c in closers if c.id not in busy]


def pick_fair_closer(
    closers: Sequence[CloserLike],
    appointments: Iterable[AppointmentLike],
    day: datetime,
) -> CloserLike | None:
    """Closer with the fewest SCHEDULED appointments on day's UTC date; first wins ties."""
    if not closers:
        return None
    target = as_utc(day).date()
    load = Counter(
        a.closer_id for a in appointments
        if _status(a) == AppointmentStatus.SCHEDULED.value
        and as_utc(a.start_at).date() == target
    )
    # min() returns the first minimal element — preserves input order on ties
    return min(closers, key=lambda c: load.get(c.id, 0))


def next_half_hour(moment: datetime) -> datetime:
    """Round up to the next :00 or :30 boundary (exact boundaries stay put)."""
    m = as_utc(moment).replace(second=0, microsecond=0)
    if moment.second or moment.microsecond:
        m += timedelta(minutes=1)
    remainder = m.minute % 30
    if remainder:
        m += timedelta(minutes=30 - remainder)
    return m


def compute_available_slots(
    now: datetime,
    closers: Sequence[CloserLike],
    blocks: Sequence[AvailabilityLike],
    appointments: Sequence[AppointmentLike],
    duration_minutes: int = 30,
    days: int = 7,
    limit: int = 50,
) -> list[SlotSuggestion]:
    """Walk 30-minute steps from the next half hour; keep slots with ≥1 free closer."""
    duration = timedelta(minutes=duration_minutes)
    cursor = next_half_hour(now)
    horizon = as_utc(now) + timedelta(days=days)
    slots: list[SlotSuggestion] = []

    while cursor + duration <= horizon and len(slots) < limit:
        end = cursor + duration
        candidates = eligible_closers(closers, blocks, cursor, end)
        if candidates:
            available = free_closers(candidates, appointments, cursor, end)
            if available:
                slots.append(SlotSuggestion(cursor, end, len(available)))
        cursor += SLOT_STEP
    return slots
