"""Booking Selection — pure closer eligibility, conflict filtering, fair pick, slot walk.

Tests:
    - Overlapping SCHEDULED/RESCHEDULED appointments make a closer busy;
      CANCELED/COMPLETED do not
    - Fair pick: fewest same-day SCHEDULED appointments; ties go to the first closer
    - Slot suggestions start at the next half hour and need a free closer
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from portal.core.booking import (
    as_utc, compute_available_slots, eligible_closers, free_closers,
    next_half_hour, overlaps, pick_fair_closer,
)


@dataclass
class Closer:
    id: UUID = field(default_factory=uuid4)
    active: bool = True


@dataclass
class Block:
    user_id: UUID
    start_at: datetime
    end_at: datetime


@dataclass
class Appt:
    closer_id: UUID
    start_at: datetime
    end_at: datetime
    status: str = "SCHEDULED"
    id: UUID = field(default_factory=uuid4)


T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def test_overlap_is_half_open():
    assert overlaps(T0, T0 + HOUR, T0 + timedelta(minutes=30), T0 + 2 * HOUR)
    assert not overlaps(T0, T0 + HOUR, T0 + HOUR, T0 + 2 * HOUR)


def test_naive_datetimes_are_treated_as_utc():
    assert as_utc(datetime(2026, 3, 2, 15, 0)) == T0


def test_eligible_requires_covering_block_and_active():
    a, b, c = Closer(), Closer(), Closer(active=False)
    blocks = [
        Block(a.id, T0 - HOUR, T0 + 2 * HOUR),
        Block(b.id, T0 + timedelta(minutes=15), T0 + 2 * HOUR),  # starts too late
        Block(c.id, T0 - HOUR, T0 + 2 * HOUR),
    ]
    assert eligible_closers([a, b, c], blocks, T0, T0 + HOUR) == [a]


def test_overlapping_scheduled_appointment_blocks_closer():
    a, b = Closer(), Closer()
    appts = [Appt(a.id, T0 + timedelta(minutes=30), T0 + 2 * HOUR)]
    assert free_closers([a, b], appts, T0, T0 + HOUR) == [b]


def test_rescheduled_blocks_but_canceled_does_not():
    a, b = Closer(), Closer()
    appts = [
        Appt(a.id, T0, T0 + HOUR, status="RESCHEDULED"),
        Appt(b.id, T0, T0 + HOUR, status="CANCELED"),
    ]
    assert free_closers([a, b], appts, T0, T0 + HOUR) == [b]


def test_excluded_appointment_is_ignored():
    a = Closer()
    appt = Appt(a.id, T0, T0 + HOUR)
    assert free_closers([a], [appt], T0, T0 + HOUR, exclude_appointment_id=appt.id) == [a]


def test_fair_pick_prefers_least_booked_that_day():
    a, b = Closer(), Closer()
    appts = [
        Appt(a.id, T0 - 4 * HOUR, T0 - 3 * HOUR),
        Appt(a.id, T0 - 2 * HOUR, T0 - HOUR),
        Appt(b.id, T0 - 2 * HOUR, T0 - HOUR),
    ]
    assert pick_fair_closer([a, b], appts, T0) is b


def test_fair_pick_ties_go_to_first():
    a, b = Closer(), Closer()
    assert pick_fair_closer([a, b], [], T0) is a
    assert pick_fair_closer([b, a], [], T0) is b


def test_fair_pick_ignores_other_days_and_non_scheduled():
    a, b = Closer(), Closer()
    appts = [
        Appt(a.id, T0 - timedelta(days=1), T0 - timedelta(days=1) + HOUR),
        Appt(a.id, T0 - 2 * HOUR, T0 - HOUR, status="COMPLETED"),
        Appt(b.id, T0 - 2 * HOUR, T0 - HOUR),
    ]
    assert pick_fair_closer([a, b], appts, T0) is a


def test_fair_pick_with_no_closers():
    assert pick_fair_closer([], [], T0) is None


def test_next_half_hour_rounding():
    assert next_half_hour(T0) == T0
    assert next_half_hour(T0 + timedelta(minutes=1)) == T0 + timedelta(minutes=30)
    assert next_half_hour(T0 + timedelta(minutes=30, seconds=5)) == T0 + HOUR


def test_slots_need_a_free_closer():
    a = Closer()
    blocks = [Block(a.id, T0, T0 + 2 * HOUR)]
    appts = [Appt(a.id, T0 + timedelta(minutes=30), T0 + HOUR)]
    slots = compute_available_slots(
        T0 - timedelta(minutes=10), [a], blocks, appts, duration_minutes=30, days=1,
    )
    assert [s.start_at for s in slots] == [
        T0, T0 + HOUR, T0 + timedelta(minutes=90),
    ]
    assert all(s.closer_count == 1 for s in slots)


def test_slots_respect_limit():
    a = Closer()
    blocks = [Block(a.id, T0, T0 + timedelta(days=1))]
    slots = compute_available_slots(T0, [a], blocks, [], limit=5)
    assert len(slots) == 5
