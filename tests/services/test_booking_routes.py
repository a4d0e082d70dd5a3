"""Booking Routes — closer assignment, role checks, and availability blocks.

Tests:
    - No closer with availability covering the slot → 409
    - Fair pick: the closer with fewer same-day appointments is assigned
    - A busy closer is skipped even when it has availability
    - CLIENT role cannot book (403); missing identity header → 401
    - Unparseable start_at → 400 with field details
    - Availability: closer adds/lists/deletes; start after end → 400
    - Reschedule: RESCHEDULED status, self-overlap allowed, busy closer → 409,
      uncovered slot needs a closer-self or manager override, role scoping
    - /my: closers see theirs, dialers what they set, managers everything
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from portal.models.appointment import Appointment
from portal.models.availability_block import AvailabilityBlock
from portal.models.lead import Lead

SLOT = datetime(2030, 3, 4, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
async def lead(test_db):
    row = Lead(business_name="Acme Plumbing", phone="+14155550111")
    test_db.add(row)
    await test_db.commit()
    await test_db.refresh(row)
    return row


@pytest.fixture
async def dialer(make_user):
    return await make_user("dialer@example.com", "DIALER")


async def _closer_with_block(test_db, make_user, email: str):
    closer = await make_user(email, "CLOSER")
    test_db.add(AvailabilityBlock(
        user_id=closer.id,
        start_at=SLOT - timedelta(hours=2),
        end_at=SLOT + timedelta(hours=4),
    ))
    await test_db.commit()
    return closer


def _book_body(lead, start=SLOT, duration=30) -> dict:
    return {"lead_id": str(lead.id), "start_at": start.isoformat(), "duration_minutes": duration}


async def test_book_without_available_closer_returns_409(auth, client, dialer, lead, make_user):
    await make_user("closer@example.com", "CLOSER")  # no availability block

    res = await client.post("/api/v1/appointments/book", json=_book_body(lead), headers=auth(dialer))

    assert res.status_code == 409
    assert res.json()["error"]["code"] == "CONFLICT"


async def test_book_assigns_least_loaded_closer(auth, client, dialer, lead, make_user, test_db):
    busy = await _closer_with_block(test_db, make_user, "busy@example.com")
    idle = await _closer_with_block(test_db, make_user, "idle@example.com")
    test_db.add(Appointment(
        lead_id=lead.id, setter_id=dialer.id, closer_id=busy.id,
        start_at=SLOT + timedelta(hours=2), end_at=SLOT + timedelta(hours=2, minutes=30),
        status="SCHEDULED",
    ))
    await test_db.commit()

    res = await client.post("/api/v1/appointments/book", json=_book_body(lead), headers=auth(dialer))

    assert res.status_code == 200
    data = res.json()
    assert data["closer"]["id"] == str(idle.id)
    assert data["appointment"]["closer_id"] == str(idle.id)
    assert data["appointment"]["setter_id"] == str(dialer.id)
    assert data["appointment"]["status"] == "SCHEDULED"


async def test_book_skips_closer_with_overlapping_appointment(
    auth, client, dialer, lead, make_user, test_db,
):
    only = await _closer_with_block(test_db, make_user, "only@example.com")
    test_db.add(Appointment(
        lead_id=lead.id, setter_id=dialer.id, closer_id=only.id,
        start_at=SLOT + timedelta(minutes=15), end_at=SLOT + timedelta(minutes=45),
        status="RESCHEDULED",
    ))
    await test_db.commit()

    res = await client.post("/api/v1/appointments/book", json=_book_body(lead), headers=auth(dialer))

    assert res.status_code == 409


async def test_book_persists_appointment(auth, client, dialer, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")

    res = await client.post(
        "/api/v1/appointments/book", json=_book_body(lead, duration=45), headers=auth(dialer),
    )

    assert res.status_code == 200
    rows = (await test_db.execute(
        select(Appointment).where(Appointment.closer_id == closer.id),
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].lead_id == lead.id


async def test_client_role_cannot_book(auth, client, owner, lead):
    res = await client.post("/api/v1/appointments/book", json=_book_body(lead), headers=auth(owner))

    assert res.status_code == 403


async def test_book_without_identity_returns_401(client, lead):
    res = await client.post("/api/v1/appointments/book", json=_book_body(lead))

    assert res.status_code == 401
    assert res.json()["error"]["code"] == "UNAUTHORIZED"


async def test_book_with_unparseable_start_returns_400(auth, client, dialer, lead):
    body = {"lead_id": str(lead.id), "start_at": "next tuesday"}

    res = await client.post("/api/v1/appointments/book", json=body, headers=auth(dialer))

    assert res.status_code == 400
    fields = [d["field"] for d in res.json()["error"]["details"]]
    assert any(f.endswith("start_at") for f in fields)


async def test_book_unknown_lead_returns_404(auth, client, dialer, lead):
    body = _book_body(lead)
    body["lead_id"] = "00000000-0000-0000-0000-000000000000"

    res = await client.post("/api/v1/appointments/book", json=body, headers=auth(dialer))

    assert res.status_code == 404


async def test_available_closers_lists_free_closers(auth, client, dialer, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")

    res = await client.get(
        "/api/v1/appointments/available-closers",
        params={"start_at": SLOT.isoformat(), "duration_minutes": 60},
        headers=auth(dialer),
    )

    assert res.status_code == 200
    assert [c["id"] for c in res.json()] == [str(closer.id)]


# ─── Availability ────────────────────────────────────────────────

async def test_closer_adds_and_lists_availability(auth, client, make_user):
    closer = await make_user("closer@example.com", "CLOSER")
    body = {
        "start_at": SLOT.isoformat(),
        "end_at": (SLOT + timedelta(hours=3)).isoformat(),
    }

    created = await client.post("/api/v1/availability", json=body, headers=auth(closer))
    listed = await client.get("/api/v1/availability", headers=auth(closer))

    assert created.status_code == 201
    assert [b["id"] for b in listed.json()] == [created.json()["id"]]


async def test_availability_end_before_start_returns_400(auth, client, make_user):
    closer = await make_user("closer@example.com", "CLOSER")
    body = {
        "start_at": SLOT.isoformat(),
        "end_at": (SLOT - timedelta(hours=1)).isoformat(),
    }

    res = await client.post("/api/v1/availability", json=body, headers=auth(closer))

    assert res.status_code == 400


async def test_dialer_cannot_publish_availability(auth, client, dialer):
    body = {
        "start_at": SLOT.isoformat(),
        "end_at": (SLOT + timedelta(hours=1)).isoformat(),
    }

    res = await client.post("/api/v1/availability", json=body, headers=auth(dialer))

    assert res.status_code == 403


async def test_delete_availability_scoped_to_owner(auth, client, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    other = await make_user("other@example.com", "CLOSER")
    block = (await test_db.execute(
        select(AvailabilityBlock).where(AvailabilityBlock.user_id == closer.id),
    )).scalar_one()

    denied = await client.delete(f"/api/v1/availability/{block.id}", headers=auth(other))
    deleted = await client.delete(f"/api/v1/availability/{block.id}", headers=auth(closer))

    assert denied.status_code == 404
    assert deleted.status_code == 200


# ─── Reschedule ──────────────────────────────────────────────────

RESCHEDULE = "/api/v1/appointments/reschedule"


async def _appointment(test_db, lead, setter, closer, start=SLOT, minutes=45, status="SCHEDULED"):
    row = Appointment(
        lead_id=lead.id, setter_id=setter.id, closer_id=closer.id,
        start_at=start, end_at=start + timedelta(minutes=minutes), status=status,
    )
    test_db.add(row)
    await test_db.commit()
    return row


async def test_dialer_reschedules_own_appointment(auth, client, dialer, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer)
    new_start = SLOT + timedelta(hours=1)

    res = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": new_start.isoformat()},
        headers=auth(dialer),
    )

    assert res.status_code == 200, res.text
    data = res.json()["appointment"]
    assert data["status"] == "RESCHEDULED"
    start = datetime.fromisoformat(data["start_at"]).replace(tzinfo=timezone.utc)
    end = datetime.fromisoformat(data["end_at"]).replace(tzinfo=timezone.utc)
    assert (start, end) == (new_start, new_start + timedelta(minutes=45))
    assert res.json()["closer"]["id"] == str(closer.id)


async def test_reschedule_overlapping_itself_is_not_a_conflict(
    auth, client, dialer, lead, make_user, test_db,
):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer)

    res = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": (SLOT + timedelta(minutes=15)).isoformat()},
        headers=auth(dialer),
    )

    assert res.status_code == 200


async def test_reschedule_onto_busy_closer_returns_409(auth, client, dialer, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer)
    await _appointment(test_db, lead, dialer, closer, start=SLOT + timedelta(hours=1))

    res = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": (SLOT + timedelta(hours=1)).isoformat()},
        headers=auth(dialer),
    )

    assert res.status_code == 409
    assert "not free" in res.json()["error"]["message"]


async def test_reschedule_outside_availability_needs_override(
    auth, client, dialer, lead, make_user, test_db,
):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    manager = await make_user("manager@example.com", "MANAGER")
    appt = await _appointment(test_db, lead, dialer, closer)
    late = (SLOT + timedelta(hours=10)).isoformat()

    plain = await client.post(
        RESCHEDULE, json={"appointment_id": str(appt.id), "start_at": late}, headers=auth(manager),
    )
    dialer_override = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": late, "confirm_add_availability": True},
        headers=auth(dialer),
    )
    manager_override = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": late, "confirm_add_availability": True},
        headers=auth(manager),
    )

    assert plain.status_code == 409
    assert "not available" in plain.json()["error"]["message"]
    assert dialer_override.status_code == 409
    assert manager_override.status_code == 200
    blocks = (await test_db.execute(
        select(AvailabilityBlock).where(AvailabilityBlock.user_id == closer.id),
    )).scalars().all()
    assert len(blocks) == 2


async def test_closer_override_for_own_calendar(auth, client, dialer, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer)

    res = await client.post(
        RESCHEDULE,
        json={
            "appointment_id": str(appt.id),
            "start_at": (SLOT + timedelta(days=1)).isoformat(),
            "confirm_add_availability": True,
        },
        headers=auth(closer),
    )

    assert res.status_code == 200


async def test_reschedule_to_another_closer(auth, client, dialer, lead, make_user, test_db):
    first = await _closer_with_block(test_db, make_user, "first@example.com")
    second = await _closer_with_block(test_db, make_user, "second@example.com")
    appt = await _appointment(test_db, lead, dialer, first)

    res = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "closer_id": str(second.id), "duration_minutes": 60},
        headers=auth(dialer),
    )

    assert res.status_code == 200
    assert res.json()["appointment"]["closer_id"] == str(second.id)


async def test_reschedule_permissions(auth, client, dialer, owner, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    other_dialer = await make_user("other-dialer@example.com", "DIALER")
    other_closer = await make_user("other-closer@example.com", "CLOSER")
    appt = await _appointment(test_db, lead, dialer, closer)
    body = {"appointment_id": str(appt.id)}

    for user in (other_dialer, other_closer, owner):
        res = await client.post(RESCHEDULE, json=body, headers=auth(user))
        assert res.status_code == 403


async def test_reschedule_canceled_appointment_returns_409(
    auth, client, dialer, lead, make_user, test_db,
):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer, status="CANCELED")

    res = await client.post(RESCHEDULE, json={"appointment_id": str(appt.id)}, headers=auth(dialer))

    assert res.status_code == 409
    assert res.json()["error"]["message"] == "Only scheduled appointments can be rescheduled"


async def test_reschedule_unknown_appointment_or_closer_returns_404(
    auth, client, dialer, lead, make_user, test_db,
):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer)

    missing = await client.post(
        RESCHEDULE,
        json={"appointment_id": "00000000-0000-0000-0000-000000000000"},
        headers=auth(dialer),
    )
    not_a_closer = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "closer_id": str(dialer.id)},
        headers=auth(dialer),
    )

    assert missing.status_code == 404
    assert not_a_closer.status_code == 404


async def test_rescheduled_appointment_still_blocks_booking(
    auth, client, dialer, lead, make_user, test_db,
):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    appt = await _appointment(test_db, lead, dialer, closer, start=SLOT - timedelta(hours=1))
    moved = await client.post(
        RESCHEDULE,
        json={"appointment_id": str(appt.id), "start_at": SLOT.isoformat()},
        headers=auth(dialer),
    )

    res = await client.post("/api/v1/appointments/book", json=_book_body(lead), headers=auth(dialer))

    assert moved.json()["appointment"]["status"] == "RESCHEDULED"
    assert res.status_code == 409


# ─── My appointments ─────────────────────────────────────────────

async def test_my_appointments_scoped_by_role(auth, client, dialer, owner, lead, make_user, test_db):
    closer = await _closer_with_block(test_db, make_user, "closer@example.com")
    other = await _closer_with_block(test_db, make_user, "other@example.com")
    manager = await make_user("manager@example.com", "MANAGER")
    mine = await _appointment(test_db, lead, dialer, closer)
    theirs = await _appointment(test_db, lead, manager, other, start=SLOT + timedelta(hours=1))

    as_closer = await client.get("/api/v1/appointments/my", headers=auth(closer))
    as_dialer = await client.get("/api/v1/appointments/my", headers=auth(dialer))
    as_manager = await client.get("/api/v1/appointments/my", headers=auth(manager))
    as_client = await client.get("/api/v1/appointments/my", headers=auth(owner))

    assert [a["id"] for a in as_closer.json()] == [str(mine.id)]
    assert as_closer.json()[0]["lead_business_name"] == "Acme Plumbing"
    assert as_closer.json()[0]["closer"]["email"] == "closer@example.com"
    assert [a["id"] for a in as_dialer.json()] == [str(mine.id)]
    assert [a["id"] for a in as_manager.json()] == [str(theirs.id), str(mine.id)]
    assert as_client.status_code == 403
