"""Appointment & Availability Routes — closer assignment and availability blocks.

Invariants:
    - Role checks live in services/booking.py (403 raised there, not here)
    - start_at that does not parse → 400 through the validation handler
    - Reschedule and book answer the same {appointment, closer} shape
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_current_user
from portal.infrastructure.database import get_db
from portal.models.user import User
from portal.schemas.booking import (
    AppointmentResponse, AvailabilityCreate, AvailabilityResponse,
    BookAppointmentRequest, BookAppointmentResponse, CloserSummary,
    MyAppointmentResponse, RescheduleAppointmentRequest,
    RescheduleAppointmentResponse, SlotResponse,
)
from portal.services import booking

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/appointments", tags=["appointments"])
availability_router = APIRouter(prefix="/api/v1/availability", tags=["availability"])


def _closer(user: User) -> CloserSummary:
    return CloserSummary(id=user.id, name=user.name, email=user.email)


@router.post("/book", response_model=BookAppointmentResponse)
async def book_appointment(
    body: BookAppointmentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await booking.book_appointment(
        db, user, body.lead_id, body.start_at, body.duration_minutes,
    )
    await db.commit()
    return BookAppointmentResponse(
        appointment=AppointmentResponse.model_validate(result.appointment, from_attributes=True),
        closer=_closer(result.closer),
    )


@router.post("/reschedule", response_model=RescheduleAppointmentResponse)
async def reschedule_appointment(
    body: RescheduleAppointmentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await booking.reschedule_appointment(
        db, user, body.appointment_id,
        start_at=body.start_at,
        duration_minutes=body.duration_minutes,
        closer_id=body.closer_id,
        confirm_add_availability=body.confirm_add_availability,
    )
    await db.commit()
    return RescheduleAppointmentResponse(
        appointment=AppointmentResponse.model_validate(result.appointment, from_attributes=True),
        closer=_closer(result.closer),
    )


@router.get("/my", response_model=list[MyAppointmentResponse])
async def my_appointments(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Newest first: a closer's own, a dialer's booked, or all for managers/admins."""
    appointments = await booking.list_my_appointments(db, user)
    return [
        MyAppointmentResponse(
            **AppointmentResponse.model_validate(a, from_attributes=True).model_dump(),
            lead_business_name=a.lead.business_name,
            closer=_closer(a.closer),
        )
        for a in appointments
    ]


@router.get("/available-closers", response_model=list[CloserSummary])
async def available_closers(
    start_at: datetime,
    duration_minutes: int = Query(30, ge=10, le=180),
    exclude_appointment_id: UUID | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    closers = await booking.available_closers(
        db, start_at, duration_minutes, exclude_appointment_id,
    )
    return [_closer(c) for c in closers]


@router.get("/suggestions", response_model=list[SlotResponse])
async def suggestions(
    duration_minutes: int = Query(30, ge=10, le=180),
    days: int = Query(7, ge=1, le=30),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Half-hour-aligned upcoming slots with at least one free closer."""
    slots = await booking.suggest_slots(
        db, datetime.now(timezone.utc),
        duration_minutes=duration_minutes, days=days, limit=limit,
    )
    return [SlotResponse(start_at=s.start_at, end_at=s.end_at, closer_count=s.closer_count) for s in slots]


# ─── Availability ────────────────────────────────────────────────

@availability_router.get("", response_model=list[AvailabilityResponse])
async def list_availability(
    since: datetime | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    blocks = await booking.list_availability(db, user, since=since)
    return [AvailabilityResponse.model_validate(b, from_attributes=True) for b in blocks]


@availability_router.post(
    "", response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED,
)
async def add_availability(
    body: AvailabilityCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    block = await booking.add_availability(db, user, body.start_at, body.end_at)
    await db.commit()
    return AvailabilityResponse.model_validate(block, from_attributes=True)


@availability_router.delete("/{block_id}")
async def delete_availability(
    block_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await booking.delete_availability(db, user, block_id)
    await db.commit()
    return {"ok": True}
