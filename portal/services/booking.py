"""Booking Service — assigns closers to appointments and manages availability.

Invariants:
    - Only DIALER/ADMIN/MANAGER can book; only CLOSER/MANAGER/ADMIN publish availability
    - A booked closer has an availability block covering the slot and no
      overlapping SCHEDULED/RESCHEDULED appointment at commit time
    - Closer order is (created_at, id): fair-pick ties resolve to the longest-tenured closer
    - Rescheduling never conflicts with the appointment itself and leaves it
      RESCHEDULED; uncovered slots need a closer-self or manager/admin override
    - Callers commit; this module flushes

Design Decisions:
    - SQL prefilters by time range; selection rules live in core/booking.py (pure)
    - No row locks: two setters racing for the last free closer can double-book;
      acceptable for a handful of setters (ADR: rely on DB isolation only)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.booking import (
    SlotSuggestion, as_utc, compute_available_slots, eligible_closers,
    free_closers, pick_fair_closer,
)
from portal.core.domain_types import (
    AVAILABILITY_ROLES, BLOCKING_APPOINTMENT_STATUSES, BOOKING_ROLES,
    RESCHEDULE_ROLES, AppointmentStatus, UserRole,
)
from portal.core.errors import (
    ConflictError, InvalidRequestError, PermissionDeniedError, ResourceNotFoundError,
)
from portal.models.appointment import Appointment
from portal.models.availability_block import AvailabilityBlock
from portal.models.lead import Lead
from portal.models.user import User

logger = logging.getLogger(__name__)

_BLOCKING = [s.value for s in BLOCKING_APPOINTMENT_STATUSES]
MY_APPOINTMENTS_LIMIT = 50
ALL_APPOINTMENTS_LIMIT = 100


@dataclass(frozen=True)
class BookingResult:
    appointment: Appointment
    closer: User


def _require_role(user: User, allowed: frozenset[UserRole]) -> None:
    if user.role not in {r.value for r in allowed}:
        raise PermissionDeniedError()


async def _active_closers(db: AsyncSession) -> list[User]:
    result = await db.execute(
        select(User)
        .where(User.role == UserRole.CLOSER.value, User.active.is_(True))
        .order_by(User.created_at.asc(), User.id.asc()),
    )
    return list(result.scalars().all())


async def _blocks_between(
    db: AsyncSession, closer_ids: list[UUID], start: datetime, end: datetime,
) -> list[AvailabilityBlock]:
    if not closer_ids:
        return []
    result = await db.execute(
        select(AvailabilityBlock).where(
            AvailabilityBlock.user_id.in_(closer_ids),
            AvailabilityBlock.start_at <= start,
            AvailabilityBlock.end_at >= end,
        ),
    )
    return list(result.scalars().all())


async def _appointments_between(
    db: AsyncSession, closer_ids: list[UUID], start: datetime, end: datetime,
    statuses: list[str] = _BLOCKING,
) -> list[Appointment]:
    if not closer_ids:
        return []
    result = await db.execute(
        select(Appointment).where(
            Appointment.closer_id.in_(closer_ids),
            Appointment.status.in_(statuses),
            Appointment.start_at < end,
            Appointment.end_at > start,
        ),
    )
    return list(result.scalars().all())


async def available_closers(
    db: AsyncSession,
    start_at: datetime,
    duration_minutes: int,
    exclude_appointment_id: UUID | None = None,
) -> list[User]:
    """Closers covering the slot with no conflicting appointment, in fair-pick order."""
    start = as_utc(start_at)
    end = start + timedelta(minutes=duration_minutes)
    closers = await _active_closers(db)
    ids = [c.id for c in closers]
    blocks = await _blocks_between(db, ids, start, end)
    candidates = eligible_closers(closers, blocks, start, end)
    appointments = await _appointments_between(db, [c.id for c in candidates], start, end)
    return free_closers(candidates, appointments, start, end, exclude_appointment_id)


async def book_appointment(
    db: AsyncSession,
    user: User,
    lead_id: UUID,
    start_at: datetime,
    duration_minutes: int,
) -> BookingResult:
    """Book lead with the least-loaded free closer for the slot's day."""
    _require_role(user, BOOKING_ROLES)

    lead = (await db.execute(select(Lead.id).where(Lead.id == lead_id))).scalar_one_or_none()
    if lead is None:
        raise ResourceNotFoundError("Lead", str(lead_id))

    start = as_utc(start_at)
    end = start + timedelta(minutes=duration_minutes)

    closers = await _active_closers(db)
    blocks = await _blocks_between(db, [c.id for c in closers], start, end)
    candidates = eligible_closers(closers, blocks, start, end)
    if not candidates:
        raise ConflictError("No closers available for that time")

    conflicts = await _appointments_between(db, [c.id for c in candidates], start, end)
    free = free_closers(candidates, conflicts, start, end)
    if not free:
        raise ConflictError("All eligible closers are booked at that time")

    day_start = start.replace(hour=0, minute=0, second=0, microsecond=0)
    same_day = await _appointments_between(
        db, [c.id for c in free], day_start, day_start + timedelta(days=1),
        statuses=[AppointmentStatus.SCHEDULED.value],
    )
    closer = pick_fair_closer(free, same_day, start)

    appointment = Appointment(
        lead_id=lead_id,
        setter_id=user.id,
        closer_id=closer.id,
        start_at=start,
        end_at=end,
        status=AppointmentStatus.SCHEDULED.value,
    )
    db.add(appointment)
    await db.flush()
    logger.info(
        f"Appointment booked with closer {closer.id}",
        extra={"owner_id": user.id},
    )
    return BookingResult(appointment, closer)


async def reschedule_appointment(
    db: AsyncSession,
    user: User,
    appointment_id: UUID,
    start_at: datetime | None = None,
    duration_minutes: int | None = None,
    closer_id: UUID | None = None,
    confirm_add_availability: bool = False,
) -> BookingResult:
    """Move an appointment to a new time and/or closer; status becomes RESCHEDULED.

    Omitted fields keep the current value. A slot without availability
    coverage is allowed only when confirm_add_availability is set by the
    target closer itself or by a manager/admin; a block for exactly that slot
    is then added.
    """
    appointment = (await db.execute(
        select(Appointment).where(Appointment.id == appointment_id),
    )).scalar_one_or_none()
    if appointment is None:
        raise ResourceNotFoundError("Appointment", str(appointment_id))

    role = user.role
    if role == UserRole.DIALER.value and appointment.setter_id != user.id:
        raise PermissionDeniedError()
    if role == UserRole.CLOSER.value and appointment.closer_id != user.id:
        raise PermissionDeniedError()
    _require_role(user, RESCHEDULE_ROLES)

    if appointment.status not in _BLOCKING:
        raise ConflictError("Only scheduled appointments can be rescheduled")

    current_start = as_utc(appointment.start_at)
    if duration_minutes is None:
        current = as_utc(appointment.end_at) - current_start
        duration_minutes = max(10, round(current.total_seconds() / 60))
    start = as_utc(start_at) if start_at is not None else current_start
    end = start + timedelta(minutes=duration_minutes)

    target_id = closer_id or appointment.closer_id
    closer = (await db.execute(
        select(User).where(
            User.id == target_id,
            User.role == UserRole.CLOSER.value,
            User.active.is_(True),
        ),
    )).scalar_one_or_none()
    if closer is None:
        raise ResourceNotFoundError("Closer", str(target_id))

    conflicts = await _appointments_between(db, [closer.id], start, end)
    if not free_closers([closer], conflicts, start, end, exclude_appointment_id=appointment.id):
        raise ConflictError("That closer is not free at that time. Pick another closer or time.")

    covered = eligible_closers([closer], await _blocks_between(db, [closer.id], start, end), start, end)
    if not covered:
        self_override = role == UserRole.CLOSER.value and user.id == closer.id
        manager_override = role in {UserRole.MANAGER.value, UserRole.ADMIN.value}
        if not (confirm_add_availability and (self_override or manager_override)):
            raise ConflictError(
                "That closer is not available at that time. Pick another closer or time.",
            )
        db.add(AvailabilityBlock(user_id=closer.id, start_at=start, end_at=end))
        logger.info(
            f"Availability added for closer {closer.id} to cover a reschedule",
            extra={"owner_id": user.id},
        )

    appointment.closer_id = closer.id
    appointment.start_at = start
    appointment.end_at = end
    appointment.status = AppointmentStatus.RESCHEDULED.value
    await db.flush()
    logger.info(
        f"Appointment {appointment.id} rescheduled with closer {closer.id}",
        extra={"owner_id": user.id},
    )
    return BookingResult(appointment, closer)


async def list_my_appointments(db: AsyncSession, user: User) -> list[Appointment]:
    """Closers see theirs, dialers the ones they set, managers/admins everything."""
    query = select(Appointment)
    if user.role == UserRole.CLOSER.value:
        query = query.where(Appointment.closer_id == user.id).limit(MY_APPOINTMENTS_LIMIT)
    elif user.role == UserRole.DIALER.value:
        query = query.where(Appointment.setter_id == user.id).limit(MY_APPOINTMENTS_LIMIT)
    elif user.role in {UserRole.MANAGER.value, UserRole.ADMIN.value}:
        query = query.limit(ALL_APPOINTMENTS_LIMIT)
    else:
        raise PermissionDeniedError()
    result = await db.execute(query.order_by(Appointment.start_at.desc()))
    return list(result.scalars().all())


async def suggest_slots(
    db: AsyncSession,
    now: datetime,
    duration_minutes: int = 30,
    days: int = 7,
    limit: int = 50,
) -> list[SlotSuggestion]:
    window_start = as_utc(now)
    window_end = window_start + timedelta(days=days)
    closers = await _active_closers(db)
    ids = [c.id for c in closers]
    if not ids:
        return []
    blocks = list((await db.execute(
        select(AvailabilityBlock).where(
            AvailabilityBlock.user_id.in_(ids),
            AvailabilityBlock.end_at > window_start,
            AvailabilityBlock.start_at < window_end,
        ),
    )).scalars().all())
    appointments = await _appointments_between(db, ids, window_start, window_end)
    return compute_available_slots(
        window_start, closers, blocks, appointments,
        duration_minutes=duration_minutes, days=days, limit=limit,
    )


# ─── Availability ────────────────────────────────────────────────

async def add_availability(
    db: AsyncSession, user: User, start_at: datetime, end_at: datetime,
) -> AvailabilityBlock:
    _require_role(user, AVAILABILITY_ROLES)
    start, end = as_utc(start_at), as_utc(end_at)
    if start >= end:
        raise InvalidRequestError("start_at must be before end_at", field="end_at")
    block = AvailabilityBlock(user_id=user.id, start_at=start, end_at=end)
    db.add(block)
    await db.flush()
    return block


async def list_availability(
    db: AsyncSession, user: User, since: datetime | None = None,
) -> list[AvailabilityBlock]:
    query = select(AvailabilityBlock).where(AvailabilityBlock.user_id == user.id)
    if since is not None:
        query = query.where(AvailabilityBlock.end_at > as_utc(since))
    result = await db.execute(query.order_by(AvailabilityBlock.start_at.asc()))
    return list(result.scalars().all())


async def delete_availability(db: AsyncSession, user: User, block_id: UUID) -> None:
    block = (await db.execute(
        select(AvailabilityBlock).where(
            AvailabilityBlock.id == block_id,
            AvailabilityBlock.user_id == user.id,
        ),
    )).scalar_one_or_none()
    if block is None:
        raise ResourceNotFoundError("Availability block", str(block_id))
    await db.delete(block)
    await db.flush()
