"""Appointment ORM — a booked call between a closer and a lead.

Invariants:
    - setter_id is the user who booked it; closer_id the user who takes it
    - status is one of AppointmentStatus values (SCHEDULED default)
    - SCHEDULED/RESCHEDULED appointments block the closer's calendar

Design Decisions:
    - (closer_id, start_at) index: conflict checks scan one closer's day
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class Appointment(Base):
    """Appointment entity — one lead, one setter, one closer."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_closer_start", "closer_id", "start_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False,
    )
    setter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False,
    )
    closer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="SCHEDULED",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    lead: Mapped["Lead"] = relationship("Lead", lazy="selectin")
    closer: Mapped["User"] = relationship(
        "User", foreign_keys=[closer_id], lazy="selectin",
    )
