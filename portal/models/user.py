"""User ORM — portal accounts: tenants (owners) and sales staff alike.

Invariants:
    - email is unique and stored lower-cased
    - role is one of UserRole values (DIALER default)
    - inactive users are never eligible for bookings or portal access

Design Decisions:
    - One table for owners and staff: every owner-scoped row points at users.id
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class User(Base):
    """Portal user — owner of tenant data, or a dialer/closer."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="DIALER",
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    time_zone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="America/New_York",
    )
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
