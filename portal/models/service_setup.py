"""PortalServiceSetup ORM — per-owner configuration blob for one toggleable service.

Invariants:
    - At most one row per (owner_id, service_slug) — unique constraint
    - data_json shape: {"version": 1, "settings": {...}, ...service-specific keys}
    - data_json is always replaced, never mutated in place (JSON change tracking)

Design Decisions:
    - JSON blob over per-service tables: services evolve their settings without
      migrations; the few lookups by token scan rows of one slug
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalServiceSetup(Base):
    __tablename__ = "portal_service_setups"
    __table_args__ = (
        UniqueConstraint("owner_id", "service_slug", name="uq_service_setup_owner_slug"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    service_slug: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="COMPLETE")
    data_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
