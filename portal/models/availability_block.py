"""AvailabilityBlock ORM — a window in which a closer accepts bookings.

Invariants:
    - start_at < end_at (enforced at the API boundary)
    - Deleted with the owning user (ON DELETE CASCADE)
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class AvailabilityBlock(Base):
    __tablename__ = "availability_blocks"
    __table_args__ = (
        Index("ix_availability_blocks_user_start", "user_id", "start_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
