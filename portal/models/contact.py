"""PortalContact ORM — people an owner has exchanged messages with.

Invariants:
    - email stored lower-cased; phone stored E.164
    - At least one of email/phone is set (enforced by the inbox service)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalContact(Base):
    __tablename__ = "portal_contacts"
    __table_args__ = (
        Index("ix_portal_contacts_owner_email", "owner_id", "email"),
        Index("ix_portal_contacts_owner_phone", "owner_id", "phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
