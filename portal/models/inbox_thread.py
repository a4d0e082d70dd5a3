"""PortalInboxThread ORM — one conversation per (owner, channel, thread_key).

Invariants:
    - Unique (owner_id, channel, thread_key): concurrent inbound messages for the
      same conversation converge on one row
    - last_message_* fields mirror the newest message (denormalized for list views)

Design Decisions:
    - thread_key computed in core/inbox_keys.py: peer email + normalized subject
      for EMAIL, peer E.164 for SMS
    - cascade delete for messages; the collection is lazy="raise", message
      reads go through explicit queries in services/inbox.py
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalInboxThread(Base):
    """Inbox thread — groups messages exchanged with one peer."""
    __tablename__ = "portal_inbox_threads"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "channel", "thread_key", name="uq_inbox_thread_key",
        ),
        Index("ix_inbox_threads_owner_last", "owner_id", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    thread_key: Mapped[str] = mapped_column(String(260), nullable=False)
    peer_address: Mapped[str] = mapped_column(String(200), nullable=False)
    peer_key: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(200), nullable=True)
    subject_key: Mapped[str | None] = mapped_column(String(160), nullable=True)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_contacts.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_message_preview: Mapped[str] = mapped_column(String(240), nullable=False, default="")
    last_message_direction: Mapped[str] = mapped_column(String(3), nullable=False, default="IN")
    last_message_from: Mapped[str] = mapped_column(String(240), nullable=False, default="")
    last_message_to: Mapped[str | None] = mapped_column(String(240), nullable=True)
    last_message_subject: Mapped[str | None] = mapped_column(String(200), nullable=True)
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

    messages: Mapped[list["PortalInboxMessage"]] = relationship(
        "PortalInboxMessage", back_populates="thread",
        cascade="all, delete-orphan", lazy="raise",
    )
