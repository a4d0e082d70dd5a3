"""PortalInboxMessage ORM — one inbound or outbound SMS/email.

Invariants:
    - Unique (owner_id, provider, provider_message_id): provider retries of the
      same webhook never create a second row
    - body_text capped at 20000 chars, addresses at 240

Design Decisions:
    - provider_message_id nullable: rows without one are never deduplicated
      (SQL unique constraints ignore NULLs)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalInboxMessage(Base):
    __tablename__ = "portal_inbox_messages"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "provider", "provider_message_id",
            name="uq_inbox_message_provider_id",
        ),
        Index("ix_inbox_messages_thread_created", "thread_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    thread_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_inbox_threads.id", ondelete="CASCADE"),
        nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    direction: Mapped[str] = mapped_column(String(3), nullable=False)
    from_address: Mapped[str] = mapped_column(String(240), nullable=False)
    to_address: Mapped[str | None] = mapped_column(String(240), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(200), nullable=True)
    body_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    provider: Mapped[str | None] = mapped_column(String(40), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    thread: Mapped["PortalInboxThread"] = relationship(
        "PortalInboxThread", back_populates="messages",
    )
    attachments: Mapped[list["PortalInboxAttachment"]] = relationship(
        "PortalInboxAttachment", back_populates="message",
        cascade="all, delete-orphan", lazy="selectin",
    )
