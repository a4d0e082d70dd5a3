"""PortalInboxAttachment ORM — file bytes received with (or sent with) a message.

Invariants:
    - public_token is a random 32-hex token; the public download URL needs id + token
    - content is stored inline; size capped by the inbound webhook limits
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, LargeBinary, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship, deferred
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalInboxAttachment(Base):
    __tablename__ = "portal_inbox_attachments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    message_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_inbox_messages.id", ondelete="CASCADE"),
        nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(200), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(120), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    # Deferred: list views load metadata only
    content: Mapped[bytes] = deferred(mapped_column(LargeBinary, nullable=False))
    public_token: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    message: Mapped["PortalInboxMessage"] = relationship(
        "PortalInboxMessage", back_populates="attachments",
    )
