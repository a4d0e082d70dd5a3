"""PortalMediaItem ORM — an uploaded file in the media library.

Invariants:
    - Unique (owner_id, tag)
    - folder_id NULL means the library root
    - content deferred: listings never load file bytes
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, LargeBinary, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, deferred
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalMediaItem(Base):
    __tablename__ = "portal_media_items"
    __table_args__ = (
        UniqueConstraint("owner_id", "tag", name="uq_media_item_owner_tag"),
        Index("ix_media_items_owner_folder", "owner_id", "folder_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    folder_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_media_folders.id", ondelete="SET NULL"),
        nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(200), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(120), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[bytes] = deferred(mapped_column(LargeBinary, nullable=False))
    tag: Mapped[str] = mapped_column(String(16), nullable=False)
    public_token: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
