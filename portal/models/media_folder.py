"""PortalMediaFolder ORM — a node in an owner's media folder tree.

Invariants:
    - parent_id NULL means root level; parents always belong to the same owner
    - Unique (owner_id, tag); unique (owner_id, parent_id, name_key)
    - The tree is acyclic (re-parenting checked by core/media_paths.would_create_cycle)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base


class PortalMediaFolder(Base):
    __tablename__ = "portal_media_folders"
    __table_args__ = (
        UniqueConstraint("owner_id", "tag", name="uq_media_folder_owner_tag"),
        UniqueConstraint(
            "owner_id", "parent_id", "name_key", name="uq_media_folder_sibling_name",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_media_folders.id", ondelete="CASCADE"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    name_key: Mapped[str] = mapped_column(String(120), nullable=False)
    tag: Mapped[str] = mapped_column(String(16), nullable=False)
    public_token: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
