"""Initial schema — users, leads, booking, service setups, inbox, media library.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True)


def _owner() -> sa.Column:
    return sa.Column(
        "owner_id", UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default="DIALER"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("time_zone", sa.String(64), nullable=False, server_default="America/New_York"),
        sa.Column("phone", sa.String(32), nullable=True),
        _created_at(),
    )

    op.create_table(
        "leads",
        _id(),
        sa.Column("business_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("contact_name", sa.String(200), nullable=True),
        sa.Column("contact_email", sa.String(320), nullable=True),
        _created_at(),
    )

    op.create_table(
        "availability_blocks",
        _id(),
        sa.Column(
            "user_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_availability_blocks_user_start", "availability_blocks", ["user_id", "start_at"],
    )

    op.create_table(
        "appointments",
        _id(),
        sa.Column(
            "lead_id", UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("setter_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("closer_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        _created_at(),
    )
    op.create_index("ix_appointments_closer_start", "appointments", ["closer_id", "start_at"])

    op.create_table(
        "portal_service_setups",
        _id(),
        _owner(),
        sa.Column("service_slug", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="COMPLETE"),
        sa.Column("data_json", sa.JSON, nullable=False),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("owner_id", "service_slug", name="uq_service_setup_owner_slug"),
    )
    op.create_index(
        "ix_portal_service_setups_service_slug", "portal_service_setups", ["service_slug"],
    )

    op.create_table(
        "portal_contacts",
        _id(),
        _owner(),
        sa.Column("name", sa.String(200), nullable=False, server_default=""),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        _created_at(),
    )
    op.create_index("ix_portal_contacts_owner_email", "portal_contacts", ["owner_id", "email"])
    op.create_index("ix_portal_contacts_owner_phone", "portal_contacts", ["owner_id", "phone"])

    op.create_table(
        "portal_inbox_threads",
        _id(),
        _owner(),
        sa.Column("channel", sa.String(10), nullable=False),
        sa.Column("thread_key", sa.String(260), nullable=False),
        sa.Column("peer_address", sa.String(200), nullable=False),
        sa.Column("peer_key", sa.String(200), nullable=False),
        sa.Column("subject", sa.String(200), nullable=True),
        sa.Column("subject_key", sa.String(160), nullable=True),
        sa.Column(
            "contact_id", UUID(as_uuid=True),
            sa.ForeignKey("portal_contacts.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "last_message_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_message_preview", sa.String(240), nullable=False, server_default=""),
        sa.Column("last_message_direction", sa.String(3), nullable=False, server_default="IN"),
        sa.Column("last_message_from", sa.String(240), nullable=False, server_default=""),
        sa.Column("last_message_to", sa.String(240), nullable=True),
        sa.Column("last_message_subject", sa.String(200), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("owner_id", "channel", "thread_key", name="uq_inbox_thread_key"),
    )
    op.create_index(
        "ix_inbox_threads_owner_last", "portal_inbox_threads", ["owner_id", "last_message_at"],
    )

    op.create_table(
        "portal_inbox_messages",
        _id(),
        _owner(),
        sa.Column(
            "thread_id", UUID(as_uuid=True),
            sa.ForeignKey("portal_inbox_threads.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("channel", sa.String(10), nullable=False),
        sa.Column("direction", sa.String(3), nullable=False),
        sa.Column("from_address", sa.String(240), nullable=False),
        sa.Column("to_address", sa.String(240), nullable=True),
        sa.Column("subject", sa.String(200), nullable=True),
        sa.Column("body_text", sa.Text, nullable=False, server_default=""),
        sa.Column("provider", sa.String(40), nullable=True),
        sa.Column("provider_message_id", sa.String(120), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "owner_id", "provider", "provider_message_id",
            name="uq_inbox_message_provider_id",
        ),
    )
    op.create_index(
        "ix_inbox_messages_thread_created", "portal_inbox_messages", ["thread_id", "created_at"],
    )

    op.create_table(
        "portal_inbox_attachments",
        _id(),
        _owner(),
        sa.Column(
            "message_id", UUID(as_uuid=True),
            sa.ForeignKey("portal_inbox_messages.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("file_name", sa.String(200), nullable=False),
        sa.Column("mime_type", sa.String(120), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False),
        sa.Column("content", sa.LargeBinary, nullable=False),
        sa.Column("public_token", sa.String(64), nullable=False),
        _created_at(),
    )

    op.create_table(
        "portal_media_folders",
        _id(),
        _owner(),
        sa.Column(
            "parent_id", UUID(as_uuid=True),
            sa.ForeignKey("portal_media_folders.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("name_key", sa.String(120), nullable=False),
        sa.Column("tag", sa.String(16), nullable=False),
        sa.Column("public_token", sa.String(64), nullable=False, server_default=""),
        sa.Column("color", sa.String(32), nullable=True),
        _created_at(),
        sa.UniqueConstraint("owner_id", "tag", name="uq_media_folder_owner_tag"),
        sa.UniqueConstraint(
            "owner_id", "parent_id", "name_key", name="uq_media_folder_sibling_name",
        ),
    )

    op.create_table(
        "portal_media_items",
        _id(),
        _owner(),
        sa.Column(
            "folder_id", UUID(as_uuid=True),
            sa.ForeignKey("portal_media_folders.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("file_name", sa.String(200), nullable=False),
        sa.Column("mime_type", sa.String(120), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False),
        sa.Column("content", sa.LargeBinary, nullable=False),
        sa.Column("tag", sa.String(16), nullable=False),
        sa.Column("public_token", sa.String(64), nullable=False),
        _created_at(),
        sa.UniqueConstraint("owner_id", "tag", name="uq_media_item_owner_tag"),
    )
    op.create_index("ix_media_items_owner_folder", "portal_media_items", ["owner_id", "folder_id"])


def downgrade() -> None:
    op.drop_table("portal_media_items")
    op.drop_table("portal_media_folders")
    op.drop_table("portal_inbox_attachments")
    op.drop_table("portal_inbox_messages")
    op.drop_table("portal_inbox_threads")
    op.drop_table("portal_contacts")
    op.drop_table("portal_service_setups")
    op.drop_table("appointments")
    op.drop_table("availability_blocks")
    op.drop_table("leads")
    op.drop_table("users")
