"""Inbox Schemas — outbound SMS request and thread/message views."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SendSmsRequest(BaseModel):
    to: str = Field(min_length=1, max_length=40)
    body: str = Field(min_length=1, max_length=1600)

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("body cannot be empty or whitespace")
        return v


class ThreadResponse(BaseModel):
    id: UUID
    channel: str
    peer_address: str
    subject: str | None = None
    contact_id: UUID | None = None
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    last_message_direction: str | None = None
    last_message_from: str | None = None
    last_message_to: str | None = None


class AttachmentResponse(BaseModel):
    id: UUID
    file_name: str
    mime_type: str
    file_size: int
    url: str


class MessageResponse(BaseModel):
    id: UUID
    thread_id: UUID
    channel: str
    direction: str
    from_address: str
    to_address: str | None = None
    subject: str | None = None
    body_text: str
    provider: str | None = None
    created_at: datetime
    attachments: list[AttachmentResponse] = []
