"""Integration Schemas — Twilio credentials form."""

from pydantic import BaseModel, Field


class TwilioConfigUpdate(BaseModel):
    account_sid: str = Field(min_length=1, max_length=64)
    auth_token: str | None = Field(None, max_length=128)
    from_number: str | None = Field(None, max_length=40)
