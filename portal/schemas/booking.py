"""Booking Schemas — appointment booking and availability request/response models.

Invariants:
    - duration_minutes: 10-180, default 30 (reschedule: optional, keeps the current length)
    - start_at must parse as an ISO-8601 datetime (naive values are read as UTC)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BookAppointmentRequest(BaseModel):
    lead_id: UUID
    start_at: datetime
    duration_minutes: int = Field(30, ge=10, le=180)


class CloserSummary(BaseModel):
    id: UUID
    name: str
    email: str


class AppointmentResponse(BaseModel):
    id: UUID
    lead_id: UUID
    setter_id: UUID
    closer_id: UUID
    start_at: datetime
    end_at: datetime
    status: str


class BookAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    closer: CloserSummary


class RescheduleAppointmentRequest(BaseModel):
    """Omitted fields keep the appointment's current value."""
    appointment_id: UUID
    start_at: datetime | None = None
    duration_minutes: int | None = Field(None, ge=10, le=180)
    closer_id: UUID | None = None
    confirm_add_availability: bool = False


class RescheduleAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    closer: CloserSummary


class MyAppointmentResponse(AppointmentResponse):
    lead_business_name: str
    closer: CloserSummary


class AvailabilityCreate(BaseModel):
    """Order (start before end) is checked by the service after UTC normalization."""
    start_at: datetime
    end_at: datetime


class AvailabilityResponse(BaseModel):
    id: UUID
    user_id: UUID
    start_at: datetime
    end_at: datetime


class SlotResponse(BaseModel):
    start_at: datetime
    end_at: datetime
    closer_count: int
