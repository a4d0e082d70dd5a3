"""Domain Types — enums that replace bare strings across the codebase.

Invariants:
    - All valid states encoded as Enums — no raw string matching
    - Enum values are the exact strings persisted in the database
    - Role sets are frozensets: membership checks only, never mutated

Design Decisions:
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class ServiceSlug(str, Enum):
    """Toggleable portal features — key of PortalServiceSetup rows."""
    INBOX = "inbox"
    AI_RECEPTIONIST = "ai-receptionist"
    INTEGRATIONS = "integrations"
    MEDIA = "media"


class UserRole(str, Enum):
    """User roles — DIALERs set appointments, CLOSERs take them."""
    DIALER = "DIALER"
    CLOSER = "CLOSER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    RESCHEDULED = "RESCHEDULED"
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"


class InboxChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class InboxDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"


class InboxProvider(str, Enum):
    """Provider tag stored on every inbox message — part of the dedupe key."""
    TWILIO = "TWILIO"
    POSTMARK_INBOUND = "POSTMARK_INBOUND"
    SENDGRID_INBOUND = "SENDGRID_INBOUND"


class CallStatus(str, Enum):
    """AI receptionist call event lifecycle."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


class ReceptionistMode(str, Enum):
    AI = "AI"
    FORWARD = "FORWARD"


# Roles allowed to book appointments on behalf of a lead
BOOKING_ROLES = frozenset({UserRole.DIALER, UserRole.ADMIN, UserRole.MANAGER})

# Roles allowed to reschedule (dialers and closers only their own appointments)
RESCHEDULE_ROLES = frozenset({
    UserRole.DIALER, UserRole.CLOSER, UserRole.MANAGER, UserRole.ADMIN,
})

# Roles allowed to publish availability blocks
AVAILABILITY_ROLES = frozenset({UserRole.CLOSER, UserRole.MANAGER, UserRole.ADMIN})

# Appointment statuses that occupy a closer's calendar
BLOCKING_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED,
})
