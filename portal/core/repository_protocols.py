"""Boundary Protocols — structural contracts for rows passed into pure core logic.

Invariants:
    - Core NEVER imports from models/ or services/ — dependency arrows point inward only
    - ORM rows satisfy these Protocols structurally; tests pass plain dataclasses

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Attribute-only Protocols: core functions read, never mutate, their inputs
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID


class CloserLike(Protocol):
    """A user who can take appointments."""
    id: UUID
    active: bool


class AvailabilityLike(Protocol):
    """A window during which a closer accepts bookings."""
    user_id: UUID
    start_at: datetime
    end_at: datetime


class AppointmentLike(Protocol):
    """An appointment occupying a closer's calendar."""
    id: UUID
    closer_id: UUID
    start_at: datetime
    end_at: datetime
    status: str


class FolderLike(Protocol):
    """A media folder node in an owner's folder tree."""
    id: UUID
    parent_id: UUID | None
    name: str
