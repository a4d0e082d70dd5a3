"""ORM Models — SQLAlchemy declarative models for all portal entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Every tenant-scoped row carries owner_id → users.id

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs (ADR: standard SQLAlchemy pattern)
"""

from portal.models.user import User  # noqa: F401
from portal.models.lead import Lead  # noqa: F401
from portal.models.availability_block import AvailabilityBlock  # noqa: F401
from portal.models.appointment import Appointment  # noqa: F401
from portal.models.service_setup import PortalServiceSetup  # noqa: F401
from portal.models.contact import PortalContact  # noqa: F401
from portal.models.inbox_thread import PortalInboxThread  # noqa: F401
from portal.models.inbox_message import PortalInboxMessage  # noqa: F401
from portal.models.inbox_attachment import PortalInboxAttachment  # noqa: F401
from portal.models.media_folder import PortalMediaFolder  # noqa: F401
from portal.models.media_item import PortalMediaItem  # noqa: F401
