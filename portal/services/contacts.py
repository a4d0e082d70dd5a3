"""Portal contacts — find-or-create by email or phone for inbox enrichment."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.contact import PortalContact


async def find_or_create_contact(
    db: AsyncSession,
    owner_id: UUID,
    name: str,
    email: str | None = None,
    phone: str | None = None,
) -> UUID | None:
    """Existing contact id matching email (preferred) or phone, else a new contact's id."""
    email_key = (email or "").strip().lower() or None
    phone_key = (phone or "").strip() or None
    if not email_key and not phone_key:
        return None

    query = select(PortalContact.id).where(PortalContact.owner_id == owner_id)
    if email_key:
        query = query.where(PortalContact.email == email_key)
    else:
        query = query.where(PortalContact.phone == phone_key)
    existing = (await db.execute(query.limit(1))).scalar_one_or_none()
    if existing:
        return existing

    contact = PortalContact(
        owner_id=owner_id,
        name=(name or email_key or phone_key or "Contact")[:200],
        email=email_key,
        phone=phone_key,
    )
    db.add(contact)
    await db.flush()
    return contact.id
