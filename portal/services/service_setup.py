"""Service Setup Store — per-owner JSON settings keyed by service slug.

Invariants:
    - One PortalServiceSetup row per (owner_id, service_slug)
    - data_json is replaced with a fresh dict on every save (never mutated in place)
    - Token lookups compare in constant time and reject non-token-like input early

Design Decisions:
    - Webhook token lookup scans rows of one slug (bounded by MAX_TOKEN_SCAN):
      tokens live inside the JSON blob, not an indexed column
    - Callers commit: this module only flushes
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.domain_types import ServiceSlug
from portal.core.tokens import looks_like_token, tokens_match
from portal.models.service_setup import PortalServiceSetup

logger = logging.getLogger(__name__)

DATA_VERSION = 1
MAX_TOKEN_SCAN = 5000


async def get_setup(
    db: AsyncSession, owner_id: UUID, slug: ServiceSlug,
) -> PortalServiceSetup | None:
    result = await db.execute(
        select(PortalServiceSetup).where(
            PortalServiceSetup.owner_id == owner_id,
            PortalServiceSetup.service_slug == slug.value,
        ),
    )
    return result.scalar_one_or_none()


async def get_service_data(db: AsyncSession, owner_id: UUID, slug: ServiceSlug) -> dict:
    """Stored data_json for the service, or an empty dict."""
    setup = await get_setup(db, owner_id, slug)
    if setup is None or not isinstance(setup.data_json, dict):
        return {}
    return dict(setup.data_json)


def settings_of(data: dict) -> dict:
    settings = data.get("settings")
    return dict(settings) if isinstance(settings, dict) else {}


async def save_service_data(
    db: AsyncSession, owner_id: UUID, slug: ServiceSlug, data: dict[str, Any],
) -> PortalServiceSetup:
    """Upsert the service row with a new data_json value."""
    payload = {**data, "version": DATA_VERSION}
    setup = await get_setup(db, owner_id, slug)
    if setup is None:
        setup = PortalServiceSetup(
            owner_id=owner_id, service_slug=slug.value, data_json=payload,
        )
        db.add(setup)
    else:
        setup.data_json = payload
    await db.flush()
    return setup


async def find_owner_by_webhook_token(
    db: AsyncSession,
    slug: ServiceSlug,
    token: str | None,
    settings_key: str = "webhook_token",
) -> UUID | None:
    """Resolve a public webhook token to its owner. None for unknown tokens."""
    if not looks_like_token(token):
        return None
    wanted = token.strip()
    result = await db.execute(
        select(PortalServiceSetup.owner_id, PortalServiceSetup.data_json)
        .where(PortalServiceSetup.service_slug == slug.value)
        .limit(MAX_TOKEN_SCAN),
    )
    for owner_id, data in result.all():
        stored = settings_of(data if isinstance(data, dict) else {}).get(settings_key)
        if isinstance(stored, str) and tokens_match(stored.strip(), wanted):
            return owner_id
    return None
