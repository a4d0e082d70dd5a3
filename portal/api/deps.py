"""Request Dependencies — caller identity and shared per-request collaborators.

Invariants:
    - Portal routes resolve the caller from the identity header set by the
      upstream gateway; missing, malformed, unknown or inactive → 401
    - The resolved owner id is the tenant scope for every portal query

Design Decisions:
    - Header identity over session cookies: authentication happens upstream,
      this service only maps the asserted user id to a User row
"""

from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config import get_settings
from portal.core.errors import AuthenticationRequiredError, PermissionDeniedError
from portal.infrastructure.database import get_db
from portal.models.user import User
from portal.services.twilio_integration import verify_twilio_signature


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db),
) -> User:
    raw = request.headers.get(get_settings().identity_header, "").strip()
    if not raw:
        raise AuthenticationRequiredError()
    try:
        user_id = UUID(raw)
    except ValueError:
        raise AuthenticationRequiredError()

    user = (await db.execute(
        select(User).where(User.id == user_id),
    )).scalar_one_or_none()
    if user is None or not user.active:
        raise AuthenticationRequiredError()
    return user


def public_url(request: Request) -> str:
    """Absolute URL of the current request as Twilio signed it."""
    base = get_settings().public_base_url.rstrip("/")
    query = f"?{request.url.query}" if request.url.query else ""
    return f"{base}{request.url.path}{query}"


async def require_twilio_signature(
    request: Request, db: AsyncSession, owner_id: UUID | None, params: dict[str, str],
) -> None:
    """403 unless the webhook carries a valid X-Twilio-Signature (when enforcement is on)."""
    if owner_id is None or not get_settings().twilio_validate_signatures:
        return
    valid = await verify_twilio_signature(
        db, owner_id, public_url(request), params,
        request.headers.get("X-Twilio-Signature"),
    )
    if not valid:
        raise PermissionDeniedError("Invalid Twilio signature")


def form_params(form) -> dict[str, str]:
    """String fields of a submitted form (file parts dropped)."""
    return {k: v for k, v in form.multi_items() if isinstance(v, str)}
