"""Portal Media Routes — folder tree and item management for the media library.

Invariants:
    - Every query is scoped to the caller's owner id
    - Upload limits come from settings (media_upload_max_files / _max_bytes)
    - PATCH: an omitted field is left unchanged, an explicit null clears it
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_current_user
from portal.config import get_settings
from portal.core.errors import InvalidRequestError
from portal.infrastructure.database import get_db
from portal.models.user import User
from portal.schemas.media import FolderCreate, FolderUpdate, ItemUpdate
from portal.services import media_library
from portal.services.media_library import UNSET

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/portal/media", tags=["media"])


def _parse_uuid(raw: str | None, field: str) -> UUID | None:
    if raw is None or not raw.strip():
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        raise InvalidRequestError(f"Invalid {field}", field=field)


# ─── Folders ─────────────────────────────────────────────────────

@router.get("/folders")
async def list_folders(
    parent_id: UUID | None = Query(None),
    all_levels: bool = Query(False, alias="all"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    folders = await media_library.list_folders(
        db, user.id, parent_id=parent_id, all_levels=all_levels,
    )
    return {"folders": [media_library.folder_to_dict(f) for f in folders]}


@router.post("/folders", status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: FolderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    folder = await media_library.create_folder(
        db, user.id, body.name, parent_id=body.parent_id, color=body.color,
    )
    await db.commit()
    return {"folder": media_library.folder_to_dict(folder)}


@router.patch("/folders/{folder_id}")
async def update_folder(
    folder_id: UUID,
    body: FolderUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sent = body.model_fields_set
    folder = await media_library.update_folder(
        db, user.id, folder_id,
        name=body.name if "name" in sent else None,
        parent_id=body.parent_id if "parent_id" in sent else UNSET,
        color=body.color if "color" in sent else UNSET,
    )
    await db.commit()
    return {"folder": media_library.folder_to_dict(folder)}


# ─── Items ───────────────────────────────────────────────────────

@router.get("/items")
async def list_items(
    folder_id: UUID | None = Query(None),
    q: str | None = Query(None, max_length=200),
    limit: int = Query(200, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await media_library.list_items(db, user.id, folder_id=folder_id, q=q, limit=limit)
    return {"items": [media_library.item_to_dict(i) for i in items]}


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def upload_items(
    files: list[UploadFile] = File(...),
    folder_id: str | None = Form(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    settings = get_settings()
    uploads = [
        media_library.UploadFile(
            f.filename or "upload.bin",
            f.content_type or "application/octet-stream",
            await f.read(),
        )
        for f in files
    ]
    items = await media_library.upload_items(
        db, user.id, _parse_uuid(folder_id, "folder_id"), uploads,
        max_files=settings.media_upload_max_files,
        max_bytes=settings.media_upload_max_bytes,
    )
    await db.commit()
    logger.info(f"Uploaded {len(items)} media item(s)", extra={"owner_id": user.id})
    return {"items": [media_library.item_to_dict(i) for i in items]}


@router.patch("/items/{item_id}")
async def update_item(
    item_id: UUID,
    body: ItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sent = body.model_fields_set
    item = await media_library.update_item(
        db, user.id, item_id,
        file_name=body.file_name if "file_name" in sent else None,
        folder_id=body.folder_id if "folder_id" in sent else UNSET,
    )
    await db.commit()
    return {"item": media_library.item_to_dict(item)}


@router.delete("/items/{item_id}")
async def delete_item(
    item_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await media_library.delete_item(db, user.id, item_id)
    await db.commit()
    return {"ok": True}
