"""Public Media Routes — share links for folders (zip or JSON listing) and single items.

Invariants:
    - No identity header: the path token is the only credential
    - Folder zips honor media_zip_max_files / media_zip_max_bytes (400 beyond)
    - Zip responses are publicly cacheable for an hour
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config import get_settings
from portal.core.media_paths import content_disposition
from portal.infrastructure.database import get_db
from portal.services import media_library

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/public/media", tags=["public-media"])


@router.get("/folder/{folder_id}/{token}")
async def shared_folder(
    folder_id: UUID,
    token: str,
    as_json: bool = Query(False, alias="json"),
    db: AsyncSession = Depends(get_db),
):
    """Whole-folder zip download, or the folder's direct children with ?json=1."""
    folder = await media_library.get_public_folder(db, folder_id, token)
    await db.commit()
    if as_json:
        return await media_library.folder_listing(db, folder)

    settings = get_settings()
    filename, archive = await media_library.build_folder_zip(
        db, folder,
        max_files=settings.media_zip_max_files,
        max_bytes=settings.media_zip_max_bytes,
    )
    logger.info(
        f"Shared folder zipped ({len(archive)} bytes)",
        extra={"owner_id": folder.owner_id},
    )
    return Response(
        content=archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": content_disposition("attachment", filename),
            "Cache-Control": "public, max-age=3600",
        },
    )


@router.get("/item/{item_id}/{token}")
async def shared_item(
    item_id: UUID,
    token: str,
    download: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    item = await media_library.get_public_item(db, item_id, token)
    disposition = "attachment" if download else "inline"
    return Response(
        content=item.content,
        media_type=item.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(disposition, item.file_name),
            "Cache-Control": "public, max-age=3600",
        },
    )
