"""Media Library Service — folders, uploaded items, public share links, and folder zips.

Invariants:
    - Every folder/item query is scoped by owner_id (public routes: by id + token)
    - Tags are unique per owner; generation retries up to TAG_ATTEMPTS times
    - A folder is never re-parented under itself or its own descendants
    - Folder zips respect max file count and max total bytes BEFORE loading bytes
    - Callers commit; this module flushes

Design Decisions:
    - Folder subtree collected from one SELECT of the owner's folders, walked
      in memory (core/media_paths.build_folder_paths)
    - Item bytes are loaded only for the final zip build (undefer on demand)
    - "null"/"undefined" tokens in public URLs come from links created before a
      folder had a token: such a folder gets a fresh token on first visit;
      once a token is stored, placeholders no longer open it
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer

from portal.core.errors import (
    ConflictError, InvalidRequestError, LimitExceededError, ResourceNotFoundError,
)
from portal.core.media_paths import (
    FILE_NAME_MAX, FOLDER_NAME_MAX, UPLOADS_FOLDER_NAME,
    build_folder_paths, media_item_urls, new_tag, normalize_name_key,
    safe_filename, safe_zip_filename, sanitize_display_name, unique_zip_names,
    would_create_cycle,
)
from portal.core.tokens import new_public_token, tokens_match
from portal.core.zip_archive import ZipEntry, create_zip
from portal.models.media_folder import PortalMediaFolder
from portal.models.media_item import PortalMediaItem

logger = logging.getLogger(__name__)

TAG_ATTEMPTS = 5
COLOR_MAX = 32
MIME_MAX = 120
_PLACEHOLDER_TOKENS = {"null", "undefined"}
UNSET = object()


@dataclass(frozen=True)
class UploadFile:
    file_name: str
    mime_type: str
    content: bytes


# ─── Helpers ─────────────────────────────────────────────────────

async def _unique_tag(db: AsyncSession, model, owner_id: UUID) -> str:
    tag = new_tag()
    for _ in range(TAG_ATTEMPTS):
        taken = (await db.execute(
            select(model.id).where(model.owner_id == owner_id, model.tag == tag),
        )).scalar_one_or_none()
        if taken is None:
            break
        tag = new_tag()
    return tag


async def get_folder_or_404(
    db: AsyncSession, owner_id: UUID, folder_id: UUID,
) -> PortalMediaFolder:
    folder = (await db.execute(
        select(PortalMediaFolder).where(
            PortalMediaFolder.id == folder_id,
            PortalMediaFolder.owner_id == owner_id,
        ),
    )).scalar_one_or_none()
    if folder is None:
        raise ResourceNotFoundError("Folder", str(folder_id))
    return folder


async def get_item_or_404(
    db: AsyncSession, owner_id: UUID, item_id: UUID,
) -> PortalMediaItem:
    item = (await db.execute(
        select(PortalMediaItem).where(
            PortalMediaItem.id == item_id,
            PortalMediaItem.owner_id == owner_id,
        ),
    )).scalar_one_or_none()
    if item is None:
        raise ResourceNotFoundError("Media item", str(item_id))
    return item


async def _sibling_name_taken(
    db: AsyncSession, owner_id: UUID, parent_id: UUID | None, name_key: str,
    exclude_id: UUID | None = None,
) -> bool:
    query = select(PortalMediaFolder.id).where(
        PortalMediaFolder.owner_id == owner_id,
        PortalMediaFolder.name_key == name_key,
        PortalMediaFolder.parent_id.is_(None) if parent_id is None
        else PortalMediaFolder.parent_id == parent_id,
    )
    if exclude_id is not None:
        query = query.where(PortalMediaFolder.id != exclude_id)
    return (await db.execute(query.limit(1))).scalar_one_or_none() is not None


def folder_to_dict(folder: PortalMediaFolder) -> dict:
    return {
        "id": str(folder.id),
        "parent_id": str(folder.parent_id) if folder.parent_id else None,
        "name": folder.name,
        "tag": folder.tag,
        "color": folder.color,
        "share_url": f"/api/v1/public/media/folder/{folder.id}/{folder.public_token}",
        "created_at": folder.created_at.isoformat(),
    }


def item_to_dict(item: PortalMediaItem) -> dict:
    return {
        "id": str(item.id),
        "folder_id": str(item.folder_id) if item.folder_id else None,
        "file_name": item.file_name,
        "mime_type": item.mime_type,
        "file_size": item.file_size,
        "tag": item.tag,
        "created_at": item.created_at.isoformat(),
        **media_item_urls(item.id, item.public_token, item.mime_type),
    }


# ─── Folders ─────────────────────────────────────────────────────

async def list_folders(
    db: AsyncSession, owner_id: UUID, parent_id: UUID | None = None, all_levels: bool = False,
) -> list[PortalMediaFolder]:
    query = select(PortalMediaFolder).where(PortalMediaFolder.owner_id == owner_id)
    if not all_levels:
        query = query.where(
            PortalMediaFolder.parent_id.is_(None) if parent_id is None
            else PortalMediaFolder.parent_id == parent_id,
        )
    query = query.order_by(PortalMediaFolder.name_key.asc())
    return list((await db.execute(query)).scalars().all())


async def create_folder(
    db: AsyncSession,
    owner_id: UUID,
    name: str,
    parent_id: UUID | None = None,
    color: str | None = None,
) -> PortalMediaFolder:
    clean = sanitize_display_name(name, FOLDER_NAME_MAX)
    if not clean:
        raise InvalidRequestError("Invalid folder name", field="name")
    if parent_id is not None:
        await get_folder_or_404(db, owner_id, parent_id)

    name_key = normalize_name_key(clean)
    if await _sibling_name_taken(db, owner_id, parent_id, name_key):
        raise ConflictError("A folder with that name already exists here")

    folder = PortalMediaFolder(
        owner_id=owner_id,
        parent_id=parent_id,
        name=clean,
        name_key=name_key,
        tag=await _unique_tag(db, PortalMediaFolder, owner_id),
        public_token=new_public_token(),
        color=(color or "").strip()[:COLOR_MAX] or None,
    )
    db.add(folder)
    await db.flush()
    return folder


async def update_folder(
    db: AsyncSession,
    owner_id: UUID,
    folder_id: UUID,
    name: str | None = None,
    parent_id: UUID | None | object = UNSET,
    color: str | None | object = UNSET,
) -> PortalMediaFolder:
    """Rename, move, or recolor. parent_id/color: omit to keep, None to clear."""
    folder = await get_folder_or_404(db, owner_id, folder_id)

    next_parent = folder.parent_id
    if parent_id is not UNSET:
        next_parent = parent_id
        if next_parent == folder_id:
            raise InvalidRequestError("Folder cannot be its own parent", field="parent_id")
        if next_parent is not None:
            parent = (await db.execute(
                select(PortalMediaFolder.id).where(
                    PortalMediaFolder.id == next_parent,
                    PortalMediaFolder.owner_id == owner_id,
                ),
            )).scalar_one_or_none()
            if parent is None:
                raise ResourceNotFoundError("Parent folder", str(next_parent))
            rows = (await db.execute(
                select(PortalMediaFolder.id, PortalMediaFolder.parent_id)
                .where(PortalMediaFolder.owner_id == owner_id),
            )).all()
            parent_of = {fid: pid for fid, pid in rows}
            if would_create_cycle(folder_id, next_parent, parent_of):
                raise InvalidRequestError("Invalid parent (cycle)", field="parent_id")

    next_name = folder.name
    if name is not None:
        next_name = sanitize_display_name(name, FOLDER_NAME_MAX)
        if not next_name:
            raise InvalidRequestError("Invalid folder name", field="name")

    name_key = normalize_name_key(next_name)
    if (next_parent != folder.parent_id or name_key != folder.name_key) and \
            await _sibling_name_taken(db, owner_id, next_parent, name_key, exclude_id=folder_id):
        raise ConflictError("A folder with that name already exists here")

    folder.name = next_name
    folder.name_key = name_key
    folder.parent_id = next_parent
    if color is not UNSET:
        folder.color = (str(color or "")).strip()[:COLOR_MAX] or None
    await db.flush()
    return folder


async def ensure_uploads_folder(db: AsyncSession, owner_id: UUID) -> PortalMediaFolder:
    """Root-level "Uploads" folder, created on first use."""
    existing = (await db.execute(
        select(PortalMediaFolder).where(
            PortalMediaFolder.owner_id == owner_id,
            PortalMediaFolder.parent_id.is_(None),
            PortalMediaFolder.name_key == normalize_name_key(UPLOADS_FOLDER_NAME),
        ),
    )).scalar_one_or_none()
    if existing is not None:
        return existing
    return await create_folder(db, owner_id, UPLOADS_FOLDER_NAME)


# ─── Items ───────────────────────────────────────────────────────

async def _create_item(
    db: AsyncSession, owner_id: UUID, folder_id: UUID | None, upload: UploadFile,
) -> PortalMediaItem:
    item = PortalMediaItem(
        owner_id=owner_id,
        folder_id=folder_id,
        file_name=safe_filename(upload.file_name),
        mime_type=(upload.mime_type or "application/octet-stream")[:MIME_MAX],
        file_size=len(upload.content),
        content=upload.content,
        tag=await _unique_tag(db, PortalMediaItem, owner_id),
        public_token=new_public_token(),
    )
    db.add(item)
    await db.flush()
    return item


async def upload_items(
    db: AsyncSession,
    owner_id: UUID,
    folder_id: UUID | None,
    files: list[UploadFile],
    max_files: int,
    max_bytes: int,
) -> list[PortalMediaItem]:
    if folder_id is not None:
        await get_folder_or_404(db, owner_id, folder_id)
    if not files:
        raise InvalidRequestError("No files", field="files")
    if len(files) > max_files:
        raise LimitExceededError(f"Too many files (max {max_files})", max_files)
    for upload in files:
        if len(upload.content) > max_bytes:
            raise LimitExceededError(
                f'"{upload.file_name}" is too large (max {max_bytes // (1024 * 1024)}MB)',
                max_bytes,
            )
    return [await _create_item(db, owner_id, folder_id, f) for f in files]


async def list_items(
    db: AsyncSession,
    owner_id: UUID,
    folder_id: UUID | None = None,
    q: str | None = None,
    limit: int = 200,
) -> list[PortalMediaItem]:
    query = select(PortalMediaItem).where(PortalMediaItem.owner_id == owner_id)
    if folder_id is not None:
        query = query.where(PortalMediaItem.folder_id == folder_id)
    term = (q or "").strip().lower()
    if term:
        like = f"%{term}%"
        query = query.where(or_(
            func.lower(PortalMediaItem.file_name).like(like),
            func.lower(PortalMediaItem.tag).like(like),
        ))
    query = query.order_by(PortalMediaItem.created_at.desc()).limit(max(1, min(500, limit)))
    return list((await db.execute(query)).scalars().all())


async def update_item(
    db: AsyncSession,
    owner_id: UUID,
    item_id: UUID,
    file_name: str | None = None,
    folder_id: UUID | None | object = UNSET,
) -> PortalMediaItem:
    item = await get_item_or_404(db, owner_id, item_id)
    if folder_id is not UNSET:
        if folder_id is not None:
            await get_folder_or_404(db, owner_id, folder_id)
        item.folder_id = folder_id
    if file_name is not None:
        clean = sanitize_display_name(file_name, FILE_NAME_MAX)
        if not clean:
            raise InvalidRequestError("Invalid file name", field="file_name")
        item.file_name = clean
    await db.flush()
    return item


async def delete_item(db: AsyncSession, owner_id: UUID, item_id: UUID) -> None:
    item = await get_item_or_404(db, owner_id, item_id)
    await db.delete(item)
    await db.flush()


async def mirror_upload_to_media_library(
    db: AsyncSession, owner_id: UUID, file_name: str, mime_type: str, content: bytes,
) -> dict:
    """Copy a received file into the owner's Uploads folder; returns the item's URLs."""
    uploads = await ensure_uploads_folder(db, owner_id)
    item = await _create_item(
        db, owner_id, uploads.id, UploadFile(file_name, mime_type, content),
    )
    return {"id": str(item.id), **media_item_urls(item.id, item.public_token, item.mime_type)}


# ─── Public access ───────────────────────────────────────────────

async def get_public_folder(
    db: AsyncSession, folder_id: UUID, token: str,
) -> PortalMediaFolder:
    """Folder addressed by a share link.

    Placeholder tokens ("null"/"undefined" from old links) only open folders
    that never had a token, and mint one on first visit.
    """
    folder = (await db.execute(
        select(PortalMediaFolder).where(PortalMediaFolder.id == folder_id),
    )).scalar_one_or_none()
    if folder is None:
        raise ResourceNotFoundError("Folder", str(folder_id))

    if not folder.public_token:
        if token.strip().lower() not in _PLACEHOLDER_TOKENS:
            raise ResourceNotFoundError("Folder", str(folder_id))
        folder.public_token = new_public_token()
        await db.flush()
        logger.info(
            "Minted public token for legacy folder link",
            extra={"owner_id": folder.owner_id},
        )
        return folder

    if not tokens_match(folder.public_token, token):
        raise ResourceNotFoundError("Folder", str(folder_id))
    return folder


async def get_public_item(
    db: AsyncSession, item_id: UUID, token: str,
) -> PortalMediaItem:
    item = (await db.execute(
        select(PortalMediaItem)
        .options(undefer(PortalMediaItem.content))
        .where(PortalMediaItem.id == item_id),
    )).scalar_one_or_none()
    if item is None or not tokens_match(item.public_token, token):
        raise ResourceNotFoundError("Media item", str(item_id))
    return item


async def folder_listing(db: AsyncSession, folder: PortalMediaFolder) -> dict:
    """Direct children of a shared folder (the ?json=1 view)."""
    children = await list_folders(db, folder.owner_id, parent_id=folder.id)
    items = await list_items(db, folder.owner_id, folder_id=folder.id, limit=500)
    return {
        "folder": folder_to_dict(folder),
        "folders": [folder_to_dict(f) for f in children],
        "items": [item_to_dict(i) for i in items],
    }


async def build_folder_zip(
    db: AsyncSession,
    folder: PortalMediaFolder,
    max_files: int,
    max_bytes: int,
    now: datetime | None = None,
) -> tuple[str, bytes]:
    """Zip the folder's whole subtree. Returns (download filename, archive bytes)."""
    all_folders = await list_folders(db, folder.owner_id, all_levels=True)
    paths = build_folder_paths(folder.id, folder.name, all_folders)

    meta = (await db.execute(
        select(
            PortalMediaItem.id, PortalMediaItem.folder_id,
            PortalMediaItem.file_name, PortalMediaItem.file_size,
        ).where(
            PortalMediaItem.owner_id == folder.owner_id,
            PortalMediaItem.folder_id.in_(list(paths.keys())),
        ).order_by(PortalMediaItem.file_name.asc()),
    )).all()

    if len(meta) > max_files:
        raise LimitExceededError("Folder has too many files to zip", max_files)
    if sum(row.file_size for row in meta) > max_bytes:
        raise LimitExceededError("Folder is too large to zip", max_bytes)

    contents: dict[UUID, bytes] = {}
    if meta:
        rows = await db.execute(
            select(PortalMediaItem.id, PortalMediaItem.content)
            .where(PortalMediaItem.id.in_([row.id for row in meta])),
        )
        contents = {item_id: data for item_id, data in rows.all()}

    names = unique_zip_names([
        f"{paths[row.folder_id]}/{safe_zip_filename(row.file_name)}" for row in meta
    ])
    entries = [
        ZipEntry(name=name, data=contents.get(row.id, b""))
        for name, row in zip(names, meta)
    ]
    archive = create_zip(entries, now or datetime.now(timezone.utc))
    return f"{paths[folder.id]}.zip", archive
