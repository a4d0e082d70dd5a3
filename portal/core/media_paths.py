"""Media Paths — names, tags, tree walks, and public URLs for the media library.

Invariants:
    - Display names never contain control characters or runs of whitespace
    - Zip paths are built from sanitized segments: no traversal, no empty parts
    - build_folder_paths visits each folder at most once (tolerates corrupt cycles)
    - would_create_cycle is conservative: depth exhaustion counts as a cycle

Design Decisions:
    - Tree walks operate on a parent map loaded once per request: folder trees
      are small, one SELECT beats N recursive queries
"""

import re
import secrets
import unicodedata
from typing import Iterable, Sequence
from urllib.parse import quote
from uuid import UUID

from portal.core.repository_protocols import FolderLike

FOLDER_NAME_MAX = 120
FILE_NAME_MAX = 200
MAX_PARENT_WALK = 64
UPLOADS_FOLDER_NAME = "Uploads"

_CONTROL = re.compile(r"[\r\n\t\0]")
_WS = re.compile(r"\s+")
_UNSAFE_FILENAME = re.compile(r'[\x00-\x1f<>:"/\\|?*]')
_HEADER_UNSAFE = re.compile(r'[^\x20-\x7e]|["\\]')
_TAG_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def new_tag() -> str:
    """Short human-friendly tag (no 0/O/1/I ambiguity)."""
    return "".join(secrets.choice(_TAG_ALPHABET) for _ in range(8))


def sanitize_display_name(raw: str | None, limit: int = FOLDER_NAME_MAX) -> str:
    text = _CONTROL.sub(" ", str(raw or ""))
    return _WS.sub(" ", text).strip()[:limit]


def normalize_name_key(name: str | None) -> str:
    return sanitize_display_name(name).lower()


def safe_filename(name: str | None, default: str = "upload.bin") -> str:
    base = str(name or "").replace("\\", "/").rsplit("/", 1)[-1]
    base = _UNSAFE_FILENAME.sub("_", base)
    base = sanitize_display_name(base, FILE_NAME_MAX).strip(". ")
    return base or default


def safe_zip_segment(name: str | None) -> str:
    cleaned = sanitize_display_name(name).replace("/", "-").replace("\\", "-")
    return cleaned.strip(". ")[:FOLDER_NAME_MAX] or "folder"


def safe_zip_filename(name: str | None) -> str:
    return safe_filename(name, default="file")


def build_folder_paths(
    root_id: UUID, root_name: str, folders: Iterable[FolderLike],
) -> dict[UUID, str]:
    """Map every folder in root's subtree to its zip path prefix ('Root/Sub/Leaf')."""
    children: dict[UUID, list[FolderLike]] = {}
    for f in folders:
        if f.parent_id is not None:
            children.setdefault(f.parent_id, []).append(f)

    paths: dict[UUID, str] = {root_id: safe_zip_segment(root_name)}
    stack: list[UUID] = [root_id]
    while stack:
        current = stack.pop()
        for child in sorted(children.get(current, []), key=lambda c: c.name.lower()):
            if child.id in paths:
                continue
            paths[child.id] = f"{paths[current]}/{safe_zip_segment(child.name)}"
            stack.append(child.id)
    return paths


def would_create_cycle(
    folder_id: UUID,
    new_parent_id: UUID | None,
    parent_of: dict[UUID, UUID | None],
    max_depth: int = MAX_PARENT_WALK,
) -> bool:
    """True if re-parenting folder_id under new_parent_id puts it inside its own subtree."""
    current = new_parent_id
    for _ in range(max_depth):
        if current is None:
            return False
        if current == folder_id:
            return True
        if current not in parent_of:
            return False
        current = parent_of[current]
    return True


def media_item_urls(item_id: UUID, public_token: str, mime_type: str | None) -> dict:
    open_url = f"/api/v1/public/media/item/{item_id}/{public_token}"
    return {
        "open_url": open_url,
        "download_url": f"{open_url}?download=1",
        "share_url": open_url,
        "preview_url": open_url if str(mime_type or "").startswith("image/") else None,
    }


def content_disposition(disposition: str, file_name: str) -> str:
    """Content-Disposition value that survives latin-1 header encoding.

    filename= carries an ASCII fallback; names that need more get an RFC 5987
    filename*= with the UTF-8 original.
    """
    ascii_name = unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode()
    fallback = _HEADER_UNSAFE.sub("_", ascii_name).strip()
    stem, dot, ext = fallback.rpartition(".")
    if dot and not stem.strip(" ._"):
        fallback = f"download.{ext}"
    elif not fallback.strip(" ._"):
        fallback = "download"
    value = f'{disposition}; filename="{fallback}"'
    if fallback != file_name:
        value += f"; filename*=UTF-8''{quote(file_name, safe='')}"
    return value


def unique_zip_names(names: Sequence[str]) -> list[str]:
    """Disambiguate duplicate entry paths: 'a.jpg', 'a (2).jpg', ..."""
    seen: dict[str, int] = {}
    result: list[str] = []
    for name in names:
        count = seen.get(name.lower(), 0) + 1
        seen[name.lower()] = count
        if count == 1:
            result.append(name)
            continue
        stem, dot, ext = name.rpartition(".")
        if not dot or "/" in ext or not stem or stem.endswith("/"):
            stem, ext = name, ""
        result.append(f"{stem} ({count}){'.' + ext if ext else ''}")
    return result
