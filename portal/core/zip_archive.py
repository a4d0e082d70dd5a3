"""Zip Archive Writer — builds stored (uncompressed) ZIP archives from in-memory buffers.

Invariants:
    - Method 0 (stored): compressed size == uncompressed size, no data descriptor
    - Flag bit 11 set on every entry: names are UTF-8
    - All multi-byte integers are little-endian
    - DOS timestamps clamp to 1980-01-01 (earliest representable year)
    - Pure: no IO, caller owns the returned bytes

Design Decisions:
    - Stored only: media files (images, video, pdf) are already compressed,
      deflate would burn CPU for little gain
    - No ZIP64: callers cap archives well below 4 GiB / 65535 entries
"""

import struct
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone

_LOCAL_HEADER_SIG = 0x04034B50
_CENTRAL_HEADER_SIG = 0x02014B50
_END_OF_CENTRAL_DIR_SIG = 0x06054B50

_VERSION_NEEDED = 20
_VERSION_MADE_BY = 0x0314  # unix, zip 2.0
_FLAG_UTF8 = 0x0800
_METHOD_STORED = 0

_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")


@dataclass(frozen=True)
class ZipEntry:
    """One file to place in the archive."""
    name: str
    data: bytes


def sanitize_zip_path(name: str) -> str:
    """Normalize an entry path: forward slashes, no traversal, no control chars."""
    cleaned = str(name or "").replace("\\", "/")
    for ch in ("\r", "\n", "\0"):
        cleaned = cleaned.replace(ch, "")
    cleaned = cleaned.lstrip("/")
    parts = [p for p in cleaned.split("/") if p and p not in (".", "..")]
    return "/".join(parts) or "file"


def dos_datetime(moment: datetime) -> tuple[int, int]:
    """Encode a datetime as (dos_time, dos_date)."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    year = max(1980, moment.year)
    dos_time = (moment.hour << 11) | (moment.minute << 5) | (moment.second // 2)
    dos_date = ((year - 1980) << 9) | (moment.month << 5) | moment.day
    return dos_time & 0xFFFF, dos_date & 0xFFFF


def create_zip(files: list[ZipEntry], mtime: datetime | None = None) -> bytes:
    """Build a complete ZIP archive (local headers, data, central directory, EOCD)."""
    dos_time, dos_date = dos_datetime(mtime or datetime.now(timezone.utc))

    body = bytearray()
    central = bytearray()

    for entry in files:
        name_bytes = sanitize_zip_path(entry.name).encode("utf-8")
        data = bytes(entry.data)
        crc = zlib.crc32(data) & 0xFFFFFFFF
        size = len(data)
        offset = len(body)

        body += _LOCAL_HEADER.pack(
            _LOCAL_HEADER_SIG, _VERSION_NEEDED, _FLAG_UTF8, _METHOD_STORED,
            dos_time, dos_date, crc, size, size, len(name_bytes), 0,
        )
        body += name_bytes
        body += data

        central += _CENTRAL_HEADER.pack(
            _CENTRAL_HEADER_SIG, _VERSION_MADE_BY, _VERSION_NEEDED,
            _FLAG_UTF8, _METHOD_STORED, dos_time, dos_date, crc, size, size,
            len(name_bytes),
            0,  # extra length
            0,  # comment length
            0,  # disk number start
            0,  # internal attributes
            0,  # external attributes
            offset,
        )
        central += name_bytes

    count = len(files)
    end = _END_OF_CENTRAL_DIR.pack(
        _END_OF_CENTRAL_DIR_SIG, 0, 0, count, count,
        len(central), len(body), 0,
    )
    return bytes(body + central + end)
