"""ZIP Writer — archives built by create_zip must round-trip through the stdlib reader.

Tests:
    - zipfile reads every entry back with matching bytes and CRC
    - Entry paths are sanitized (no traversal, no leading slash)
    - Empty archives are still valid
"""

import io
import zipfile
import zlib
from datetime import datetime, timezone

from portal.core.zip_archive import ZipEntry, create_zip, dos_datetime, sanitize_zip_path


def _open(archive: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(archive))


def test_entries_read_back_with_matching_crc():
    files = [
        ZipEntry("Root/a.txt", b"hello"),
        ZipEntry("Root/Sub/b.bin", bytes(range(256))),
    ]
    zf = _open(create_zip(files, datetime(2024, 5, 6, 7, 8, 10, tzinfo=timezone.utc)))

    assert zf.testzip() is None
    assert zf.namelist() == ["Root/a.txt", "Root/Sub/b.bin"]
    for entry in files:
        info = zf.getinfo(entry.name)
        assert info.CRC == zlib.crc32(entry.data) & 0xFFFFFFFF
        assert zf.read(entry.name) == entry.data


def test_modification_time_is_encoded():
    archive = create_zip([ZipEntry("x.txt", b"x")], datetime(2024, 5, 6, 7, 8, 10, tzinfo=timezone.utc))
    assert _open(archive).getinfo("x.txt").date_time == (2024, 5, 6, 7, 8, 10)


def test_utf8_names_survive():
    archive = create_zip([ZipEntry("Fotos/café.jpg", b"\xff\xd8")])
    assert _open(archive).namelist() == ["Fotos/café.jpg"]


def test_empty_archive_is_valid():
    zf = _open(create_zip([]))
    assert zf.namelist() == []


def test_sanitize_strips_traversal_and_leading_slash():
    assert sanitize_zip_path("/../etc/./passwd") == "etc/passwd"
    assert sanitize_zip_path("a\\b\\c.txt") == "a/b/c.txt"
    assert sanitize_zip_path("") == "file"


def test_dos_datetime_clamps_pre_1980_years():
    _, dos_date = dos_datetime(datetime(1970, 1, 1))
    assert dos_date >> 9 == 0
