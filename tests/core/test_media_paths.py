"""Media Paths — name sanitizing, folder tree paths, cycle detection, zip name dedupe."""

from dataclasses import dataclass
from uuid import UUID, uuid4

from portal.core.media_paths import (
    build_folder_paths, content_disposition, media_item_urls, new_tag, safe_filename,
    sanitize_display_name, unique_zip_names, would_create_cycle,
)


@dataclass
class Folder:
    id: UUID
    parent_id: UUID | None
    name: str


def test_sanitize_collapses_control_chars_and_caps():
    assert sanitize_display_name("  a\tb\n c  ") == "a b c"
    assert len(sanitize_display_name("x" * 500, 120)) == 120


def test_safe_filename_drops_path_and_unsafe_chars():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename('C:\\temp\\re:port?.pdf') == "re_port_.pdf"
    assert safe_filename("  ...  ") == "upload.bin"


def test_tags_are_eight_unambiguous_chars():
    tag = new_tag()
    assert len(tag) == 8
    assert not set(tag) & set("01IO")


def test_folder_paths_cover_subtree_only():
    root, child, grandchild, other = uuid4(), uuid4(), uuid4(), uuid4()
    folders = [
        Folder(root, None, "Photos"),
        Folder(child, root, "2024"),
        Folder(grandchild, child, "June/July"),
        Folder(other, None, "Elsewhere"),
    ]
    paths = build_folder_paths(root, "Photos", folders)
    assert paths == {
        root: "Photos",
        child: "Photos/2024",
        grandchild: "Photos/2024/June-July",
    }


def test_moving_under_own_descendant_is_a_cycle():
    a, b, c = uuid4(), uuid4(), uuid4()
    parent_of = {a: None, b: a, c: b}
    assert would_create_cycle(a, c, parent_of)
    assert would_create_cycle(a, a, parent_of)
    assert not would_create_cycle(c, a, parent_of)
    assert not would_create_cycle(b, None, parent_of)


def test_unique_zip_names_numbers_duplicates():
    names = ["F/a.jpg", "F/A.jpg", "F/a.jpg", "F/readme"]
    assert unique_zip_names(names) == ["F/a.jpg", "F/A (2).jpg", "F/a (3).jpg", "F/readme"]


def test_item_urls_preview_only_for_images():
    item_id = uuid4()
    image = media_item_urls(item_id, "tok", "image/png")
    doc = media_item_urls(item_id, "tok", "application/pdf")
    assert image["download_url"] == f"/api/v1/public/media/item/{item_id}/tok?download=1"
    assert image["preview_url"] == image["open_url"]
    assert doc["preview_url"] is None


def test_content_disposition_plain_ascii_name_unchanged():
    assert content_disposition("attachment", "logo.png") == 'attachment; filename="logo.png"'


def test_content_disposition_non_ascii_adds_utf8_name():
    value = content_disposition("inline", "照片.jpg")
    assert value == "inline; filename=\"download.jpg\"; filename*=UTF-8''%E7%85%A7%E7%89%87.jpg"
    value.encode("latin-1")


def test_content_disposition_keeps_ascii_letters_and_escapes_quotes():
    assert content_disposition("attachment", "Café.pdf").startswith('attachment; filename="Cafe.pdf"; filename*=')
    value = content_disposition("attachment", 'say "hi".zip')
    assert value.startswith('attachment; filename="say _hi_.zip"; filename*=UTF-8\'\'say%20%22hi%22.zip')
