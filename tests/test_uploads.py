import io

import pytest
from starlette.datastructures import Headers, UploadFile

from coursehub import config, uploads
from coursehub.errors import BadRequest


def upload(name, data, content_type):
    return UploadFile(io.BytesIO(data), filename=name, headers=Headers({"content-type": content_type}))


@pytest.mark.parametrize("name, expected", [
    ("Lecture 1.MP4", "lecture-1.mp4"),
    ("my_notes-v2.pdf", "my_notes-v2.pdf"),
    ("Résumé (final).doc", "r-sum-final-.doc"),
])
def test_sanitize_filename(name, expected):
    assert uploads.sanitize_filename(name) == expected


def test_save_upload_writes_under_media_dir():
    stored = uploads.save_upload(upload("Intro.mp4", b"frames", "video/mp4"), uploads.VIDEO, "video")
    assert stored.original_name == "Intro.mp4"
    assert stored.url == f"/media/{stored.filename}"
    assert stored.filename.split("-", 1)[0].isdigit()
    assert stored.filename.endswith("-intro.mp4")
    assert (config.MEDIA_DIR / stored.filename).read_bytes() == b"frames"


def test_oversized_upload_leaves_nothing_behind():
    tiny = uploads.UploadKind("tiny", 4, {})
    before = set(config.MEDIA_DIR.iterdir())
    with pytest.raises(BadRequest) as excinfo:
        uploads.save_upload(upload("big.bin", b"0123456789", "application/octet-stream"), tiny)
    assert excinfo.value.message == "File too large"
    assert set(config.MEDIA_DIR.iterdir()) == before


def test_resource_kind_accepts_any_type():
    stored = uploads.save_upload(upload("data.csv", b"a,b", "text/csv"), uploads.RESOURCE, "resource")
    assert stored.filename.endswith("-data.csv")


def test_mixed_kind_only_restricts_video_field():
    with pytest.raises(BadRequest) as excinfo:
        uploads.save_upload(upload("slides.pdf", b"%PDF", "application/pdf"), uploads.MIXED, "video")
    assert excinfo.value.message == "Only video files are allowed for video field"
    uploads.save_upload(upload("slides.pdf", b"%PDF", "application/pdf"), uploads.MIXED, "resource")


def test_delete_media_ignores_foreign_urls():
    stored = uploads.save_upload(upload("gone.txt", b"x", "text/plain"), uploads.RESOURCE)
    uploads.delete_media("https://example.com/gone.txt")
    uploads.delete_media("/media/../config.py")
    uploads.delete_media(None)
    assert (config.MEDIA_DIR / stored.filename).exists()

    uploads.discard([stored])
    assert not (config.MEDIA_DIR / stored.filename).exists()
    # A second removal is a no-op
    uploads.delete_media(stored.url)


def test_same_name_in_same_millisecond_keeps_both_files(monkeypatch):
    monkeypatch.setattr(uploads.time, "time", lambda: 1700000000.0)
    first = uploads.save_upload(upload("homework.pdf", b"student A work", "application/pdf"), uploads.RESOURCE)
    second = uploads.save_upload(upload("homework.pdf", b"student B work", "application/pdf"), uploads.RESOURCE)

    assert first.filename == "1700000000000-homework.pdf"
    assert second.filename == "1700000000001-homework.pdf"
    assert (config.MEDIA_DIR / first.filename).read_bytes() == b"student A work"
    assert (config.MEDIA_DIR / second.filename).read_bytes() == b"student B work"

    # Replacing one submission must not touch the other
    uploads.discard([first])
    assert (config.MEDIA_DIR / second.filename).read_bytes() == b"student B work"
