# coursehub/uploads.py
import logging
import re
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import UploadFile

from . import config
from .errors import BadRequest

logger = logging.getLogger(__name__)

MB = 1024 * 1024
CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class UploadKind:
    name: str
    max_bytes: int
    # Field name -> required MIME prefix. "*" applies to every other field.
    mime_rules: dict

    def mime_prefix(self, field: str) -> Optional[str]:
        if field in self.mime_rules:
            return self.mime_rules[field]
        return self.mime_rules.get("*")


VIDEO = UploadKind("video", 500 * MB, {"*": "video/"})
IMAGE = UploadKind("image", 10 * MB, {"*": "image/"})
RESOURCE = UploadKind("resource", 200 * MB, {})
# Lecture form: a video plus an unrestricted resource
MIXED = UploadKind("mixed", 500 * MB, {"video": "video/"})

_MIME_LABELS = {"video/": "video", "image/": "image"}


@dataclass(frozen=True)
class StoredFile:
    filename: str
    url: str
    original_name: str


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9.\-_]+", "-", name.lower())


def media_path(filename):
    return config.MEDIA_DIR / filename


def _check_type(upload: UploadFile, kind: UploadKind, field: str) -> None:
    prefix = kind.mime_prefix(field)
    if prefix and not (upload.content_type or "").startswith(prefix):
        label = _MIME_LABELS.get(prefix, prefix.rstrip("/"))
        if field in kind.mime_rules:
            raise BadRequest(f"Only {label} files are allowed for {field} field")
        raise BadRequest(f"Only {label} files are allowed")


def _create_unique(name):
    """Create a new file {ms-timestamp}-{name}. A taken name moves to the next millisecond."""
    stamp = int(time.time() * 1000)
    while True:
        filename = f"{stamp}-{name}"
        path = media_path(filename)
        try:
            return filename, path, open(path, "xb")
        except FileExistsError:
            stamp += 1


def save_upload(upload: UploadFile, kind: UploadKind, field: str = "file") -> StoredFile:
    """Validate and store one upload under MEDIA_DIR as {timestamp}-{name}."""
    _check_type(upload, kind, field)

    original_name = upload.filename or field
    config.MEDIA_DIR.mkdir(parents=True, exist_ok=True)
    filename, path, out = _create_unique(sanitize_filename(original_name))

    written = 0
    try:
        with out:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > kind.max_bytes:
                    raise BadRequest("File too large")
                out.write(chunk)
    except Exception:
        path.unlink(missing_ok=True)
        raise

    logger.info("Stored %s upload %s (%d bytes)", kind.name, filename, written)
    return StoredFile(filename=filename, url=f"{config.MEDIA_URL_PREFIX}/{filename}", original_name=original_name)


def delete_media(url: Optional[str]) -> None:
    """Remove a stored file by its /media URL. Missing files are ignored."""
    prefix = config.MEDIA_URL_PREFIX + "/"
    if not url or not url.startswith(prefix):
        return
    name = url[len(prefix):]
    if "/" in name or name in ("", ".", ".."):
        return
    try:
        media_path(name).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove media file %s", name, exc_info=True)


def discard(stored: Iterable[StoredFile]) -> None:
    for item in stored:
        delete_media(item.url)
